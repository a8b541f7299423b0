"""Schema v1 - Initial database schema.

This version includes tables for:
- Users and artists
- Livestreams and their chat/tip messages
- Artist tokens and liquidity pools
"""

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'users',
            'columns': [
                {'name': 'id', 'type': 'BIGSERIAL', 'primary_key': True},
                {'name': 'wallet_address', 'type': 'TEXT', 'nullable': False, 'unique': True},
                {'name': 'display_name', 'type': 'TEXT'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ]
        },
        {
            'name': 'artists',
            'columns': [
                {'name': 'id', 'type': 'BIGSERIAL', 'primary_key': True},
                {'name': 'user_id', 'type': 'BIGINT', 'nullable': False},
                {'name': 'name', 'type': 'TEXT', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_artists_user', 'columns': ['user_id']}
            ]
        },
        {
            'name': 'livestreams',
            'columns': [
                {'name': 'id', 'type': 'BIGSERIAL', 'primary_key': True},
                {'name': 'artist_id', 'type': 'BIGINT', 'nullable': False},
                {'name': 'title', 'type': 'TEXT', 'nullable': False},
                {'name': 'description', 'type': 'TEXT'},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'scheduled'"},
                {'name': 'viewer_count', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'token_gate_amount', 'type': 'NUMERIC'},
                {'name': 'stream_key', 'type': 'TEXT', 'unique': True},
                {'name': 'rtmp_url', 'type': 'TEXT'},
                {'name': 'hls_url', 'type': 'TEXT'},
                {'name': 'start_time', 'type': 'TIMESTAMPTZ'},
                {'name': 'started_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'ended_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['artist_id'], 'references': 'artists(id)'}
            ],
            'indexes': [
                {'name': 'idx_livestreams_artist', 'columns': ['artist_id']},
                {'name': 'idx_livestreams_status', 'columns': ['status']}
            ]
        },
        {
            'name': 'stream_messages',
            'columns': [
                {'name': 'id', 'type': 'BIGSERIAL', 'primary_key': True},
                {'name': 'livestream_id', 'type': 'BIGINT', 'nullable': False},
                {'name': 'user_id', 'type': 'BIGINT', 'nullable': False},
                {'name': 'content', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'tip_amount', 'type': 'NUMERIC'},
                {'name': 'tip_mint', 'type': 'TEXT'},
                {'name': 'sent_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['livestream_id'], 'references': 'livestreams(id)', 'on_delete': 'CASCADE'},
                {'columns': ['user_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_stream_messages_livestream', 'columns': ['livestream_id', 'sent_at']},
                {'name': 'idx_stream_messages_user', 'columns': ['user_id']}
            ]
        },
        {
            'name': 'artist_tokens',
            'columns': [
                {'name': 'id', 'type': 'BIGSERIAL', 'primary_key': True},
                {'name': 'artist_id', 'type': 'BIGINT', 'nullable': False},
                {'name': 'name', 'type': 'TEXT', 'nullable': False},
                {'name': 'symbol', 'type': 'TEXT', 'nullable': False},
                {'name': 'mint_address', 'type': 'TEXT', 'nullable': False, 'unique': True},
                {'name': 'bonding_curve_address', 'type': 'TEXT'},
                {'name': 'supply', 'type': 'NUMERIC'},
                {'name': 'price_usd', 'type': 'NUMERIC(18, 8)', 'default': '0'},
                {'name': 'market_cap', 'type': 'NUMERIC'},
                {'name': 'graduated', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'graduation_date', 'type': 'TIMESTAMPTZ'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['artist_id'], 'references': 'artists(id)'}
            ],
            'indexes': [
                {'name': 'idx_artist_tokens_artist', 'columns': ['artist_id']}
            ]
        },
        {
            'name': 'liquidity_pools',
            'columns': [
                {'name': 'id', 'type': 'BIGSERIAL', 'primary_key': True},
                {'name': 'artist_token_id', 'type': 'BIGINT', 'nullable': False},
                {'name': 'platform', 'type': 'TEXT', 'nullable': False, 'default': "'in_house'"},
                {'name': 'pool_address', 'type': 'TEXT', 'nullable': False, 'unique': True},
                {'name': 'reserve_token', 'type': 'NUMERIC', 'nullable': False, 'default': '0'},
                {'name': 'reserve_sol', 'type': 'NUMERIC', 'nullable': False, 'default': '0'},
                {'name': 'tvl', 'type': 'NUMERIC', 'nullable': False, 'default': '0'},
                {'name': 'volume_24h', 'type': 'NUMERIC', 'nullable': False, 'default': '0'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['artist_token_id'], 'references': 'artist_tokens(id)', 'on_delete': 'CASCADE'}
            ],
            'indexes': [
                {'name': 'idx_liquidity_pools_token', 'columns': ['artist_token_id']}
            ]
        }
    ]
}
