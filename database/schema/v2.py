"""Schema v2 - One liquidity pool per token, non-negative viewer counts.

Graduation creates exactly one pool per artist token, so the token index on
liquidity_pools becomes unique. Viewer counts get a CHECK constraint backing
the floored decrement.
"""
import copy

from .v1 import schema as _v1

_tables = copy.deepcopy(_v1['tables'])

for _table in _tables:
    if _table['name'] == 'livestreams':
        _table['checks'] = ['viewer_count >= 0']
    elif _table['name'] == 'liquidity_pools':
        _table['indexes'] = [
            {'name': 'idx_liquidity_pools_token', 'columns': ['artist_token_id'], 'unique': True}
        ]

schema = {
    'version': 2,
    'tables': _tables,
    'migrations': [
        'ALTER TABLE livestreams ADD CONSTRAINT chk_livestreams_viewer_count CHECK (viewer_count >= 0)',
        'DROP INDEX IF EXISTS idx_liquidity_pools_token',
        'CREATE UNIQUE INDEX idx_liquidity_pools_token ON liquidity_pools(artist_token_id)'
    ]
}
