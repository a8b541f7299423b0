from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
import asyncpg

from database import get_pool
from .models import Livestream, LivestreamStatus, StreamMessage

LIVESTREAM_COLUMNS = """
    id, artist_id, title, description, status, viewer_count, token_gate_amount,
    stream_key, rtmp_url, hls_url, start_time, started_at, ended_at, created_at
"""


def _livestream(row: Optional[asyncpg.Record]) -> Optional[Livestream]:
    if row is None:
        return None
    return Livestream(**dict(row))


class LivestreamStore:
    """PostgreSQL persistence for livestreams and their messages.

    Viewer counts change through single UPDATE statements applying a delta,
    never through read-modify-write.
    """

    def __init__(self, pool=None):
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def create_livestream(
        self,
        artist_id: int,
        title: str,
        stream_key: str,
        rtmp_url: str,
        hls_url: str,
        description: Optional[str] = None,
        start_time: Optional[datetime] = None,
        token_gate_amount: Optional[Decimal] = None
    ) -> Livestream:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO livestreams (
                    artist_id, title, description, start_time, token_gate_amount,
                    stream_key, rtmp_url, hls_url
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                RETURNING {LIVESTREAM_COLUMNS}
                """,
                artist_id, title, description, start_time, token_gate_amount,
                stream_key, rtmp_url, hls_url
            )
        return _livestream(row)

    async def get_livestream(self, livestream_id: int) -> Optional[Livestream]:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {LIVESTREAM_COLUMNS} FROM livestreams WHERE id = $1",
                livestream_id
            )
        return _livestream(row)

    async def list_livestreams(
        self,
        active: bool = False,
        upcoming: bool = False,
        artist_id: Optional[int] = None,
        now: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 20
    ) -> Tuple[List[Livestream], int]:
        conditions = []
        args: List[Any] = []

        if active:
            args.append(LivestreamStatus.LIVE.value)
            conditions.append(f"status = ${len(args)}")
        if upcoming:
            args.append(LivestreamStatus.SCHEDULED.value)
            conditions.append(f"status = ${len(args)}")
            args.append(now or datetime.now(timezone.utc))
            conditions.append(f"start_time > ${len(args)}")
        if artist_id is not None:
            args.append(artist_id)
            conditions.append(f"artist_id = ${len(args)}")

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            total = await conn.fetchval(f"SELECT COUNT(*) FROM livestreams {where}", *args)
            rows = await conn.fetch(
                f"""
                SELECT {LIVESTREAM_COLUMNS} FROM livestreams {where}
                ORDER BY start_time DESC, id DESC
                LIMIT ${len(args) + 1} OFFSET ${len(args) + 2}
                """,
                *args, limit, offset
            )
        return [_livestream(row) for row in rows], total

    async def get_livestream_by_stream_key(self, stream_key: str) -> Optional[Livestream]:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {LIVESTREAM_COLUMNS} FROM livestreams WHERE stream_key = $1",
                stream_key
            )
        return _livestream(row)

    async def mark_live(self, livestream_id: int, started_at: datetime) -> Optional[Livestream]:
        """Move a non-live stream to live. Returns None if it is already live."""
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE livestreams
                SET status = $2, started_at = $3, ended_at = NULL, updated_at = now()
                WHERE id = $1 AND status <> $2
                RETURNING {LIVESTREAM_COLUMNS}
                """,
                livestream_id, LivestreamStatus.LIVE.value, started_at
            )
        return _livestream(row)

    async def mark_ended(self, livestream_id: int, ended_at: datetime) -> Optional[Livestream]:
        """Move a live stream to ended and reset its viewers. Returns None if it was not live."""
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE livestreams
                SET status = $2, ended_at = $3, viewer_count = 0, updated_at = now()
                WHERE id = $1 AND status = $4
                RETURNING {LIVESTREAM_COLUMNS}
                """,
                livestream_id, LivestreamStatus.ENDED.value, ended_at,
                LivestreamStatus.LIVE.value
            )
        return _livestream(row)

    async def increment_viewers(self, livestream_id: int) -> Optional[int]:
        """Add one viewer to a live stream. Returns None unless the stream is live."""
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                """
                UPDATE livestreams
                SET viewer_count = viewer_count + 1, updated_at = now()
                WHERE id = $1 AND status = $2
                RETURNING viewer_count
                """,
                livestream_id, LivestreamStatus.LIVE.value
            )

    async def decrement_viewers(self, livestream_id: int) -> Optional[int]:
        """Remove one viewer from a live stream, floored at zero."""
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                """
                UPDATE livestreams
                SET viewer_count = GREATEST(viewer_count - 1, 0), updated_at = now()
                WHERE id = $1 AND status = $2
                RETURNING viewer_count
                """,
                livestream_id, LivestreamStatus.LIVE.value
            )

    async def create_message(
        self,
        livestream_id: int,
        user_id: int,
        content: str,
        sent_at: datetime,
        tip_amount: Optional[Decimal] = None,
        tip_mint: Optional[str] = None
    ) -> StreamMessage:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO stream_messages (
                    livestream_id, user_id, content, tip_amount, tip_mint, sent_at
                ) VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING id, livestream_id, user_id, content, tip_amount, tip_mint, sent_at
                """,
                livestream_id, user_id, content, tip_amount, tip_mint, sent_at
            )
        return StreamMessage(**dict(row))

    async def list_messages(self, livestream_id: int, limit: int = 100) -> List[StreamMessage]:
        """Newest messages first, ties broken by id."""
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT m.id, m.livestream_id, m.user_id, m.content, m.tip_amount,
                       m.tip_mint, m.sent_at, u.wallet_address
                FROM stream_messages m
                JOIN users u ON u.id = m.user_id
                WHERE m.livestream_id = $1
                ORDER BY m.sent_at DESC, m.id DESC
                LIMIT $2
                """,
                livestream_id, limit
            )
        return [StreamMessage(**dict(row)) for row in rows]

    async def total_tips(self, livestream_id: int) -> Decimal:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            total = await conn.fetchval(
                """
                SELECT COALESCE(SUM(tip_amount), 0)
                FROM stream_messages
                WHERE livestream_id = $1 AND tip_amount IS NOT NULL
                """,
                livestream_id
            )
        return Decimal(total)

    async def get_artist_id_for_user(self, user_id: int) -> Optional[int]:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                'SELECT id FROM artists WHERE user_id = $1 ORDER BY id LIMIT 1',
                user_id
            )

    async def get_artist_owner(self, artist_id: int) -> Optional[int]:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                'SELECT user_id FROM artists WHERE id = $1',
                artist_id
            )

    async def get_gate_token(self, artist_id: int) -> Optional[Dict[str, Any]]:
        """The artist token that gates an artist's livestreams."""
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                'SELECT name, symbol, mint_address FROM artist_tokens WHERE artist_id = $1 ORDER BY id LIMIT 1',
                artist_id
            )
        return dict(row) if row else None
