from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from database import get_pool
from .models import ArtistToken, LiquidityPool, PoolPlatform

TOKEN_COLUMNS = """
    id, artist_id, name, symbol, mint_address, bonding_curve_address,
    supply, price_usd, market_cap, graduated, graduation_date
"""

POOL_COLUMNS = """
    id, artist_token_id, platform, pool_address, reserve_token, reserve_sol,
    tvl, volume_24h, created_at
"""


class TokenStore:
    """PostgreSQL persistence for artist tokens and their liquidity pools."""

    def __init__(self, pool=None):
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def get_token(self, token_id: int) -> Optional[ArtistToken]:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {TOKEN_COLUMNS} FROM artist_tokens WHERE id = $1",
                token_id
            )
        return ArtistToken(**dict(row)) if row else None

    async def list_ungraduated_tokens(self) -> List[ArtistToken]:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {TOKEN_COLUMNS} FROM artist_tokens
                WHERE graduated = false
                ORDER BY id
                """
            )
        return [ArtistToken(**dict(row)) for row in rows]

    async def claim_graduation(self, token_id: int, graduation_date: datetime) -> bool:
        """Mark a token graduated unless another caller already did.

        Returns:
            True if this call flipped the flag
        """
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            claimed = await conn.fetchval(
                """
                UPDATE artist_tokens
                SET graduated = true, graduation_date = $2, updated_at = now()
                WHERE id = $1 AND graduated = false
                RETURNING id
                """,
                token_id, graduation_date
            )
        return claimed is not None

    async def create_liquidity_pool(
        self,
        token_id: int,
        platform: PoolPlatform,
        pool_address: str,
        reserve_token: Decimal = Decimal(0),
        reserve_sol: Decimal = Decimal(0),
        tvl: Decimal = Decimal(0)
    ) -> LiquidityPool:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO liquidity_pools (
                    artist_token_id, platform, pool_address, reserve_token, reserve_sol, tvl
                ) VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING {POOL_COLUMNS}
                """,
                token_id, platform.value, pool_address, reserve_token, reserve_sol, tvl
            )
        return LiquidityPool(**dict(row))

    async def list_liquidity_pools(self, token_id: int) -> List[LiquidityPool]:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {POOL_COLUMNS} FROM liquidity_pools WHERE artist_token_id = $1 ORDER BY id",
                token_id
            )
        return [LiquidityPool(**dict(row)) for row in rows]

    async def revert_graduation(self, token_id: int) -> None:
        """Undo a graduation: drop the token's pools and clear the flag."""
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    'DELETE FROM liquidity_pools WHERE artist_token_id = $1',
                    token_id
                )
                await conn.execute(
                    """
                    UPDATE artist_tokens
                    SET graduated = false, graduation_date = NULL, updated_at = now()
                    WHERE id = $1
                    """,
                    token_id
                )
