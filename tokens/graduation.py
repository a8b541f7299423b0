"""Graduation of artist tokens from the bonding curve to a liquidity pool.

A token graduates once, when its market cap reaches the configured threshold.
Graduation claims the token, creates its single pool and announces it on the
token's trades topic. If any of those steps fails the claim is rolled back so
a token is never graduated without a pool, or pooled without being graduated.
"""

import asyncio
import logging
import secrets
import traceback
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Optional

from broadcast import Broadcaster, trades_topic, manager as broadcast_manager
from config import settings_conf
from .db import TokenStore
from .models import LiquidityPool, PoolPlatform

logger = logging.getLogger(__name__)


class TokenError(Exception):
    """Base exception for token operations."""
    pass

class TokenNotFoundError(TokenError):
    """Raised when a token is not found."""
    pass

class GraduationError(TokenError):
    """Raised when the graduation sequence fails and has been rolled back."""
    pass


class GraduationManager:
    """Evaluates and executes token graduations."""

    def __init__(
        self,
        store: Optional[TokenStore] = None,
        broadcaster: Optional[Broadcaster] = None,
        threshold: Optional[Decimal] = None
    ):
        """Initialize the graduation manager.

        Args:
            store: Optional persistence layer, defaults to the PostgreSQL store
            broadcaster: Optional pub/sub, defaults to the WebSocket connection manager
            threshold: Optional market cap threshold in USD, defaults to settings.conf
        """
        self.store = store or TokenStore()
        self.broadcaster = broadcaster or broadcast_manager
        self.threshold = Decimal(threshold if threshold is not None else settings_conf['graduation_threshold_usd'])
        self._locks: Dict[int, asyncio.Lock] = {}

    def _lock_for(self, token_id: int) -> asyncio.Lock:
        return self._locks.setdefault(token_id, asyncio.Lock())

    async def evaluate_graduation(self, token_id: int) -> Optional[LiquidityPool]:
        """Graduate a token if it is ready.

        Args:
            token_id: The token to evaluate

        Returns:
            The new liquidity pool, or None if nothing happened

        Raises:
            TokenNotFoundError: If the token does not exist
            GraduationError: If graduation failed; the token is left ungraduated
        """
        token = await self.store.get_token(token_id)
        if token is None:
            raise TokenNotFoundError(f"Token {token_id} not found")

        if token.graduated:
            return None

        if not token.ready_to_graduate(self.threshold):
            logger.info(f"Token {token.id} not ready to graduate yet. Market cap: ${token.market_cap_usd}")
            return None

        async with self._lock_for(token_id):
            # A failed claim leaves nothing of ours to undo
            try:
                claimed = await self.store.claim_graduation(token_id, datetime.now(timezone.utc))
            except Exception as e:
                logger.error(f"Could not claim token {token.id} for graduation: {e}")
                raise GraduationError(f"Graduation failed for token {token.id}: {e}") from e

            if not claimed:
                logger.info(f"Token {token.id} was graduated by another worker")
                return None

            try:
                logger.info(f"Starting graduation process for token {token.id} ({token.symbol})")

                # Pool creation on-chain is not wired up yet, so the record carries a placeholder address
                pool = await self.store.create_liquidity_pool(
                    token_id=token.id,
                    platform=PoolPlatform.RAYDIUM_CPMM,
                    pool_address=f"PLACEHOLDER_{secrets.token_hex(16)}",
                    reserve_token=Decimal(0),
                    reserve_sol=Decimal(0),
                    tvl=Decimal(0)
                )

                logger.info(f"Token {token.id} graduated successfully. Pool: {pool.pool_address}")

                await self.broadcaster.publish(
                    trades_topic(token.id),
                    {
                        "type": "graduation",
                        "token": {
                            "id": token.id,
                            "name": token.name,
                            "graduated": True,
                            "pool_address": pool.pool_address
                        },
                        "message": f"{token.name} has graduated to Raydium!"
                    }
                )

            except Exception as e:
                logger.error(f"Graduation failed for token {token.id}: {e}")
                logger.error(traceback.format_exc())

                try:
                    await self.store.revert_graduation(token.id)
                except Exception as rollback_error:
                    logger.error(f"Rollback failed for token {token.id}: {rollback_error}")

                raise GraduationError(f"Graduation failed for token {token.id}: {e}") from e

        return pool
