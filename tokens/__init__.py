"""Tokens module for artist tokens.

This module provides functionality for:
- Loading artist tokens and their liquidity pools
- Pricing tokens on the bonding curve
- Graduating tokens to a liquidity pool once their market cap is high enough
"""

from .curve import bonding_curve_price
from .db import TokenStore
from .graduation import GraduationManager, TokenError, TokenNotFoundError, GraduationError
from .models import ArtistToken, LiquidityPool, PoolPlatform

__all__ = [
    'bonding_curve_price',
    'TokenStore',
    'GraduationManager',
    'TokenError',
    'TokenNotFoundError',
    'GraduationError',
    'ArtistToken',
    'LiquidityPool',
    'PoolPlatform'
]
