"""Bonding curve pricing for tokens that have not graduated yet.

price = BASE_PRICE * (1 + supply / CURVE_SCALE) ** 2

A sell is priced at the supply left after the tokens are returned.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

BASE_PRICE = Decimal('0.0001')
CURVE_SCALE = Decimal(1_000_000_000)
PRICE_PRECISION = Decimal('0.00000001')

Number = Union[Decimal, int, float, str]


def bonding_curve_price(supply: Number, side: str = 'buy', amount: Number = 0) -> Decimal:
    """Price of one token at the given supply, rounded to 8 decimal places.

    Raises:
        ValueError: If side is neither 'buy' nor 'sell'
    """
    if side not in ('buy', 'sell'):
        raise ValueError(f"Invalid trade side: {side}")

    effective_supply = Decimal(str(supply))
    if side == 'sell':
        effective_supply -= Decimal(str(amount))

    price = BASE_PRICE * (1 + effective_supply / CURVE_SCALE) ** 2
    return price.quantize(PRICE_PRECISION, rounding=ROUND_HALF_UP)
