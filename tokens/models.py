from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel


class PoolPlatform(str, Enum):
    IN_HOUSE = "in_house"
    RAYDIUM_CPMM = "raydium_cpmm"
    RAYDIUM_CLMM = "raydium_clmm"


class ArtistToken(BaseModel):
    id: int
    artist_id: int
    name: str
    symbol: str
    mint_address: str
    bonding_curve_address: Optional[str] = None
    supply: Optional[Decimal] = None
    price_usd: Optional[Decimal] = None
    market_cap: Optional[Decimal] = None
    graduated: bool = False
    graduation_date: Optional[datetime] = None

    @property
    def market_cap_usd(self) -> Optional[Decimal]:
        if self.supply is None or self.price_usd is None:
            return None
        return self.supply * self.price_usd

    def ready_to_graduate(self, threshold: Decimal) -> bool:
        if self.graduated:
            return False
        market_cap = self.market_cap_usd
        return market_cap is not None and market_cap >= threshold

    def to_json(self) -> dict:
        market_cap = self.market_cap_usd
        return {
            "id": self.id,
            "artist_id": self.artist_id,
            "name": self.name,
            "symbol": self.symbol,
            "mint_address": self.mint_address,
            "bonding_curve_address": self.bonding_curve_address,
            "supply": str(self.supply) if self.supply is not None else None,
            "price_usd": str(self.price_usd) if self.price_usd is not None else None,
            "market_cap_usd": str(market_cap) if market_cap is not None else None,
            "graduated": self.graduated,
            "graduation_date": self.graduation_date.isoformat() if self.graduation_date else None
        }


class LiquidityPool(BaseModel):
    id: int
    artist_token_id: int
    platform: PoolPlatform = PoolPlatform.IN_HOUSE
    pool_address: str
    reserve_token: Decimal = Decimal(0)
    reserve_sol: Decimal = Decimal(0)
    tvl: Decimal = Decimal(0)
    volume_24h: Decimal = Decimal(0)
    created_at: Optional[datetime] = None

    @property
    def price(self) -> Decimal:
        if self.reserve_token == 0:
            return Decimal(0)
        return self.reserve_sol / self.reserve_token

    def to_json(self) -> dict:
        return {
            "id": self.id,
            "platform": self.platform.value,
            "pool_address": self.pool_address,
            "reserve_token": str(self.reserve_token),
            "reserve_sol": str(self.reserve_sol),
            "tvl": str(self.tvl),
            "price": str(self.price)
        }
