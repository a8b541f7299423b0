from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel


class LivestreamStatus(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    ENDED = "ended"
    CANCELLED = "cancelled"


class Livestream(BaseModel):
    id: int
    artist_id: int
    title: str
    description: Optional[str] = None
    status: LivestreamStatus = LivestreamStatus.SCHEDULED
    viewer_count: int = 0
    token_gate_amount: Optional[Decimal] = None
    stream_key: Optional[str] = None
    rtmp_url: Optional[str] = None
    hls_url: Optional[str] = None
    start_time: Optional[datetime] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def is_live(self) -> bool:
        return self.status == LivestreamStatus.LIVE

    @property
    def is_token_gated(self) -> bool:
        return self.token_gate_amount is not None and self.token_gate_amount > 0

    def stream_duration(self, now: Optional[datetime] = None) -> Optional[int]:
        """Minutes between start and end (or now while still live)."""
        if not self.started_at:
            return None
        end_time = self.ended_at or now or datetime.now(timezone.utc)
        return round((end_time - self.started_at).total_seconds() / 60)

    def summary(self) -> dict:
        return {
            "id": self.id,
            "artist_id": self.artist_id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "viewer_count": self.viewer_count,
            "token_gate_amount": str(self.token_gate_amount) if self.token_gate_amount is not None else None,
            "is_token_gated": self.is_token_gated,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "hls_url": self.hls_url if self.is_live else None
        }


class StreamMessage(BaseModel):
    """Chat or tip message sent during a livestream. Never edited."""
    id: int
    livestream_id: int
    user_id: int
    content: str = ""
    tip_amount: Optional[Decimal] = None
    tip_mint: Optional[str] = None
    sent_at: datetime
    wallet_address: Optional[str] = None

    @property
    def is_tip(self) -> bool:
        return self.tip_amount is not None

    def to_json(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "tip_amount": str(self.tip_amount) if self.tip_amount is not None else None,
            "tip_mint": self.tip_mint,
            "sent_at": self.sent_at.isoformat(),
            "user": {
                "id": self.user_id,
                "wallet_address": self.wallet_address
            }
        }
