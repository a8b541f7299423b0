"""Livestreams module for managing live broadcasts.

This module provides functionality for:
- Creating livestreams and their RTMP/HLS credentials
- Starting and ending broadcasts
- Tracking viewers that join and leave a broadcast
- Relaying chat messages and tips to every viewer
"""

import logging
import secrets
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from auth import Identity
from broadcast import Broadcaster, livestream_topic, manager as broadcast_manager
from config import settings_conf
from .db import LivestreamStore
from .models import Livestream, LivestreamStatus, StreamMessage

logger = logging.getLogger(__name__)


class LivestreamError(Exception):
    """Base exception for livestream operations."""
    pass

class LivestreamNotFoundError(LivestreamError):
    """Raised when a livestream is not found."""
    pass

class LivestreamRejectedError(LivestreamError):
    """Raised when joining a livestream that is not live."""
    pass

class LivestreamForbiddenError(LivestreamError):
    """Raised when a user manages a livestream they do not own."""
    pass

class LivestreamAuthRequiredError(LivestreamError):
    """Raised when an anonymous viewer opens a token-gated livestream."""
    pass

class InsufficientTokensError(LivestreamForbiddenError):
    """Raised when a viewer holds fewer artist tokens than the gate requires."""
    def __init__(self, required: Decimal, balance: Decimal, token: Dict[str, Any]):
        super().__init__("Insufficient tokens for access")
        self.required = required
        self.balance = balance
        self.token = token


def _now() -> datetime:
    return datetime.now(timezone.utc)


class LivestreamManager:
    """Manager class for livestream sessions and their realtime events."""

    def __init__(
        self,
        store: Optional[LivestreamStore] = None,
        broadcaster: Optional[Broadcaster] = None,
        settings: Optional[Dict[str, Any]] = None
    ):
        """Initialize the livestream manager.

        Args:
            store: Optional persistence layer, defaults to the PostgreSQL store
            broadcaster: Optional pub/sub, defaults to the WebSocket connection manager
            settings: Optional settings dict, defaults to settings.conf
        """
        self.store = store or LivestreamStore()
        self.broadcaster = broadcaster or broadcast_manager
        self.settings = settings or settings_conf

    async def create_livestream(
        self,
        artist_id: int,
        title: str,
        description: Optional[str] = None,
        start_time: Optional[datetime] = None,
        token_gate_amount: Optional[Decimal] = None
    ) -> Livestream:
        """Create a scheduled livestream with fresh ingest credentials.

        Raises:
            LivestreamError: If the title is blank or the token gate is negative
        """
        if not title or not title.strip():
            raise LivestreamError("Title is required")
        if token_gate_amount is not None and token_gate_amount < 0:
            raise LivestreamError("Token gate amount must be greater than or equal to 0")

        stream_key = secrets.token_hex(16)
        rtmp_url = f"rtmp://{self.settings['rtmp_host']}:{self.settings['rtmp_port']}/live"
        hls_url = (
            f"http://{self.settings['hls_host']}:{self.settings['hls_port']}"
            f"/live/{stream_key}/index.m3u8"
        )

        livestream = await self.store.create_livestream(
            artist_id=artist_id,
            title=title.strip(),
            description=description,
            start_time=start_time,
            token_gate_amount=token_gate_amount,
            stream_key=stream_key,
            rtmp_url=rtmp_url,
            hls_url=hls_url
        )
        logger.info(f"Created livestream {livestream.id} for artist {artist_id}")
        return livestream

    async def get_livestream(self, livestream_id: int) -> Livestream:
        """Get a livestream by ID.

        Raises:
            LivestreamNotFoundError: If no such livestream exists
        """
        livestream = await self.store.get_livestream(livestream_id)
        if livestream is None:
            raise LivestreamNotFoundError(f"Livestream {livestream_id} not found")
        return livestream

    async def list_livestreams(
        self,
        active: bool = False,
        upcoming: bool = False,
        artist_id: Optional[int] = None,
        page: int = 1,
        per_page: int = 20
    ) -> Tuple[List[Livestream], int]:
        """Get one page of livestreams, latest start time first.

        Args:
            active: Only livestreams that are live now
            upcoming: Only scheduled livestreams starting in the future
            artist_id: Only livestreams of this artist
            page: 1-based page number
            per_page: Page size, capped at 100

        Returns:
            The page and the total number of matching livestreams
        """
        page = max(page, 1)
        per_page = min(max(per_page, 1), 100)
        return await self.store.list_livestreams(
            active=active,
            upcoming=upcoming,
            artist_id=artist_id,
            now=_now(),
            offset=(page - 1) * per_page,
            limit=per_page
        )

    async def token_balance(self, user: Identity, token: Dict[str, Any]) -> Decimal:
        """Artist token balance of a user's wallet.

        On-chain balances are not read yet, so every wallet holds nothing.
        """
        return Decimal(0)

    async def check_access(self, livestream: Livestream, user: Optional[Identity]) -> None:
        """Enforce the token gate of a livestream.

        The owning artist always has access, and so does everyone when the
        artist has no token to gate with.

        Raises:
            LivestreamAuthRequiredError: If the stream is gated and the viewer is anonymous
            InsufficientTokensError: If the viewer holds fewer tokens than the gate
        """
        if not livestream.is_token_gated:
            return

        if user is None:
            raise LivestreamAuthRequiredError("Authentication required for token-gated stream")

        if await self.store.get_artist_owner(livestream.artist_id) == user.id:
            return

        token = await self.store.get_gate_token(livestream.artist_id)
        if token is None:
            return

        balance = await self.token_balance(user, token)
        if balance < livestream.token_gate_amount:
            logger.info(f"User {user.id} denied livestream {livestream.id}: {balance} < {livestream.token_gate_amount}")
            raise InsufficientTokensError(livestream.token_gate_amount, balance, token)

    async def artist_id_for(self, user: Identity) -> int:
        """Get the artist profile a user manages livestreams as.

        Raises:
            LivestreamForbiddenError: If the user has no artist profile
        """
        artist_id = await self.store.get_artist_id_for_user(user.id)
        if artist_id is None:
            raise LivestreamForbiddenError("Only artists can create livestreams")
        return artist_id

    async def authorize_artist(self, livestream_id: int, user: Identity) -> Livestream:
        """Get a livestream the user owns.

        Raises:
            LivestreamNotFoundError: If no such livestream exists
            LivestreamForbiddenError: If the user is not the livestream's artist
        """
        livestream = await self.get_livestream(livestream_id)
        if await self.store.get_artist_owner(livestream.artist_id) != user.id:
            raise LivestreamForbiddenError("Only the artist can manage their livestream")
        return livestream

    async def start_livestream(self, livestream_id: int) -> Livestream:
        """Go live.

        Raises:
            LivestreamNotFoundError: If no such livestream exists
            LivestreamError: If it is already live
        """
        await self.get_livestream(livestream_id)

        livestream = await self.store.mark_live(livestream_id, _now())
        if livestream is None:
            raise LivestreamError("Livestream already live")

        await self.broadcaster.publish(
            livestream_topic(livestream_id),
            {
                "type": "stream_started",
                "livestream_id": livestream_id,
                "started_at": livestream.started_at.isoformat()
            }
        )
        logger.info(f"Stream started: {livestream.title} ({livestream_id})")
        return livestream

    async def end_livestream(self, livestream_id: int) -> Dict[str, Any]:
        """End a live broadcast and reset its viewer count.

        Returns:
            Dict with the ended livestream and its stats

        Raises:
            LivestreamNotFoundError: If no such livestream exists
            LivestreamError: If it is not live
        """
        before = await self.get_livestream(livestream_id)
        if not before.is_live:
            raise LivestreamError("Livestream is not live")

        livestream = await self.store.mark_ended(livestream_id, _now())
        if livestream is None:
            raise LivestreamError("Livestream is not live")

        await self.broadcaster.publish(
            livestream_topic(livestream_id),
            {
                "type": "stream_ended",
                "livestream_id": livestream_id,
                "ended_at": livestream.ended_at.isoformat()
            }
        )
        logger.info(f"Stream ended: {livestream.title} ({livestream_id})")

        return {
            "livestream": livestream,
            "stats": {
                "duration": livestream.stream_duration(),
                "peak_viewers": before.viewer_count,
                "total_tips": await self.store.total_tips(livestream_id)
            }
        }

    async def validate_stream_key(self, stream_key: str) -> Dict[str, Any]:
        """Check an RTMP ingest key. Streams may ingest while scheduled or live."""
        livestream = await self.store.get_livestream_by_stream_key(stream_key)

        if livestream is None:
            return {"valid": False, "error": "Invalid stream key"}

        if livestream.status not in (LivestreamStatus.SCHEDULED, LivestreamStatus.LIVE):
            return {"valid": False, "error": "Stream is not active"}

        return {
            "valid": True,
            "livestream_id": livestream.id,
            "artist_id": livestream.artist_id,
            "title": livestream.title
        }

    async def list_messages(self, livestream_id: int, limit: int = 100) -> List[StreamMessage]:
        """Recent chat and tip messages, newest first."""
        await self.get_livestream(livestream_id)
        return await self.store.list_messages(livestream_id, limit=limit)

    async def join(
        self,
        livestream_id: int,
        subscriber: str,
        user: Optional[Identity] = None
    ) -> int:
        """Add a viewer connection to a live broadcast.

        Args:
            livestream_id: The livestream to join
            subscriber: Connection id registered with the broadcaster
            user: Caller identity, None for anonymous viewers

        Returns:
            The new viewer count

        Raises:
            LivestreamNotFoundError: If no such livestream exists
            LivestreamRejectedError: If the livestream is not live
        """
        livestream = await self.get_livestream(livestream_id)
        if not livestream.is_live:
            raise LivestreamRejectedError(f"Livestream {livestream_id} is not live")

        count = await self.store.increment_viewers(livestream_id)
        if count is None:
            # Ended between the read and the update
            raise LivestreamRejectedError(f"Livestream {livestream_id} is not live")

        topic = livestream_topic(livestream_id)
        self.broadcaster.subscribe(subscriber, topic)
        await self.broadcaster.publish(topic, {"type": "viewer_count", "count": count})

        logger.info(f"User {user.id if user else None} joined livestream {livestream_id}")
        return count

    async def leave(
        self,
        livestream_id: int,
        subscriber: str,
        user: Optional[Identity] = None
    ) -> Optional[int]:
        """Remove a viewer connection. Safe to call more than once.

        Returns:
            The new viewer count, or None if the livestream no longer exists
        """
        topic = livestream_topic(livestream_id)
        self.broadcaster.unsubscribe(subscriber, topic)

        livestream = await self.store.get_livestream(livestream_id)
        if livestream is None:
            logger.info(f"User {user.id if user else None} left missing livestream {livestream_id}")
            return None

        count = await self.store.decrement_viewers(livestream_id)
        if count is None:
            count = livestream.viewer_count

        await self.broadcaster.publish(topic, {"type": "viewer_count", "count": count})

        logger.info(f"User {user.id if user else None} left livestream {livestream_id}")
        return count

    async def send_chat(
        self,
        livestream_id: Optional[int],
        user: Optional[Identity],
        text: Optional[str]
    ) -> Optional[StreamMessage]:
        """Persist a chat message and relay it to every viewer.

        Anonymous callers, unknown livestreams and blank text are ignored.
        """
        content = (text or "").strip()
        if user is None or livestream_id is None or not content:
            logger.debug(f"Ignoring chat message for livestream {livestream_id}")
            return None

        if await self.store.get_livestream(livestream_id) is None:
            logger.debug(f"Ignoring chat message for missing livestream {livestream_id}")
            return None

        message = await self.store.create_message(
            livestream_id=livestream_id,
            user_id=user.id,
            content=content,
            sent_at=_now()
        )

        await self.broadcaster.publish(
            livestream_topic(livestream_id),
            {
                "type": "chat_message",
                "message": {
                    "id": message.id,
                    "user": user.public(),
                    "content": message.content,
                    "sent_at": message.sent_at.isoformat()
                }
            }
        )
        return message

    async def send_tip(
        self,
        livestream_id: Optional[int],
        user: Optional[Identity],
        amount: Any,
        mint: Optional[str],
        signature: Optional[str]
    ) -> Optional[StreamMessage]:
        """Record a tip as a chat message and relay it to every viewer.

        The payment signature is required but not checked against the ledger.
        Calls missing the user, livestream, amount or signature are ignored.
        """
        if user is None or livestream_id is None or amount is None or not signature:
            logger.debug(f"Ignoring incomplete tip for livestream {livestream_id}")
            return None

        try:
            tip_amount = Decimal(str(amount))
        except InvalidOperation:
            logger.debug(f"Ignoring tip with invalid amount {amount!r}")
            return None

        if not tip_amount.is_finite() or tip_amount <= 0:
            logger.debug(f"Ignoring tip with non-positive amount {amount!r}")
            return None

        if await self.store.get_livestream(livestream_id) is None:
            logger.debug(f"Ignoring tip for missing livestream {livestream_id}")
            return None

        logger.info(f"Accepting unverified tip {signature} on livestream {livestream_id}")

        content = f"Tipped {tip_amount} {mint}" if mint else f"Tipped {tip_amount}"
        message = await self.store.create_message(
            livestream_id=livestream_id,
            user_id=user.id,
            content=content,
            sent_at=_now(),
            tip_amount=tip_amount,
            tip_mint=mint
        )

        await self.broadcaster.publish(
            livestream_topic(livestream_id),
            {
                "type": "tip",
                "message": {
                    "id": message.id,
                    "user": user.public(),
                    "amount": str(tip_amount),
                    "mint": mint,
                    "sent_at": message.sent_at.isoformat()
                }
            }
        )
        return message


__all__ = [
    'LivestreamManager',
    'LivestreamStore',
    'Livestream',
    'LivestreamStatus',
    'StreamMessage',
    'LivestreamError',
    'LivestreamNotFoundError',
    'LivestreamRejectedError',
    'LivestreamForbiddenError',
    'LivestreamAuthRequiredError',
    'InsufficientTokensError'
]
