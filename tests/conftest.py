"""Shared fixtures: in-memory stores and a recording broadcaster."""

import asyncio
import copy
import itertools
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest

from auth import Identity
from broadcast import Broadcaster
from livestreams import LivestreamManager, Livestream, LivestreamStatus, StreamMessage
from tokens import ArtistToken, GraduationManager, LiquidityPool

TEST_SETTINGS = {
    'rtmp_host': 'localhost',
    'rtmp_port': 1935,
    'hls_host': 'localhost',
    'hls_port': 8000
}

ARTIST_USER_ID = 1
ARTIST_ID = 10


class CapturingBroadcaster(Broadcaster):
    """Records every publish instead of sending it."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.events: List[Tuple[str, Dict[str, Any]]] = []
        self.topics: Dict[str, Dict[str, None]] = {}

    async def publish(self, topic, payload):
        if self.fail:
            raise RuntimeError("broadcast unavailable")
        self.events.append((topic, payload))

    def subscribe(self, subscriber, topic):
        self.topics.setdefault(topic, {})[subscriber] = None

    def unsubscribe(self, subscriber, topic):
        self.topics.get(topic, {}).pop(subscriber, None)

    def subscribers(self, topic):
        return set(self.topics.get(topic, {}))

    def payloads(self, topic: str) -> List[Dict[str, Any]]:
        return [payload for t, payload in self.events if t == topic]


class FakeLivestreamStore:
    """In-memory stand-in for LivestreamStore."""

    def __init__(self):
        self.livestreams: Dict[int, Livestream] = {}
        self.messages: List[StreamMessage] = []
        self.artists: Dict[int, int] = {ARTIST_ID: ARTIST_USER_ID}
        self.wallets: Dict[int, str] = {}
        self.gate_tokens: Dict[int, Dict[str, str]] = {}
        self._message_ids = itertools.count(1)

    def add_livestream(self, **fields) -> Livestream:
        livestream_id = fields.pop('id', None) or max(self.livestreams, default=0) + 1
        fields.setdefault('artist_id', ARTIST_ID)
        fields.setdefault('title', f"Livestream {livestream_id}")
        livestream = Livestream(id=livestream_id, **fields)
        self.livestreams[livestream_id] = livestream
        return copy.deepcopy(livestream)

    async def create_livestream(self, artist_id, title, stream_key, rtmp_url, hls_url,
                                description=None, start_time=None, token_gate_amount=None):
        return self.add_livestream(
            artist_id=artist_id,
            title=title,
            description=description,
            start_time=start_time,
            token_gate_amount=token_gate_amount,
            stream_key=stream_key,
            rtmp_url=rtmp_url,
            hls_url=hls_url,
            created_at=datetime.now(timezone.utc)
        )

    async def get_livestream(self, livestream_id):
        livestream = self.livestreams.get(livestream_id)
        return copy.deepcopy(livestream) if livestream else None

    async def list_livestreams(self, active=False, upcoming=False, artist_id=None,
                               now=None, offset=0, limit=20):
        matches = [
            stream for stream in self.livestreams.values()
            if (not active or stream.status == LivestreamStatus.LIVE)
            and (not upcoming or (stream.status == LivestreamStatus.SCHEDULED
                                  and stream.start_time is not None and stream.start_time > now))
            and (artist_id is None or stream.artist_id == artist_id)
        ]
        # PostgreSQL sorts NULL start times first when descending
        matches.sort(key=lambda stream: (stream.start_time is None, stream.start_time or now, stream.id), reverse=True)
        return [copy.deepcopy(stream) for stream in matches[offset:offset + limit]], len(matches)

    async def get_livestream_by_stream_key(self, stream_key):
        for livestream in self.livestreams.values():
            if livestream.stream_key == stream_key:
                return copy.deepcopy(livestream)
        return None

    async def mark_live(self, livestream_id, started_at):
        livestream = self.livestreams.get(livestream_id)
        if livestream is None or livestream.is_live:
            return None
        livestream.status = LivestreamStatus.LIVE
        livestream.started_at = started_at
        livestream.ended_at = None
        return copy.deepcopy(livestream)

    async def mark_ended(self, livestream_id, ended_at):
        livestream = self.livestreams.get(livestream_id)
        if livestream is None or not livestream.is_live:
            return None
        livestream.status = LivestreamStatus.ENDED
        livestream.ended_at = ended_at
        livestream.viewer_count = 0
        return copy.deepcopy(livestream)

    async def increment_viewers(self, livestream_id):
        livestream = self.livestreams.get(livestream_id)
        if livestream is None or not livestream.is_live:
            return None
        livestream.viewer_count += 1
        return livestream.viewer_count

    async def decrement_viewers(self, livestream_id):
        livestream = self.livestreams.get(livestream_id)
        if livestream is None or not livestream.is_live:
            return None
        livestream.viewer_count = max(livestream.viewer_count - 1, 0)
        return livestream.viewer_count

    async def create_message(self, livestream_id, user_id, content, sent_at,
                             tip_amount=None, tip_mint=None):
        message = StreamMessage(
            id=next(self._message_ids),
            livestream_id=livestream_id,
            user_id=user_id,
            content=content,
            tip_amount=tip_amount,
            tip_mint=tip_mint,
            sent_at=sent_at,
            wallet_address=self.wallets.get(user_id)
        )
        self.messages.append(message)
        return message

    async def list_messages(self, livestream_id, limit=100):
        messages = [m for m in self.messages if m.livestream_id == livestream_id]
        messages.sort(key=lambda m: (m.sent_at, m.id), reverse=True)
        return messages[:limit]

    async def total_tips(self, livestream_id):
        return sum(
            (m.tip_amount for m in self.messages
             if m.livestream_id == livestream_id and m.tip_amount is not None),
            Decimal(0)
        )

    async def get_artist_id_for_user(self, user_id):
        for artist_id, owner in sorted(self.artists.items()):
            if owner == user_id:
                return artist_id
        return None

    async def get_artist_owner(self, artist_id):
        return self.artists.get(artist_id)

    async def get_gate_token(self, artist_id):
        return self.gate_tokens.get(artist_id)


class FakeTokenStore:
    """In-memory stand-in for TokenStore with the same single-pool guarantee."""

    def __init__(self):
        self.tokens: Dict[int, ArtistToken] = {}
        self.pools: Dict[int, LiquidityPool] = {}
        self.fail_pool_creation = False
        self.reverted: List[int] = []
        self._pool_ids = itertools.count(1)

    def add_token(self, **fields) -> ArtistToken:
        token_id = fields.pop('id', None) or len(self.tokens) + 1
        fields.setdefault('artist_id', ARTIST_ID)
        fields.setdefault('name', f"Token {token_id}")
        fields.setdefault('symbol', f"TK{token_id}")
        fields.setdefault('mint_address', f"Mint{token_id}")
        token = ArtistToken(id=token_id, **fields)
        self.tokens[token_id] = token
        return copy.deepcopy(token)

    async def get_token(self, token_id):
        token = self.tokens.get(token_id)
        return copy.deepcopy(token) if token else None

    async def list_ungraduated_tokens(self):
        return [copy.deepcopy(t) for _, t in sorted(self.tokens.items()) if not t.graduated]

    async def claim_graduation(self, token_id, graduation_date):
        # Let concurrent evaluations interleave here
        await asyncio.sleep(0)
        token = self.tokens.get(token_id)
        if token is None or token.graduated:
            return False
        token.graduated = True
        token.graduation_date = graduation_date
        return True

    async def create_liquidity_pool(self, token_id, platform, pool_address,
                                    reserve_token=Decimal(0), reserve_sol=Decimal(0), tvl=Decimal(0)):
        if self.fail_pool_creation:
            raise RuntimeError("pool insert failed")
        if any(p.artist_token_id == token_id for p in self.pools.values()):
            raise RuntimeError(f"duplicate pool for token {token_id}")
        pool = LiquidityPool(
            id=next(self._pool_ids),
            artist_token_id=token_id,
            platform=platform,
            pool_address=pool_address,
            reserve_token=reserve_token,
            reserve_sol=reserve_sol,
            tvl=tvl,
            created_at=datetime.now(timezone.utc)
        )
        self.pools[pool.id] = pool
        return pool

    async def list_liquidity_pools(self, token_id):
        return [p for p in self.pools.values() if p.artist_token_id == token_id]

    async def revert_graduation(self, token_id):
        self.reverted.append(token_id)
        for pool_id in [i for i, p in self.pools.items() if p.artist_token_id == token_id]:
            del self.pools[pool_id]
        token = self.tokens[token_id]
        token.graduated = False
        token.graduation_date = None


def make_pool(conn):
    """Wrap a mock connection in something shaped like an asyncpg pool."""
    acquire = MagicMock()
    acquire.__aenter__ = AsyncMock(return_value=conn)
    acquire.__aexit__ = AsyncMock(return_value=False)
    pool = MagicMock()
    pool.acquire = MagicMock(return_value=acquire)
    return pool

def make_conn():
    """AsyncMock connection whose transaction() works as an async context manager."""
    conn = AsyncMock()
    transaction = MagicMock()
    transaction.__aenter__ = AsyncMock(return_value=None)
    transaction.__aexit__ = AsyncMock(return_value=False)
    conn.transaction = MagicMock(return_value=transaction)
    return conn


@pytest.fixture
def broadcaster():
    return CapturingBroadcaster()

@pytest.fixture
def failing_broadcaster():
    return CapturingBroadcaster(fail=True)

@pytest.fixture
def livestream_store():
    return FakeLivestreamStore()

@pytest.fixture
def livestream_manager(livestream_store, broadcaster):
    return LivestreamManager(store=livestream_store, broadcaster=broadcaster, settings=TEST_SETTINGS)

@pytest.fixture
def token_store():
    return FakeTokenStore()

@pytest.fixture
def graduation_manager(token_store, broadcaster):
    return GraduationManager(store=token_store, broadcaster=broadcaster, threshold=Decimal("69000"))

@pytest.fixture
def viewer():
    return Identity(id=7, wallet_address="ViewerWallet7")

@pytest.fixture
def artist_user():
    return Identity(id=ARTIST_USER_ID, wallet_address="ArtistWallet1")

@pytest.fixture
def live_stream(livestream_store):
    """Livestream 1, live with 4 viewers."""
    return livestream_store.add_livestream(
        id=1,
        status=LivestreamStatus.LIVE,
        viewer_count=4,
        stream_key="a" * 32,
        rtmp_url="rtmp://localhost:1935/live",
        hls_url=f"http://localhost:8000/live/{'a' * 32}/index.m3u8",
        started_at=datetime.now(timezone.utc) - timedelta(minutes=30)
    )

@pytest.fixture
def scheduled_stream(livestream_store):
    """Livestream 2, scheduled and not yet live."""
    return livestream_store.add_livestream(
        id=2,
        status=LivestreamStatus.SCHEDULED,
        stream_key="b" * 32,
        rtmp_url="rtmp://localhost:1935/live",
        hls_url=f"http://localhost:8000/live/{'b' * 32}/index.m3u8"
    )

@pytest.fixture
def conn():
    """Mock asyncpg connection."""
    return make_conn()

@pytest.fixture
def db_pool(conn):
    """Mock pool handing out the conn fixture."""
    return make_pool(conn)
