"""Tests for bearer token verification."""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth import AuthManager, AuthError, SessionExpiredError, Identity

SECRET = "test-secret"

def make_token(sub="7", secret=SECRET, expires_in=timedelta(hours=1)):
    claims = {"exp": datetime.now(timezone.utc) + expires_in}
    if sub is not None:
        claims["sub"] = sub
    return jwt.encode(claims, secret, algorithm="HS256")

@pytest.fixture
def auth_manager(conn, db_pool):
    conn.fetchrow.return_value = {"id": 7, "wallet_address": "ViewerWallet7"}
    return AuthManager(pool=db_pool, secret=SECRET)

@pytest.mark.asyncio
async def test_verify_token(auth_manager, conn):
    identity = await auth_manager.verify_token(make_token())

    assert identity == Identity(id=7, wallet_address="ViewerWallet7")
    assert conn.fetchrow.await_args.args[1] == 7

@pytest.mark.asyncio
async def test_expired_token(auth_manager):
    with pytest.raises(SessionExpiredError):
        await auth_manager.verify_token(make_token(expires_in=timedelta(minutes=-5)))

@pytest.mark.asyncio
async def test_wrong_secret(auth_manager):
    with pytest.raises(AuthError, match="Invalid token"):
        await auth_manager.verify_token(make_token(secret="other-secret"))

@pytest.mark.asyncio
async def test_missing_subject(auth_manager):
    with pytest.raises(AuthError, match="subject"):
        await auth_manager.verify_token(make_token(sub=None))

@pytest.mark.asyncio
async def test_unknown_user(auth_manager, conn):
    conn.fetchrow.return_value = None

    with pytest.raises(AuthError, match="User not found"):
        await auth_manager.verify_token(make_token())

@pytest.mark.asyncio
async def test_identify_allows_anonymous(auth_manager):
    assert await auth_manager.identify(None) is None
    assert await auth_manager.identify("") is None
    assert await auth_manager.identify("garbage") is None
    assert (await auth_manager.identify(make_token())).id == 7
