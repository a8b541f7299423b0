"""Authentication module resolving callers from JWT bearer tokens.

Tokens are issued by the platform's identity service and signed with the
shared ``jwt_secret``. This module only verifies them:
1. Decode and verify the HS256 signature and expiry
2. Load the user named by the ``sub`` claim
3. Provide FastAPI dependencies for required and optional identities
"""

import logging
import secrets
from typing import Optional
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt
from pydantic import BaseModel
from config import settings_conf
from database import get_pool

# Configure logging
logger = logging.getLogger(__name__)

# Constants
JWT_SECRET = settings_conf.get('jwt_secret') or secrets.token_urlsafe(32)
JWT_ALGORITHM = "HS256"

class AuthError(Exception):
    """Base exception for authentication errors."""
    pass

class SessionExpiredError(AuthError):
    """Raised when a token has expired."""
    pass

class Identity(BaseModel):
    """Public identity of an authenticated caller."""
    id: int
    wallet_address: str

    def public(self) -> dict:
        return {"id": self.id, "wallet_address": self.wallet_address}

class AuthManager:
    """Verifies tokens and loads the users they name."""

    def __init__(self, pool=None, secret: Optional[str] = None):
        """Initialize auth manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
            secret: Optional signing secret, defaults to the configured one
        """
        self.pool = pool
        self.secret = secret or JWT_SECRET

    async def ensure_pool(self):
        """Ensure database pool is available."""
        if not self.pool:
            self.pool = await get_pool()

    async def verify_token(self, token: str) -> Identity:
        """Verify a bearer token and return the caller's identity.

        Args:
            token: The JWT to verify

        Returns:
            The identity of the user named by the token

        Raises:
            SessionExpiredError: If the token has expired
            AuthError: For malformed tokens or unknown users
        """
        try:
            payload = jwt.decode(token, self.secret, algorithms=[JWT_ALGORITHM])
            user_id = int(payload['sub'])
        except jwt.ExpiredSignatureError:
            raise SessionExpiredError("Session has expired")
        except jwt.JWTError as e:
            raise AuthError(f"Invalid token: {str(e)}")
        except (KeyError, TypeError, ValueError):
            raise AuthError("Invalid token: missing or malformed subject")

        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                'SELECT id, wallet_address FROM users WHERE id = $1',
                user_id
            )

        if not row:
            raise AuthError("User not found")

        return Identity(id=row['id'], wallet_address=row['wallet_address'])

    async def identify(self, token: Optional[str]) -> Optional[Identity]:
        """Resolve a token if present, allowing anonymous callers.

        Invalid tokens are logged and treated as anonymous.
        """
        if not token:
            return None
        try:
            return await self.verify_token(token)
        except AuthError as e:
            logger.error(f"Token verification failed: {e}")
            return None

# Create global instance
manager = AuthManager()

# FastAPI security schemes
auth_scheme = HTTPBearer(
    auto_error=True,  # Return 401 automatically if token is missing
    description="JWT Bearer token required"
)
optional_auth_scheme = HTTPBearer(auto_error=False)

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme)
) -> Identity:
    """FastAPI dependency for getting the authenticated user.

    Raises:
        HTTPException: If authentication fails
    """
    try:
        return await manager.verify_token(credentials.credentials)
    except SessionExpiredError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session has expired"
        )
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )

async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_auth_scheme)
) -> Optional[Identity]:
    """FastAPI dependency returning the caller's identity or None."""
    if credentials is None:
        return None
    return await manager.identify(credentials.credentials)

# Export public interface
__all__ = [
    'manager',
    'AuthManager',
    'Identity',
    'get_current_user',
    'get_optional_user',
    'AuthError',
    'SessionExpiredError'
]
