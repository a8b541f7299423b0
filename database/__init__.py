"""PostgreSQL access for the Crescendo backend.

One asyncpg pool is shared per process. It is created lazily by ``get_pool``
(or eagerly by ``init_db`` at startup), the schema is brought up to date
before the pool is handed out, and ``close`` releases it on shutdown.
"""

import logging
import ssl
from typing import Optional, Dict, Any
import backoff
import asyncpg
from urllib.parse import urlparse, parse_qs

from config import settings_conf
from .exceptions import DatabaseError, DatabaseSchemaError
from .lib.schema_manager import SchemaManager

logger = logging.getLogger(__name__)

# Errors worth retrying while the server is still coming up
TRANSIENT_ERRORS = (
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.CannotConnectNowError,
    OSError
)

_pool: Optional[asyncpg.Pool] = None

def _ssl_for(db_url: str) -> Optional[ssl.SSLContext]:
    """Return an SSL context when the URL asks for a verified connection."""
    sslmode = parse_qs(urlparse(db_url).query).get('sslmode', ['disable'])[0]
    if sslmode not in ('require', 'verify-ca', 'verify-full'):
        return None

    context = ssl.create_default_context()
    context.check_hostname = sslmode == 'verify-full'
    context.verify_mode = ssl.CERT_NONE if sslmode == 'require' else ssl.CERT_REQUIRED
    return context

def _connect_options(db_url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {
        'server_settings': {
            'application_name': 'crescendo',
            'timezone': 'UTC'
        }
    }
    context = _ssl_for(db_url)
    if context is not None:
        options['ssl'] = context
    return options

@backoff.on_exception(backoff.expo, TRANSIENT_ERRORS, max_tries=5)
async def ensure_database(db_url: str) -> None:
    """Create the target database through the maintenance database if missing."""
    parsed = urlparse(db_url)
    db_name = parsed.path.strip('/')
    if not db_name or db_name == 'postgres':
        return

    admin_url = parsed._replace(path='/postgres').geturl()
    conn = await asyncpg.connect(admin_url, **_connect_options(admin_url))
    try:
        if await conn.fetchval('SELECT 1 FROM pg_database WHERE datname = $1', db_name):
            return
        await conn.execute(f'CREATE DATABASE "{db_name}"')
        logger.info(f"Created database {db_name}")
    finally:
        await conn.close()

@backoff.on_exception(backoff.expo, TRANSIENT_ERRORS, max_tries=5)
async def _open_pool(db_url: str) -> asyncpg.Pool:
    return await asyncpg.create_pool(
        db_url,
        min_size=settings_conf['db_pool_min_size'],
        max_size=settings_conf['db_pool_max_size'],
        command_timeout=30.0,
        **_connect_options(db_url)
    )

async def init_db(db_url: Optional[str] = None) -> asyncpg.Pool:
    """Open the shared pool and apply pending schema versions.

    Args:
        db_url: Overrides ``db_url`` from settings.conf

    Returns:
        The shared pool (an already open pool is returned as is)

    Raises:
        DatabaseSchemaError: If the schema cannot be brought up to date
        DatabaseError: If the database cannot be reached
    """
    global _pool

    if _pool is not None:
        return _pool

    url = db_url or settings_conf['db_url']
    try:
        await ensure_database(url)
        pool = await _open_pool(url)
    except TRANSIENT_ERRORS as e:
        logger.error(f"Could not connect to PostgreSQL: {e}")
        raise DatabaseError(f"Could not connect to PostgreSQL: {e}") from e

    try:
        await SchemaManager(pool).initialize()
    except DatabaseSchemaError:
        await pool.close()
        raise

    _pool = pool
    logger.info("Database pool ready")
    return _pool

async def get_pool() -> asyncpg.Pool:
    """Return the shared pool, opening it on first use."""
    return _pool or await init_db()

async def close() -> None:
    """Close the shared pool if it is open."""
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")

__all__ = [
    'init_db', 'get_pool', 'close', 'ensure_database',
    'DatabaseError', 'DatabaseSchemaError'
]
