"""Database module for managing connections to PostgreSQL.

This module handles:
- Database connection pool initialization
- Schema management
- Connection lifecycle
"""

import logging
import ssl
from typing import Optional, Dict, Any
import backoff
import asyncpg
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse

from .exceptions import DatabaseError, DatabaseSchemaError
from .lib.schema_manager import SchemaManager

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.Pool] = None
_schema_manager: Optional[SchemaManager] = None

# sslmode values that require an encrypted connection
SSL_MODES = {'require', 'verify-ca', 'verify-full'}

def _get_ssl_context() -> ssl.SSLContext:
    """Create SSL context for managed PostgreSQL connections."""
    ssl_context = ssl.create_default_context()
    ssl_context.verify_mode = ssl.CERT_REQUIRED
    ssl_context.check_hostname = True
    return ssl_context

def _split_url(db_url: str) -> tuple:
    """Split the sslmode parameter out of a database URL.

    Args:
        db_url: Database connection URL

    Returns:
        Tuple of (url without sslmode, connection kwargs)
    """
    parsed = urlparse(db_url)
    params = parse_qs(parsed.query)
    sslmode = params.pop('sslmode', [''])[0]

    kwargs: Dict[str, Any] = {
        'server_settings': {
            'statement_timeout': '60000',  # 1 minute
        }
    }
    if sslmode in SSL_MODES:
        kwargs['ssl'] = _get_ssl_context()

    query = urlencode({key: values[0] for key, values in params.items()})
    return urlunparse(parsed._replace(query=query)), kwargs

@backoff.on_exception(
    backoff.expo,
    (asyncpg.exceptions.PostgresConnectionError, asyncpg.exceptions.CannotConnectNowError, OSError),
    max_tries=5
)
async def init_db(db_url: Optional[str] = None, force_recreate: bool = False) -> None:
    """Initialize the database connection pool and schema.

    Args:
        db_url: Optional database URL. If not provided, will use settings.
        force_recreate: If True, drop and recreate all tables

    Raises:
        ValueError: If database URL is not provided
        DatabaseSchemaError: If schema initialization fails
    """
    global _pool, _schema_manager

    try:
        # Import here to avoid loading settings when only the pool is injected
        from config import get_settings

        url = db_url or get_settings().get('db_url')
        if not url:
            raise ValueError("Database URL not provided")

        dsn, conn_kwargs = _split_url(url)

        _pool = await asyncpg.create_pool(
            dsn,
            min_size=2,
            max_size=20,
            max_inactive_connection_lifetime=300.0,  # 5 minutes
            command_timeout=60.0,
            **conn_kwargs
        )

        _schema_manager = SchemaManager(_pool)
        await _schema_manager.initialize(force_recreate=force_recreate)

    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

async def get_pool() -> asyncpg.Pool:
    """Get the database connection pool.

    Returns:
        The connection pool

    Raises:
        RuntimeError: If pool hasn't been initialized
    """
    if not _pool:
        await init_db()
    if not _pool:
        raise RuntimeError("Failed to initialize database pool")
    return _pool

async def close() -> None:
    """Close the database connection pool."""
    global _pool, _schema_manager

    if _pool:
        await _pool.close()
        _pool = None
        _schema_manager = None

# Export public interface
__all__ = ['init_db', 'get_pool', 'close', 'DatabaseError', 'DatabaseSchemaError']
