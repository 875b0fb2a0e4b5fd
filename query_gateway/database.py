"""
Database connection setup for progress query execution
"""
import logging
from typing import Any, Dict, Optional

import asyncpg
from sqlalchemy.engine.url import make_url

from .config import Config

logger = logging.getLogger(__name__)

APPLICATION_NAME = "progress-query-tester"


def build_asyncpg_dsn(database_url: str) -> str:
    """
    asyncpg only understands plain postgresql:// URLs, while DATABASE_URL may
    carry a SQLAlchemy driver suffix (postgresql+psycopg2://...).
    """
    url = make_url(database_url)
    if not url.drivername.startswith("postgres"):
        raise ValueError(f"Unsupported database backend: {url.get_backend_name()}")
    return url.set(drivername="postgresql").render_as_string(hide_password=False)


def build_server_settings(statement_timeout_ms: int, lock_timeout_seconds: int) -> Dict[str, str]:
    """Session defaults applied to every pooled connection"""
    return {
        'default_transaction_read_only': 'on',
        'statement_timeout': str(statement_timeout_ms),
        'lock_timeout': str(lock_timeout_seconds * 1000),
        'idle_in_transaction_session_timeout': str(statement_timeout_ms * 2),
        'application_name': APPLICATION_NAME,
    }


async def create_query_pool(database_url: Optional[str] = None) -> asyncpg.Pool:
    """Create the shared connection pool used by the execution gateway"""
    database_url = database_url or Config.get_query_database_url()
    if not database_url:
        raise ValueError("DATABASE_URL environment variable is required")

    statement_timeout_ms = int(Config.QUERY_TIMEOUT_SECONDS * 1000)
    try:
        pool = await asyncpg.create_pool(
            build_asyncpg_dsn(database_url),
            min_size=Config.DB_POOL_MIN_SIZE,
            max_size=Config.DB_POOL_MAX_SIZE,
            command_timeout=Config.QUERY_TIMEOUT_SECONDS * 2,
            server_settings=build_server_settings(statement_timeout_ms,
                                                  Config.DB_LOCK_TIMEOUT_SECONDS),
        )
    except Exception as e:
        logger.error(f"Failed to create query connection pool: {e}")
        raise

    logger.info(f"Created query connection pool (min={Config.DB_POOL_MIN_SIZE}, max={Config.DB_POOL_MAX_SIZE})")
    return pool


def pool_health(pool: Any) -> Dict[str, int]:
    """Connection counts, used to confirm connections come back after a run"""
    size = pool.get_size()
    idle = pool.get_idle_size()
    return {
        "size": size,
        "idle": idle,
        "in_use": size - idle,
        "min_size": pool.get_min_size(),
        "max_size": pool.get_max_size(),
    }
