# crm_dashboard/db.py
"""
Database Connection Management

Version: 1.0.0
Features:
- Singleton pattern with thread-safe double-checked locking
- Connection pooling with auto-reconnect
- Health check utilities
- Read-only query helpers (the engine never writes)
"""

import pandas as pd
from sqlalchemy import create_engine, text
from sqlalchemy.pool import QueuePool
from sqlalchemy.exc import OperationalError
from urllib.parse import quote_plus
import logging
import threading
from typing import Tuple, Optional, Dict

from .config import config

logger = logging.getLogger(__name__)

# ==================== SINGLETON ENGINE ====================

_engine = None
_engine_lock = threading.Lock()


def get_db_engine():
    """
    Get SQLAlchemy database engine (singleton pattern)

    Thread-safe implementation using double-checked locking.
    Reuses the same engine across all calls to prevent
    connection pool exhaustion.

    Returns:
        SQLAlchemy Engine instance
    """
    global _engine

    if _engine is None:
        with _engine_lock:
            if _engine is None:
                _engine = _create_engine()

    return _engine


def _create_engine():
    """Create new database engine with configured settings"""
    db_config = config.get_db_config()
    app_config = config.app_config

    # Build connection URL
    driver = db_config["driver"]
    user = db_config["user"]
    password = quote_plus(str(db_config["password"]))
    host = db_config["host"]
    port = db_config["port"]
    database = db_config["database"]

    url = f"{driver}://{user}:{password}@{host}:{port}/{database}"

    logger.info(f"🔌 Creating database engine: {driver}://{user}:***@{host}:{port}/{database}")

    # Pool settings
    pool_size = app_config.get("DB_POOL_SIZE", 5)
    pool_recycle = app_config.get("DB_POOL_RECYCLE", 3600)

    engine = create_engine(
        url,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=pool_recycle,
        pool_pre_ping=True,  # Auto-reconnect on stale connections
        echo=False
    )

    logger.info(f"✅ Database engine created (pool_size={pool_size}, recycle={pool_recycle}s)")

    return engine


# ==================== CONNECTION MANAGEMENT ====================

def check_db_connection(engine=None) -> Tuple[bool, Optional[str]]:
    """
    Check if database connection is healthy

    Returns:
        Tuple of (is_connected: bool, error_message: str or None)
    """
    try:
        engine = engine or get_db_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True, None
    except OperationalError as e:
        error_msg = "Cannot connect to database. Please check your network/VPN connection."
        logger.error(f"❌ Database connection failed: {e}")
        return False, error_msg
    except Exception as e:
        error_msg = f"Database error: {str(e)}"
        logger.error(f"❌ Database error: {e}")
        return False, error_msg


def reset_db_engine():
    """
    Reset the database engine (force new connection)

    Call this after persistent connection errors or
    when you need to reconnect with different settings.
    """
    global _engine

    with _engine_lock:
        if _engine is not None:
            try:
                _engine.dispose()
                logger.info("🔄 Database engine disposed")
            except Exception as e:
                logger.error(f"Error disposing engine: {e}")
            _engine = None

    logger.info("🔄 Database engine reset - will reconnect on next query")


# ==================== QUERY HELPERS ====================

def execute_query_df(query, params: Dict = None, engine=None) -> pd.DataFrame:
    """
    Execute SELECT query and return results as DataFrame

    Runs through the connection directly so driver errors surface as the
    original SQLAlchemy exception.

    Args:
        query: SQL string or SQLAlchemy TextClause
        params: Query parameters
        engine: Optional engine (defaults to the singleton)

    Returns:
        pandas DataFrame (columns kept even when no rows match)
    """
    engine = engine or get_db_engine()
    statement = text(query) if isinstance(query, str) else query

    with engine.connect() as conn:
        result = conn.execute(statement, params or {})
        columns = list(result.keys())
        return pd.DataFrame.from_records(result.fetchall(), columns=columns, coerce_float=True)


# ==================== EXPORTS ====================

__all__ = [
    'get_db_engine',
    'check_db_connection',
    'reset_db_engine',
    'execute_query_df',
]
