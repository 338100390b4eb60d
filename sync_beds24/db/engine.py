"""
SQLAlchemy engine singleton with production-ready connection pooling.

This module creates a single engine instance with connection pooling configured
for high-load production environments. SQLite URLs (local development and the
test suite) get a single shared connection with the sync schema attached, so
schema-qualified tables resolve the same way they do on PostgreSQL.
"""

from typing import Any

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from sync_beds24.config import DATABASE_URL, SCHEMA

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set.")


def _attach_sqlite_schema(dbapi_connection: Any, _connection_record: Any) -> None:
    dbapi_connection.execute(f"ATTACH DATABASE ':memory:' AS {SCHEMA}")


def build_engine(url: str) -> Engine:
    """
    Create an engine for the given database URL.

    Args:
        url: SQLAlchemy database URL

    Returns:
        Engine: Pooled PostgreSQL engine, or a single-connection SQLite engine

    Example:
        >>> test_engine = build_engine("sqlite://")
        >>> Base.metadata.create_all(test_engine)
    """
    if url.startswith("sqlite"):
        sqlite_engine = create_engine(
            url,
            future=True,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        event.listen(sqlite_engine, "connect", _attach_sqlite_schema)
        return sqlite_engine

    return create_engine(
        url,
        future=True,
        # Connection pool settings
        pool_size=10,  # Number of connections to maintain in the pool
        max_overflow=20,  # Additional connections when pool is exhausted
        pool_pre_ping=True,  # Verify connections before using (detect stale connections)
        pool_recycle=3600,  # Recycle connections after 1 hour
        echo=False,
    )


engine: Engine = build_engine(DATABASE_URL)


def check_engine_health(target: Engine | None = None) -> bool:
    """
    Check if database engine is healthy and connections are working.

    This function is used by the /ready endpoint to verify database
    connectivity before allowing traffic to the service.

    Args:
        target: Engine to check (defaults to the module singleton)

    Returns:
        bool: True if database is reachable and healthy, False otherwise
    """
    try:
        with (target or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
