"""
Generic upsert helper with IS DISTINCT FROM optimization.

This module provides the dialect-aware INSERT ... ON CONFLICT builder shared by
all writers. PostgreSQL is the production target; SQLite supports the same
construct and is used by the test suite.
"""

from typing import Any

from sqlalchemy import or_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection


def dialect_insert(conn: Connection, table: Any) -> Any:
    """
    Return an INSERT construct supporting on_conflict_* for the connection's dialect.

    Args:
        conn: Active database connection
        table: ORM class or Table

    Returns:
        Dialect-specific Insert statement
    """
    if conn.dialect.name == "sqlite":
        return sqlite.insert(table)
    return postgresql.insert(table)


def upsert_with_distinct_check(
    conn: Connection,
    table: Any,
    rows: list[dict[str, Any]],
    conflict_columns: list[str],
    distinct_columns: list[str],
    update_columns: list[str] | None = None,
) -> None:
    """
    Perform upsert with IS DISTINCT FROM optimization.

    Only updates rows where at least one of distinct_columns actually changed,
    preventing unnecessary writes and updated_at churn on re-applied batches.

    Args:
        conn: Active database connection (within transaction)
        table: SQLAlchemy ORM class (e.g., CalendarDay)
        rows: List of row dicts to upsert
        conflict_columns: Columns of the unique constraint used for ON CONFLICT
        distinct_columns: Columns compared NULL-safely to decide whether to update
        update_columns: Columns to update on conflict (default: distinct_columns + updated_at)

    Example:
        >>> with engine.begin() as conn:
        ...     upsert_with_distinct_check(
        ...         conn=conn,
        ...         table=CalendarDay,
        ...         rows=[{"hotel_id": "h1", "room_type_id": "r1", "day": date(2025, 1, 1), ...}],
        ...         conflict_columns=["hotel_id", "room_type_id", "day"],
        ...         distinct_columns=["available", "rate"],
        ...     )
    """
    if not rows:
        return

    if update_columns is None:
        update_columns = [*distinct_columns, "updated_at"]

    stmt = dialect_insert(conn, table).values(rows)

    set_dict = {col: getattr(stmt.excluded, col) for col in update_columns}

    distinct_check = or_(
        *[
            getattr(table, col).is_distinct_from(getattr(stmt.excluded, col))
            for col in distinct_columns
        ]
    )

    stmt = stmt.on_conflict_do_update(
        index_elements=conflict_columns,
        set_=set_dict,
        where=distinct_check,
    )

    conn.execute(stmt)
