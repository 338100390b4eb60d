from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from sync_beds24.models.connections import CONNECTION_DISABLED, Beds24Connection
from sync_beds24.utils.datetime import ensure_utc

READ_TOKEN = "read"
WRITE_TOKEN = "write"


@dataclass(frozen=True)
class ConnectionRecord:
    """Immutable snapshot of a connection row handed to the vault and the API client."""

    id: str
    hotel_id: str
    property_id: str
    read_secret_name: str
    write_secret_name: Optional[str] = None
    org_id: Optional[str] = None
    scopes: list[str] = field(default_factory=list)
    access_token_cache: Optional[str] = None
    access_expires_at: Optional[datetime] = None
    write_access_token_cache: Optional[str] = None
    write_access_expires_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    status: str = "active"
    last_error: Optional[str] = None

    def cached_token(self, token_type: str) -> tuple[Optional[str], Optional[datetime]]:
        """Return the (token, expiry) pair cached for the given token type."""
        if token_type == WRITE_TOKEN:
            return self.write_access_token_cache, self.write_access_expires_at
        return self.access_token_cache, self.access_expires_at

    def secret_name(self, token_type: str) -> str:
        """Secret holding the refresh token; write falls back to the read secret."""
        if token_type == WRITE_TOKEN and self.write_secret_name:
            return self.write_secret_name
        return self.read_secret_name


def _to_record(row: Any) -> ConnectionRecord:
    return ConnectionRecord(
        id=row.id,
        hotel_id=row.hotel_id,
        property_id=row.property_id,
        read_secret_name=row.read_secret_name,
        write_secret_name=row.write_secret_name,
        org_id=row.org_id,
        scopes=list(row.scopes or []),
        access_token_cache=row.access_token_cache,
        access_expires_at=ensure_utc(row.access_expires_at),
        write_access_token_cache=row.write_access_token_cache,
        write_access_expires_at=ensure_utc(row.write_access_expires_at),
        last_used_at=ensure_utc(row.last_used_at),
        status=row.status,
        last_error=row.last_error,
    )


def get_connection_by_id(conn: Connection, connection_id: str) -> Optional[ConnectionRecord]:
    """
    Fetch a connection by primary key.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        connection_id (str): Connection UUID.

    Returns:
        Optional[ConnectionRecord]: The connection, or None if not found.
    """
    row = conn.execute(
        select(Beds24Connection.__table__).where(Beds24Connection.id == connection_id)
    ).fetchone()
    return _to_record(row) if row else None


def get_active_connection(
    conn: Connection, hotel_id: str, property_id: Optional[str] = None
) -> Optional[ConnectionRecord]:
    """
    Fetch the non-disabled connection for a hotel (optionally a specific property).

    Connections in ``error`` status are still returned so a refresh can be
    attempted; only disabled connections are excluded.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        hotel_id (str): Local hotel identifier.
        property_id (Optional[str]): Beds24 property id.

    Returns:
        Optional[ConnectionRecord]: Matching connection or None.
    """
    stmt = select(Beds24Connection.__table__).where(
        Beds24Connection.hotel_id == hotel_id,
        Beds24Connection.status != CONNECTION_DISABLED,
    )
    if property_id is not None:
        stmt = stmt.where(Beds24Connection.property_id == property_id)
    row = conn.execute(stmt.order_by(Beds24Connection.created_at)).fetchone()
    return _to_record(row) if row else None


def find_connection_by_property(conn: Connection, property_id: str) -> Optional[ConnectionRecord]:
    """Non-disabled connection for a Beds24 property, whichever hotel owns it."""
    row = conn.execute(
        select(Beds24Connection.__table__)
        .where(
            Beds24Connection.property_id == str(property_id),
            Beds24Connection.status != CONNECTION_DISABLED,
        )
        .order_by(Beds24Connection.created_at)
    ).fetchone()
    return _to_record(row) if row else None


def list_connections(
    conn: Connection, hotel_id: Optional[str] = None, include_disabled: bool = False
) -> list[ConnectionRecord]:
    """List connections, optionally for one hotel."""
    stmt = select(Beds24Connection.__table__)
    if hotel_id is not None:
        stmt = stmt.where(Beds24Connection.hotel_id == hotel_id)
    if not include_disabled:
        stmt = stmt.where(Beds24Connection.status != CONNECTION_DISABLED)
    rows = conn.execute(stmt.order_by(Beds24Connection.hotel_id)).fetchall()
    return [_to_record(row) for row in rows]
