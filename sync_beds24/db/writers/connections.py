from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import and_, or_, select, update
from sqlalchemy.engine import Connection

from sync_beds24.db.readers.connections import WRITE_TOKEN
from sync_beds24.db.writers._upsert import dialect_insert
from sync_beds24.models.connections import (
    CONNECTION_ACTIVE,
    CONNECTION_DISABLED,
    CONNECTION_ERROR,
    Beds24Connection,
)
from sync_beds24.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


def upsert_connection(
    conn: Connection,
    hotel_id: str,
    property_id: str,
    read_secret_name: str,
    write_secret_name: Optional[str] = None,
    scopes: Optional[list[str]] = None,
    org_id: Optional[str] = None,
) -> str:
    """
    Create or re-activate the connection for a (hotel, property) pair.

    Re-activating replaces the secret references and clears cached access tokens,
    since they were minted from the previous refresh token.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        hotel_id (str): Local hotel identifier.
        property_id (str): Beds24 property id.
        read_secret_name (str): Vault secret name of the read refresh token.
        write_secret_name (Optional[str]): Vault secret name of the write refresh token.
        scopes (Optional[list[str]]): Scopes granted to the refresh tokens.
        org_id (Optional[str]): Owning organization for row-level access control.

    Returns:
        str: The connection id.
    """
    now = utc_now()
    stmt = dialect_insert(conn, Beds24Connection).values(
        hotel_id=hotel_id,
        property_id=property_id,
        org_id=org_id,
        read_secret_name=read_secret_name,
        write_secret_name=write_secret_name,
        scopes=scopes or [],
        status=CONNECTION_ACTIVE,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["hotel_id", "property_id"],
        set_={
            "org_id": stmt.excluded.org_id,
            "read_secret_name": stmt.excluded.read_secret_name,
            "write_secret_name": stmt.excluded.write_secret_name,
            "scopes": stmt.excluded.scopes,
            "status": CONNECTION_ACTIVE,
            "last_error": None,
            "access_token_cache": None,
            "access_expires_at": None,
            "write_access_token_cache": None,
            "write_access_expires_at": None,
            "updated_at": now,
        },
    )
    conn.execute(stmt)

    return str(
        conn.execute(
            select(Beds24Connection.id).where(
                Beds24Connection.hotel_id == hotel_id,
                Beds24Connection.property_id == property_id,
            )
        ).scalar_one()
    )


def store_access_token(
    conn: Connection,
    connection_id: str,
    token_type: str,
    token: str,
    expires_at: datetime,
) -> None:
    """
    Persist a freshly minted access token and mark the connection active.

    The expiry only moves forward, so of two concurrent refreshes the one
    with the later expiry wins and neither fails.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        connection_id (str): Connection UUID.
        token_type (str): "read" or "write".
        token (str): Access token.
        expires_at (datetime): Token expiry.
    """
    if token_type == WRITE_TOKEN:
        token_col, expiry_col = "write_access_token_cache", "write_access_expires_at"
    else:
        token_col, expiry_col = "access_token_cache", "access_expires_at"

    expiry = getattr(Beds24Connection, expiry_col)
    conn.execute(
        update(Beds24Connection)
        .where(
            Beds24Connection.id == connection_id,
            or_(expiry.is_(None), expiry <= expires_at),
        )
        .values(
            {
                token_col: token,
                expiry_col: expires_at,
                "status": CONNECTION_ACTIVE,
                "last_error": None,
                "updated_at": utc_now(),
            }
        )
    )


def mark_connection_error(conn: Connection, connection_id: str, message: str) -> None:
    """Set status=error with the failure reason. Disabled connections stay disabled."""
    conn.execute(
        update(Beds24Connection)
        .where(
            Beds24Connection.id == connection_id,
            Beds24Connection.status != CONNECTION_DISABLED,
        )
        .values(status=CONNECTION_ERROR, last_error=message[:2000], updated_at=utc_now())
    )
    logger.warning("connection_marked_error", connection_id=connection_id, reason=message)


def touch_last_used(conn: Connection, connection_id: str) -> None:
    conn.execute(
        update(Beds24Connection)
        .where(Beds24Connection.id == connection_id)
        .values(last_used_at=utc_now())
    )


def clear_token_caches(conn: Connection, hotel_id: Optional[str] = None) -> int:
    """
    Drop cached access tokens so the next call refreshes from the vault.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        hotel_id (Optional[str]): Limit to one hotel; all connections when None.

    Returns:
        int: Number of connections reset.
    """
    stmt = update(Beds24Connection).where(Beds24Connection.status != CONNECTION_DISABLED)
    if hotel_id is not None:
        stmt = stmt.where(Beds24Connection.hotel_id == hotel_id)
    result = conn.execute(
        stmt.values(
            access_token_cache=None,
            access_expires_at=None,
            write_access_token_cache=None,
            write_access_expires_at=None,
            updated_at=utc_now(),
        )
    )
    return result.rowcount or 0


def clear_expired_token_caches(
    conn: Connection, now: datetime, hotel_id: Optional[str] = None
) -> int:
    """Null out cached tokens whose expiry has passed. Returns rows touched."""
    expired = or_(
        and_(
            Beds24Connection.access_token_cache.is_not(None),
            Beds24Connection.access_expires_at < now,
        ),
        and_(
            Beds24Connection.write_access_token_cache.is_not(None),
            Beds24Connection.write_access_expires_at < now,
        ),
    )
    stmt = update(Beds24Connection).where(expired)
    if hotel_id is not None:
        stmt = stmt.where(Beds24Connection.hotel_id == hotel_id)
    result = conn.execute(
        stmt.values(
            access_token_cache=None,
            access_expires_at=None,
            write_access_token_cache=None,
            write_access_expires_at=None,
            updated_at=utc_now(),
        )
    )
    return result.rowcount or 0


def disable_connection(conn: Connection, hotel_id: str, property_id: str) -> bool:
    """
    Disable a connection (connections are never deleted).

    Returns:
        bool: True if a connection was found and disabled.
    """
    result = conn.execute(
        update(Beds24Connection)
        .where(
            Beds24Connection.hotel_id == hotel_id,
            Beds24Connection.property_id == property_id,
        )
        .values(
            status=CONNECTION_DISABLED,
            access_token_cache=None,
            access_expires_at=None,
            write_access_token_cache=None,
            write_access_expires_at=None,
            updated_at=utc_now(),
        )
    )
    return bool(result.rowcount)
