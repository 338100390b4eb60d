"""Registration and disabling of Beds24 connections."""

from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy.engine import Engine

from sync_beds24.cache import token_cache
from sync_beds24.db.readers.connections import (
    READ_TOKEN,
    WRITE_TOKEN,
    ConnectionRecord,
    get_connection_by_id,
    list_connections,
)
from sync_beds24.db.writers.connections import disable_connection, upsert_connection
from sync_beds24.errors import ConnectionNotFound
from sync_beds24.models.audit_log import AUDIT_ERROR, AUDIT_SUCCESS
from sync_beds24.network.auth import refresh_access_token
from sync_beds24.services.audit import log_audit

logger = structlog.get_logger(__name__)


def setup_connection(
    engine: Engine,
    hotel_id: str,
    property_id: str,
    read_secret_name: str,
    write_secret_name: Optional[str] = None,
    scopes: Optional[list[str]] = None,
    org_id: Optional[str] = None,
    verify: bool = True,
) -> ConnectionRecord:
    """
    Register (or re-activate) the Beds24 connection of a hotel.

    With verify, the refresh tokens are exchanged once so a bad secret is caught
    at setup time rather than on the first sync.

    Args:
        engine (Engine): SQLAlchemy engine.
        hotel_id (str): Local hotel identifier.
        property_id (str): Beds24 property id.
        read_secret_name (str): Secret holding the read refresh token.
        write_secret_name (Optional[str]): Secret holding the write refresh token.
        scopes (Optional[list[str]]): Scopes granted to the refresh tokens.
        org_id (Optional[str]): Owning organization.
        verify (bool): Exchange the refresh tokens before returning.

    Returns:
        ConnectionRecord: The stored connection.

    Raises:
        AuthError: Verification failed; the connection is saved with status error.
    """
    with engine.begin() as conn:
        connection_id = upsert_connection(
            conn,
            hotel_id=hotel_id,
            property_id=property_id,
            read_secret_name=read_secret_name,
            write_secret_name=write_secret_name,
            scopes=scopes,
            org_id=org_id,
        )
        connection = get_connection_by_id(conn, connection_id)
    assert connection is not None
    token_cache.invalidate(connection_id)

    if verify:
        try:
            refresh_access_token(engine, connection, READ_TOKEN)
            if write_secret_name:
                refresh_access_token(engine, connection, WRITE_TOKEN)
        except Exception as e:
            log_audit(
                engine,
                "connection_setup",
                AUDIT_ERROR,
                hotel_id=hotel_id,
                entity_type="connection",
                error=e,
                metadata={"property_id": property_id},
            )
            raise
        with engine.connect() as conn:
            connection = get_connection_by_id(conn, connection_id) or connection

    log_audit(
        engine,
        "connection_setup",
        AUDIT_SUCCESS,
        hotel_id=hotel_id,
        entity_type="connection",
        metadata={"property_id": property_id, "verified": verify},
    )
    logger.info("connection_registered", hotel_id=hotel_id, property_id=property_id)
    return connection


def remove_connection(engine: Engine, hotel_id: str, property_id: str) -> None:
    """
    Disable a connection. The row is kept for the audit trail.

    Raises:
        ConnectionNotFound: No connection for the pair.
    """
    with engine.begin() as conn:
        existing = [
            c
            for c in list_connections(conn, hotel_id=hotel_id, include_disabled=True)
            if c.property_id == property_id
        ]
        if not existing or not disable_connection(conn, hotel_id, property_id):
            raise ConnectionNotFound(hotel_id, property_id)
    for connection in existing:
        token_cache.invalidate(connection.id)

    log_audit(
        engine,
        "connection_disable",
        AUDIT_SUCCESS,
        hotel_id=hotel_id,
        entity_type="connection",
        metadata={"property_id": property_id},
    )
    logger.info("connection_disabled", hotel_id=hotel_id, property_id=property_id)
