"""
Credential vault adapter for Beds24 connections.

Business logic only ever sees a "current access token". Refresh tokens live in
the deployment's secret store; a connection row holds only the secret *names*.
"""

import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import requests
import structlog
from pydantic import ValidationError
from sqlalchemy.engine import Engine

from sync_beds24.cache import token_cache
from sync_beds24.config import BEDS24_BASE_URL, BEDS24_REQUEST_TIMEOUT, TOKEN_SAFETY_MARGIN_SECONDS
from sync_beds24.db.readers.connections import READ_TOKEN, ConnectionRecord
from sync_beds24.db.writers.connections import (
    mark_connection_error,
    store_access_token,
    touch_last_used,
)
from sync_beds24.errors import AuthError, AuthTransientError, CredentialExpiredError
from sync_beds24.metrics import (
    api_latency,
    api_requests,
    token_cache_hits,
    token_cache_misses,
    token_refreshes,
)
from sync_beds24.schemas.beds24 import TokenPayload
from sync_beds24.utils.datetime import utc_now

logger = structlog.get_logger(__name__)
TOKEN_PATH = "/authentication/token"


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_at: datetime


def resolve_secret(secret_name: str) -> Optional[str]:
    """
    Look up a refresh token by secret name.

    Secrets are injected into the process environment by the deployment's
    secret store; nothing else in the service reads them.

    Args:
        secret_name (str): Name of the secret.

    Returns:
        Optional[str]: Secret value, or None when it is not provisioned.
    """
    value = os.getenv(secret_name)
    return value or None


def request_access_token(refresh_token: str) -> AccessToken:
    """
    Exchange a Beds24 refresh token for an access token.

    Args:
        refresh_token (str): Long-lived refresh token.

    Returns:
        AccessToken: Bearer token and its absolute expiry.

    Raises:
        CredentialExpiredError: Beds24 rejected the refresh token (400/401/403).
        AuthTransientError: Timeout, connection failure, 429 or 5xx.
    """
    url = f"{BEDS24_BASE_URL}{TOKEN_PATH}"
    started = utc_now()

    try:
        response = requests.get(
            url,
            headers={"refreshToken": refresh_token, "accept": "application/json"},
            timeout=BEDS24_REQUEST_TIMEOUT,
        )
    except requests.Timeout as e:
        api_requests.labels(operation="token_refresh", status_code="timeout").inc()
        raise AuthTransientError(f"Token refresh timed out: {e}") from e
    except requests.RequestException as e:
        api_requests.labels(operation="token_refresh", status_code="connection_error").inc()
        raise AuthTransientError(f"Token refresh failed: {e}") from e

    api_requests.labels(operation="token_refresh", status_code=str(response.status_code)).inc()
    api_latency.labels(operation="token_refresh").observe(
        (utc_now() - started).total_seconds()
    )

    if response.status_code in (400, 401, 403):
        raise CredentialExpiredError(
            f"Refresh token rejected by Beds24 (HTTP {response.status_code})",
            status_code=response.status_code,
        )
    if response.status_code == 429 or response.status_code >= 500:
        raise AuthTransientError(
            f"Token endpoint unavailable (HTTP {response.status_code})",
            status_code=response.status_code,
        )
    if response.status_code >= 300:
        raise CredentialExpiredError(
            f"Unexpected token endpoint response (HTTP {response.status_code})",
            status_code=response.status_code,
        )

    try:
        payload = TokenPayload.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        raise AuthTransientError(f"Malformed token response: {e}") from e

    return AccessToken(
        token=payload.token,
        expires_at=started + timedelta(seconds=payload.expires_in),
    )


def refresh_access_token(
    engine: Engine, connection: ConnectionRecord, token_type: str = READ_TOKEN
) -> AccessToken:
    """
    Mint, persist and cache a new access token for the connection.

    Concurrent refreshes for the same connection are harmless: each stores a
    valid token and the later expiry wins.

    Args:
        engine (Engine): SQLAlchemy engine.
        connection (ConnectionRecord): Connection to refresh.
        token_type (str): "read" or "write".

    Returns:
        AccessToken: The new token.

    Raises:
        AuthError: Refresh failed; the connection is marked ``error``.
    """
    token_cache.invalidate(connection.id, token_type)
    secret_name = connection.secret_name(token_type)

    try:
        refresh_token = resolve_secret(secret_name)
        if not refresh_token:
            raise CredentialExpiredError(
                f"Refresh token secret '{secret_name}' is not provisioned",
                secret_name=secret_name,
            )
        access = request_access_token(refresh_token)
    except AuthError as e:
        token_refreshes.labels(hotel_id=connection.hotel_id, status="failure").inc()
        with engine.begin() as conn:
            mark_connection_error(conn, connection.id, f"{e.category}: {e.message}")
        logger.error(
            "token_refresh_failed",
            hotel_id=connection.hotel_id,
            connection_id=connection.id,
            token_type=token_type,
            category=e.category,
            error=e.message,
        )
        raise

    with engine.begin() as conn:
        store_access_token(conn, connection.id, token_type, access.token, access.expires_at)

    token_cache.set(connection.id, token_type, access.token, access.expires_at)
    token_refreshes.labels(hotel_id=connection.hotel_id, status="success").inc()

    logger.info(
        "token_refreshed",
        hotel_id=connection.hotel_id,
        connection_id=connection.id,
        token_type=token_type,
        expires_at=access.expires_at.isoformat(),
    )
    return access


def resolve_access_token(
    engine: Engine, connection: ConnectionRecord, token_type: str = READ_TOKEN
) -> tuple[str, bool]:
    """
    Get an access token valid for at least the safety margin.

    Checks the in-process cache first, then the token cached on the connection
    row, and refreshes when neither is valid for TOKEN_SAFETY_MARGIN_SECONDS.

    Args:
        engine (Engine): SQLAlchemy engine.
        connection (ConnectionRecord): Connection snapshot.
        token_type (str): "read" or "write".

    Returns:
        tuple[str, bool]: Bearer token and whether it was refreshed just now.
    """
    refreshed = False
    cached = token_cache.get(
        connection.id, token_type, margin_seconds=TOKEN_SAFETY_MARGIN_SECONDS
    )
    if cached:
        token_cache_hits.inc()
        logger.debug("token_cache_hit", connection_id=connection.id, token_type=token_type)
        token = cached
    else:
        token_cache_misses.inc()
        stored_token, expires_at = connection.cached_token(token_type)
        margin = timedelta(seconds=TOKEN_SAFETY_MARGIN_SECONDS)
        if stored_token and expires_at and utc_now() < expires_at - margin:
            token_cache.set(connection.id, token_type, stored_token, expires_at)
            token = stored_token
        else:
            logger.debug(
                "token_expiring_refreshing",
                connection_id=connection.id,
                token_type=token_type,
                expires_at=expires_at.isoformat() if expires_at else None,
            )
            token = refresh_access_token(engine, connection, token_type).token
            refreshed = True

    with engine.begin() as conn:
        touch_last_used(conn, connection.id)
    return token, refreshed


def get_access_token(
    engine: Engine, connection: ConnectionRecord, token_type: str = READ_TOKEN
) -> str:
    """Bearer token valid for at least the safety margin, refreshed if needed."""
    token, _ = resolve_access_token(engine, connection, token_type)
    return token
