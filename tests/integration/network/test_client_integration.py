"""
Integration tests for Beds24 API calls: token handling, audit rows and pagination.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Callable
from unittest.mock import Mock, patch

import pytest
import requests
from sqlalchemy.engine import Engine

from sync_beds24.db.readers.audit_log import list_audit_entries
from sync_beds24.db.readers.connections import READ_TOKEN, get_connection_by_id
from sync_beds24.db.writers.connections import store_access_token
from sync_beds24.errors import CredentialExpiredError, RetryableError, TransientError
from sync_beds24.models.connections import CONNECTION_ERROR
from sync_beds24.network.client import call, fetch_all_pages
from sync_beds24.utils.datetime import utc_now


def _audit(engine: Engine) -> list[Any]:
    with engine.connect() as conn:
        return list_audit_entries(conn, since=utc_now() - timedelta(hours=1))


@pytest.mark.integration
def test_call_records_credit_in_audit_log(
    db_engine: Engine, seed: Any, fake_api: Any, credit_headers: dict[str, str]
) -> None:
    """Test that a successful call is audited with its cost and remaining credit."""
    connection = seed.connection()
    payload = {"success": True, "data": [{"id": 1}]}
    fake_api.json("GET", "/bookings", payload, headers=credit_headers)

    response = call(db_engine, connection, "GET", "/bookings", operation="get_bookings")

    assert response.items == [{"id": 1}]
    assert response.credit.remaining == 900
    assert fake_api.calls[0]["headers"]["token"] == "read-token"

    entries = _audit(db_engine)
    assert len(entries) == 1
    entry = entries[0]
    assert entry.operation == "api:get_bookings"
    assert entry.status == "success"
    assert entry.request_cost == 1
    assert entry.limit_remaining == 900
    assert entry.limit_resets_in == 120
    assert entry.records_processed == 1


@pytest.mark.integration
def test_call_server_error_is_audited_and_raised(
    db_engine: Engine, seed: Any, fake_api: Any
) -> None:
    """Test that a 5xx is raised as retryable and leaves an error audit row."""
    connection = seed.connection()
    fake_api.json("GET", "/bookings", {"error": "boom"}, status_code=502)

    with pytest.raises(RetryableError):
        call(db_engine, connection, "GET", "/bookings", operation="get_bookings")

    entries = _audit(db_engine)
    assert [e.status for e in entries] == ["error"]
    assert entries[0].error_category == "server"


@pytest.mark.integration
def test_call_timeout_is_transient(db_engine: Engine, seed: Any, fake_api: Any) -> None:
    """Test that a timeout surfaces as TransientError."""
    connection = seed.connection()
    fake_api.add("GET", "/bookings", requests.Timeout("timed out"))

    with pytest.raises(TransientError):
        call(db_engine, connection, "GET", "/bookings")

    assert _audit(db_engine)[0].error_category == "network"


@pytest.mark.integration
@patch("sync_beds24.network.auth.requests.get")
def test_call_refreshes_once_on_401(
    mock_get: Mock,
    db_engine: Engine,
    seed: Any,
    fake_api: Any,
    make_response: Callable[..., requests.Response],
) -> None:
    """Test that a 401 triggers one token refresh and one retry with the new token."""
    connection = seed.connection()
    mock_get.return_value = make_response(200, {"token": "refreshed", "expiresIn": 86400})
    fake_api.json("GET", "/properties", {"error": "unauthorized"}, status_code=401)
    fake_api.json("GET", "/properties", {"data": [{"id": 1001}]})

    response = call(db_engine, connection, "GET", "/properties")

    assert response.items == [{"id": 1001}]
    assert mock_get.call_count == 1
    assert [c["headers"]["token"] for c in fake_api.calls] == ["read-token", "refreshed"]


@pytest.mark.integration
@patch("sync_beds24.network.auth.requests.get")
def test_call_second_401_expires_credential(
    mock_get: Mock,
    db_engine: Engine,
    seed: Any,
    fake_api: Any,
    make_response: Callable[..., requests.Response],
) -> None:
    """Test that a refreshed token rejected again marks the connection as errored."""
    connection = seed.connection()
    mock_get.return_value = make_response(200, {"token": "refreshed", "expiresIn": 86400})
    fake_api.json("GET", "/properties", {"error": "unauthorized"}, status_code=401)

    with pytest.raises(CredentialExpiredError):
        call(db_engine, connection, "GET", "/properties")

    assert mock_get.call_count == 1
    assert len(fake_api.calls) == 2
    with db_engine.connect() as conn:
        stored = get_connection_by_id(conn, connection.id)
    assert stored is not None
    assert stored.status == CONNECTION_ERROR


@pytest.mark.integration
def test_fetch_all_pages_follows_next_page(
    db_engine: Engine, seed: Any, fake_api: Any
) -> None:
    """Test that pages are requested sequentially until nextPageExists is false."""
    connection = seed.connection()
    fake_api.json(
        "GET", "/bookings", {"data": [{"id": 1}, {"id": 2}], "pages": {"nextPageExists": True}}
    )
    fake_api.json("GET", "/bookings", {"data": [{"id": 3}], "pages": {"nextPageExists": False}})

    items, _ = fetch_all_pages(db_engine, connection, "/bookings", params={"propertyId": "1001"})

    assert [item["id"] for item in items] == [1, 2, 3]
    assert [c["params"]["page"] for c in fake_api.calls] == [1, 2]
    assert all(c["params"]["propertyId"] == "1001" for c in fake_api.calls)


@pytest.mark.integration
@patch("sync_beds24.network.auth.requests.get")
def test_call_refreshes_at_most_once(
    mock_get: Mock,
    db_engine: Engine,
    seed: Any,
    fake_api: Any,
    make_response: Callable[..., requests.Response],
) -> None:
    """Test that a token refreshed before sending is not refreshed again on a 401."""
    connection = seed.connection(with_tokens=False)
    with db_engine.begin() as conn:
        store_access_token(
            conn, connection.id, READ_TOKEN, "nearly-expired", utc_now() + timedelta(seconds=30)
        )
        current = get_connection_by_id(conn, connection.id)
    assert current is not None
    mock_get.return_value = make_response(200, {"token": "refreshed", "expiresIn": 86400})
    fake_api.json("GET", "/bookings", {"error": "unauthorized"}, status_code=401)
    fake_api.json("GET", "/bookings", {"data": []})

    with pytest.raises(CredentialExpiredError):
        call(db_engine, current, "GET", "/bookings")

    assert mock_get.call_count == 1
    assert [c["headers"]["token"] for c in fake_api.calls] == ["refreshed"]
