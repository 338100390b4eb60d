"""
Shared fixtures: an in-memory database per test, canned Beds24 responses and
seeding helpers for connections, sync state and room mappings.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Generator, Optional
from unittest.mock import patch

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["BEDS24_TEST_READ_TOKEN"] = "refresh-read"
os.environ["BEDS24_TEST_WRITE_TOKEN"] = "refresh-write"
os.environ["WEBHOOK_USERNAME"] = "beds24"
os.environ["WEBHOOK_PASSWORD"] = "test-webhook-secret"

import pytest  # noqa: E402
import requests  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402

import sync_beds24.models.audit_log  # noqa: E402,F401
import sync_beds24.models.connections  # noqa: E402,F401
import sync_beds24.models.id_map  # noqa: E402,F401
import sync_beds24.models.pms  # noqa: E402,F401
import sync_beds24.models.rate_push_history  # noqa: E402,F401
import sync_beds24.models.sync_state  # noqa: E402,F401
import sync_beds24.models.webhook_events  # noqa: E402,F401
from sync_beds24.cache import token_cache  # noqa: E402
from sync_beds24.config import BEDS24_BASE_URL  # noqa: E402
from sync_beds24.db.engine import build_engine  # noqa: E402
from sync_beds24.db.readers.connections import (  # noqa: E402
    READ_TOKEN,
    WRITE_TOKEN,
    ConnectionRecord,
    get_connection_by_id,
)
from sync_beds24.db.writers.connections import (  # noqa: E402
    store_access_token,
    upsert_connection,
)
from sync_beds24.db.writers.id_map import insert_mapping  # noqa: E402
from sync_beds24.db.writers.pms import insert_room_type  # noqa: E402
from sync_beds24.db.writers.sync_state import (  # noqa: E402
    complete_bootstrap,
    ensure_sync_state,
)
from sync_beds24.dependencies import get_db_engine  # noqa: E402
from sync_beds24.main import app  # noqa: E402
from sync_beds24.models.base import Base  # noqa: E402
from sync_beds24.models.id_map import EntityKind  # noqa: E402
from sync_beds24.utils.datetime import utc_now  # noqa: E402

READ_SECRET = "BEDS24_TEST_READ_TOKEN"
WRITE_SECRET = "BEDS24_TEST_WRITE_TOKEN"


@pytest.fixture
def db_engine() -> Generator[Engine, None, None]:
    """Fresh in-memory database with every table created."""
    test_engine = build_engine("sqlite://")
    Base.metadata.create_all(test_engine)
    token_cache.clear()

    yield test_engine

    token_cache.clear()
    test_engine.dispose()


def build_response(
    status_code: int = 200,
    payload: Any = None,
    headers: Optional[dict[str, str]] = None,
) -> requests.Response:
    """Real requests.Response carrying a JSON body."""
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(payload).encode() if payload is not None else b""
    response.encoding = "utf-8"
    response.headers.update(headers or {})
    return response


@pytest.fixture
def make_response() -> Callable[..., requests.Response]:
    return build_response


class FakeBeds24:
    """
    Stand-in for requests.request routing by (method, path).

    Each route holds a queue of responses; the last one is repeated once the
    queue is down to a single entry. A response may also be an exception to raise.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Any]] = {}
        self.calls: list[dict[str, Any]] = []

    def add(self, method: str, path: str, *responses: Any) -> None:
        self.routes.setdefault((method, path), []).extend(responses)

    def json(
        self,
        method: str,
        path: str,
        payload: Any,
        status_code: int = 200,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        self.add(method, path, build_response(status_code, payload, headers))

    def calls_to(self, path: str) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["path"] == path]

    def __call__(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        path = url[len(BEDS24_BASE_URL) :]
        self.calls.append({"method": method, "path": path, **kwargs})
        queue = self.routes.get((method, path))
        if not queue:
            raise AssertionError(f"Unexpected Beds24 call: {method} {path}")
        outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def fake_api() -> Generator[FakeBeds24, None, None]:
    """Patch the API client's HTTP layer with a routable fake."""
    fake = FakeBeds24()
    with patch("sync_beds24.network.client.requests.request", side_effect=fake):
        yield fake


@dataclass
class SeededHotel:
    hotel_id: str
    property_id: str
    connection: ConnectionRecord
    room_type_id: Optional[str] = None
    remote_room_id: Optional[str] = None


class Seeder:
    """Writes the rows most tests start from."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def connection(
        self,
        hotel_id: str = "hotel-1",
        property_id: str = "1001",
        with_tokens: bool = True,
        write_secret: Optional[str] = WRITE_SECRET,
        scopes: Optional[list[str]] = None,
    ) -> ConnectionRecord:
        expires_at = utc_now() + timedelta(hours=12)
        with self.engine.begin() as conn:
            connection_id = upsert_connection(
                conn,
                hotel_id=hotel_id,
                property_id=property_id,
                read_secret_name=READ_SECRET,
                write_secret_name=write_secret,
                scopes=scopes,
            )
            if with_tokens:
                store_access_token(conn, connection_id, READ_TOKEN, "read-token", expires_at)
                if write_secret:
                    store_access_token(
                        conn, connection_id, WRITE_TOKEN, "write-token", expires_at
                    )
            record = get_connection_by_id(conn, connection_id)
        assert record is not None
        return record

    def state(
        self,
        hotel_id: str = "hotel-1",
        property_id: str = "1001",
        bootstrapped: bool = True,
        cursor: Optional[datetime] = None,
    ) -> None:
        with self.engine.begin() as conn:
            ensure_sync_state(conn, hotel_id, property_id)
            if bootstrapped:
                completed_at = utc_now()
                complete_bootstrap(
                    conn,
                    hotel_id,
                    completed_at,
                    bookings_cursor=cursor or completed_at - timedelta(hours=1),
                )

    def room(self, hotel_id: str = "hotel-1", remote_room_id: str = "501") -> str:
        with self.engine.begin() as conn:
            local_id = insert_room_type(conn, hotel_id, {"name": f"Room {remote_room_id}"})
            insert_mapping(conn, hotel_id, EntityKind.ROOM, remote_room_id, local_id)
        return local_id

    def hotel(
        self,
        hotel_id: str = "hotel-1",
        property_id: str = "1001",
        bootstrapped: bool = True,
        cursor: Optional[datetime] = None,
        with_room: bool = True,
    ) -> SeededHotel:
        connection = self.connection(hotel_id, property_id)
        self.state(hotel_id, property_id, bootstrapped=bootstrapped, cursor=cursor)
        seeded = SeededHotel(hotel_id=hotel_id, property_id=property_id, connection=connection)
        if with_room:
            seeded.remote_room_id = "501"
            seeded.room_type_id = self.room(hotel_id, "501")
        return seeded


@pytest.fixture
def seed(db_engine: Engine) -> Seeder:
    return Seeder(db_engine)


@pytest.fixture
def credit_headers() -> dict[str, str]:
    return {
        "X-FiveMinCreditLimit-Remaining": "900",
        "X-FiveMinCreditLimit-ResetsIn": "120",
        "X-RequestCost": "1",
    }


@pytest.fixture
def client(db_engine: Engine) -> Generator[TestClient, None, None]:
    """TestClient whose routes use the in-memory database."""
    app.dependency_overrides[get_db_engine] = lambda: db_engine
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-Admin-Key": "test-admin-key"}
