"""
FastAPI dependency injection providers.

This module contains dependency providers for FastAPI routes, enabling better
testability through dependency injection and following FastAPI best practices.

Dependencies can be overridden in tests using app.dependency_overrides, making
it easy to point routes at an in-memory database.
"""

from __future__ import annotations

from typing import Generator, Optional

from fastapi import Request
from sqlalchemy.engine import Engine

from sync_beds24.db.engine import engine


def get_db_engine() -> Generator[Engine, None, None]:
    """
    Provide database engine for dependency injection.

    Yields:
        Engine: SQLAlchemy database engine

    Example:
        >>> from fastapi import Depends
        >>> from sync_beds24.dependencies import get_db_engine
        >>>
        >>> @router.post("/bootstrap")
        >>> def bootstrap(
        ...     payload: BootstrapRequest,
        ...     engine: Engine = Depends(get_db_engine),
        ... ):
        ...     return bootstrap_property(engine, payload.hotel_id, payload.property_id)

    Testing Example:
        >>> test_engine = build_engine("sqlite://")
        >>> Base.metadata.create_all(test_engine)
        >>> app.dependency_overrides[get_db_engine] = lambda: test_engine
    """
    yield engine


def get_request_id(request: Request) -> Optional[str]:
    """Request ID assigned by RequestIDMiddleware, used as the operation trace id."""
    return getattr(request.state, "request_id", None)
