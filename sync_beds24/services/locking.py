"""
Per-hotel sync lock shared by bootstrap and delta sync.

Rate push does not take it: pushes never read or move the booking cursor.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import structlog
from sqlalchemy.engine import Engine

from sync_beds24.config import SYNC_LOCK_TTL_SECONDS
from sync_beds24.db.writers.sync_state import acquire_sync_lock, release_sync_lock
from sync_beds24.errors import SyncInProgress
from sync_beds24.models.base import new_uuid
from sync_beds24.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


@contextmanager
def hotel_sync_lock(engine: Engine, hotel_id: str) -> Iterator[str]:
    """
    Hold the hotel's sync lock for the duration of the block.

    A lock older than SYNC_LOCK_TTL_SECONDS is considered abandoned and taken over.

    Args:
        engine (Engine): SQLAlchemy engine.
        hotel_id (str): Local hotel identifier. Its sync_state row must exist.

    Yields:
        str: Lock owner token.

    Raises:
        SyncInProgress: Another run holds a live lock.
    """
    owner = new_uuid()
    with engine.begin() as conn:
        acquired = acquire_sync_lock(conn, hotel_id, owner, utc_now(), SYNC_LOCK_TTL_SECONDS)
    if not acquired:
        logger.warning("sync_lock_busy", hotel_id=hotel_id)
        raise SyncInProgress(hotel_id)

    try:
        yield owner
    finally:
        with engine.begin() as conn:
            release_sync_lock(conn, hotel_id, owner)
