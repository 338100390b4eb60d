"""SQLAlchemy model for remote-to-local identifier mappings."""

import enum

from sqlalchemy import Column, DateTime, String, UniqueConstraint
from sqlalchemy.sql import func

from sync_beds24.config import SCHEMA
from sync_beds24.models.base import Base, BigIntPK
from sync_beds24.utils.datetime import utc_now


class EntityKind(str, enum.Enum):
    """Kinds of Beds24 entities that get a local counterpart."""

    ROOM = "room"
    BOOKING = "booking"
    GUEST = "guest"
    INVOICE = "invoice"
    MESSAGE = "message"
    RATE_OFFER = "rate_offer"


class IdMapping(Base):
    """
    ORM model mapping a Beds24 entity id to a local primary key.

    Rows are inserted the first time a remote entity is imported and are only
    read afterwards. Both directions are unique per (hotel, entity), which is
    what makes every import path an idempotent upsert.
    """

    __tablename__ = "id_map"
    __table_args__ = (
        UniqueConstraint("hotel_id", "entity", "remote_id", name="uq_id_map_remote"),
        UniqueConstraint("hotel_id", "entity", "local_id", name="uq_id_map_local"),
        {"schema": SCHEMA},
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    hotel_id = Column(String(64), nullable=False, index=True)
    entity = Column(String(16), nullable=False)
    remote_id = Column(String(64), nullable=False)
    local_id = Column(String(36), nullable=False)
    created_at = Column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False
    )
