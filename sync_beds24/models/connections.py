"""SQLAlchemy model for Beds24 property connections."""

from sqlalchemy import Column, DateTime, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from sync_beds24.config import SCHEMA
from sync_beds24.models.base import Base, JSONType, new_uuid
from sync_beds24.utils.datetime import utc_now

CONNECTION_ACTIVE = "active"
CONNECTION_ERROR = "error"
CONNECTION_DISABLED = "disabled"


class Beds24Connection(Base):
    """
    ORM model for a hotel's link to one Beds24 property.

    Refresh tokens are never stored here. The row only names the secrets
    (read and optional write) that the vault resolves at refresh time, plus
    the short-lived access tokens obtained from them. Connections are disabled,
    never deleted.
    """

    __tablename__ = "connections"
    __table_args__ = (
        UniqueConstraint("hotel_id", "property_id", name="uq_connections_hotel_property"),
        {"schema": SCHEMA},
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    org_id = Column(String(64), nullable=True, index=True)
    hotel_id = Column(String(64), nullable=False, index=True)
    property_id = Column(String(32), nullable=False)
    scopes = Column(JSONType, nullable=False, default=list)
    read_secret_name = Column(String(255), nullable=False)
    write_secret_name = Column(String(255), nullable=True)
    access_token_cache = Column(Text, nullable=True)
    access_expires_at = Column(DateTime(timezone=True), nullable=True)
    write_access_token_cache = Column(Text, nullable=True)
    write_access_expires_at = Column(DateTime(timezone=True), nullable=True)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(16), nullable=False, default=CONNECTION_ACTIVE)
    last_error = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
        nullable=False,
    )
