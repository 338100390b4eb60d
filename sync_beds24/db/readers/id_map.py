from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Connection

from sync_beds24.models.id_map import EntityKind, IdMapping
from sync_beds24.models.pms import Booking, Guest, RoomType

# Local table backing each entity kind, where the sync core owns one
LOCAL_TABLES = {
    EntityKind.ROOM: RoomType,
    EntityKind.BOOKING: Booking,
    EntityKind.GUEST: Guest,
}


def resolve_local_id(
    conn: Connection, hotel_id: str, entity: EntityKind, remote_id: str
) -> Optional[str]:
    """
    Look up the local id mapped to a Beds24 id.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        hotel_id (str): Local hotel identifier.
        entity (EntityKind): Entity kind.
        remote_id (str): Beds24 identifier.

    Returns:
        Optional[str]: Local primary key, or None if the remote entity was never imported.
    """
    return conn.execute(
        select(IdMapping.local_id).where(
            IdMapping.hotel_id == hotel_id,
            IdMapping.entity == entity.value,
            IdMapping.remote_id == str(remote_id),
        )
    ).scalar_one_or_none()


def resolve_remote_id(
    conn: Connection, hotel_id: str, entity: EntityKind, local_id: str
) -> Optional[str]:
    """Look up the Beds24 id mapped to a local record."""
    return conn.execute(
        select(IdMapping.remote_id).where(
            IdMapping.hotel_id == hotel_id,
            IdMapping.entity == entity.value,
            IdMapping.local_id == local_id,
        )
    ).scalar_one_or_none()


def count_mappings(conn: Connection, hotel_id: str, entity: EntityKind) -> int:
    return int(
        conn.execute(
            select(func.count(IdMapping.id)).where(
                IdMapping.hotel_id == hotel_id, IdMapping.entity == entity.value
            )
        ).scalar_one()
    )


def find_orphaned_mappings(conn: Connection, hotel_id: Optional[str] = None) -> list[int]:
    """
    Find mappings whose local record no longer exists.

    Only entity kinds with a local table owned by the sync core are checked.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        hotel_id (Optional[str]): Limit to one hotel.

    Returns:
        list[int]: Mapping row ids.
    """
    orphaned: list[int] = []
    for entity, model in LOCAL_TABLES.items():
        stmt = (
            select(IdMapping.id)
            .outerjoin(model, model.id == IdMapping.local_id)
            .where(IdMapping.entity == entity.value, model.id.is_(None))
        )
        if hotel_id is not None:
            stmt = stmt.where(IdMapping.hotel_id == hotel_id)
        orphaned.extend(conn.execute(stmt).scalars().all())
    return orphaned


def list_mappings(conn: Connection, hotel_id: str, entity: EntityKind) -> dict[str, str]:
    """All mappings of one kind for a hotel, as {remote_id: local_id}."""
    rows = conn.execute(
        select(IdMapping.remote_id, IdMapping.local_id).where(
            IdMapping.hotel_id == hotel_id, IdMapping.entity == entity.value
        )
    ).fetchall()
    return {row.remote_id: row.local_id for row in rows}
