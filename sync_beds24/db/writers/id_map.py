from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.engine import Connection

from sync_beds24.db.writers._upsert import dialect_insert
from sync_beds24.models.id_map import EntityKind, IdMapping
from sync_beds24.utils.datetime import utc_now


def insert_mapping(
    conn: Connection, hotel_id: str, entity: EntityKind, remote_id: str, local_id: str
) -> str:
    """
    Insert a mapping unless one already exists for the remote id.

    Mappings are insert-only. If another writer mapped the same remote id first,
    its local id wins and is returned so the caller can reconcile.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        hotel_id (str): Local hotel identifier.
        entity (EntityKind): Entity kind.
        remote_id (str): Beds24 identifier.
        local_id (str): Local primary key.

    Returns:
        str: The local id now mapped to remote_id.
    """
    stmt = (
        dialect_insert(conn, IdMapping)
        .values(
            hotel_id=hotel_id,
            entity=entity.value,
            remote_id=str(remote_id),
            local_id=local_id,
            created_at=utc_now(),
        )
        .on_conflict_do_nothing(index_elements=["hotel_id", "entity", "remote_id"])
    )
    conn.execute(stmt)

    winner: Optional[str] = conn.execute(
        select(IdMapping.local_id).where(
            IdMapping.hotel_id == hotel_id,
            IdMapping.entity == entity.value,
            IdMapping.remote_id == str(remote_id),
        )
    ).scalar_one_or_none()
    return winner or local_id


def delete_mappings(conn: Connection, mapping_ids: list[int]) -> int:
    """Remove mapping rows by id (integrity repair only). Returns rows deleted."""
    if not mapping_ids:
        return 0
    result = conn.execute(delete(IdMapping).where(IdMapping.id.in_(mapping_ids)))
    return result.rowcount or 0
