from typing import Any

from sqlalchemy import insert
from sqlalchemy.engine import Connection

from sync_beds24.models.audit_log import AuditLogEntry
from sync_beds24.utils.datetime import utc_now


def insert_audit_entry(conn: Connection, entry: dict[str, Any]) -> None:
    """
    Append one row to the audit log. Rows are never updated afterwards.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        entry (dict): Column values; ``metadata`` holds the redacted JSON details.
    """
    values = dict(entry)
    values["metadata"] = values.get("metadata") or {}
    values.setdefault("provider", "beds24")
    values.setdefault("created_at", utc_now())
    conn.execute(insert(AuditLogEntry.__table__).values(**values))
