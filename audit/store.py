"""
audit/store.py -- Append-only SQLAlchemy Core store for the audit trail.

Pattern: Repository + Data Mapper, same shape as auth/store.py. The store
exposes append and read operations only; nothing in this service updates or
deletes audit rows (retention is handled outside the service).

The store is the second network-bound call in the login path. Its engine is
built by core.database.create_store_engine() so a slow or locked database
fails the write within db_timeout seconds; AuditLogger then swallows that
failure.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Column, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine

from audit.models import AuditAction, AuditLogEntry
from core.database import create_store_engine

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_audit_logs = Table(
    "audit_logs",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("admin_id", Integer),  # NULL for failed logins
    Column("action", String(30), nullable=False, index=True),
    Column("entity_type", String(50), nullable=False, server_default="authentication"),
    Column("details", JSON, nullable=False),
    Column("ip_address", String(64), nullable=False),
    Column("user_agent", Text, nullable=False),
    Column("created_at", String(32), nullable=False, index=True),
)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AuditStore:
    """Repository for AuditLogEntry rows.

    Usage:
        store = AuditStore("sqlite:///adminauth.db")
        store.append(entry)
        recent = store.list_recent(limit=20)
        store.close()
    """

    def __init__(self, db_url: str, timeout: float = 5.0) -> None:
        self.engine: Engine = create_store_engine(db_url, timeout)
        _metadata.create_all(self.engine)

    def append(self, entry: AuditLogEntry) -> int:
        """Insert one audit row and return its ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _audit_logs.insert().values(
                    admin_id=entry.admin_id,
                    action=entry.action.value,
                    entity_type=entry.entity_type,
                    details=entry.details,
                    ip_address=entry.ip_address,
                    user_agent=entry.user_agent,
                    created_at=entry.timestamp.isoformat(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_recent(self, limit: int = 50, action: AuditAction | None = None) -> list[AuditLogEntry]:
        """Return the newest entries first, optionally filtered by action."""
        query = _audit_logs.select()
        if action is not None:
            query = query.where(_audit_logs.c.action == action.value)
        query = query.order_by(_audit_logs.c.id.desc()).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_entry(r) for r in rows]

    def count(self, action: AuditAction | None = None) -> int:
        """Return the number of stored entries, optionally for one action."""
        query = select(func.count()).select_from(_audit_logs)
        if action is not None:
            query = query.where(_audit_logs.c.action == action.value)
        with self.engine.connect() as conn:
            return conn.execute(query).scalar() or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_entry(row) -> AuditLogEntry:
    return AuditLogEntry(
        id=row.id,
        admin_id=row.admin_id,
        action=AuditAction(row.action),
        entity_type=row.entity_type,
        details=dict(row.details or {}),
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        timestamp=datetime.fromisoformat(row.created_at),
    )
