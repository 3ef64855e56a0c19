"""
auth/store.py -- SQLAlchemy Core persistence layer for admin accounts.

Pattern: Repository + Data Mapper.
AdminStore is the repository; _row_to_admin is the mapper. The login service
and route code never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Emails are stored lower-cased and looked up lower-cased, so "A@X.com" and
  "a@x.com" are the same account and the same rate-limit identifier.

The credential store is one of the two network-bound calls in the login path.
The engine comes from core.database.create_store_engine(), which caps
connection waits at Settings.db_timeout_seconds.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine

from auth.models import AdminCredential, AdminRole, normalize_email
from core.database import create_store_engine

_DEFAULT_DB_URL = "sqlite:///adminauth.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_admins = Table(
    "admins",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("name", String(255), nullable=False),
    Column("role", String(30), nullable=False, server_default=AdminRole.ADMIN.value),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("last_login", String(32)),  # ISO 8601 timestamp of last successful auth
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AdminStore:
    """Repository for AdminCredential records.

    Usage:
        store = AdminStore("sqlite:///adminauth.db")
        store.create_admin("ops@example.com", hash_password("secret"), "Ops", role="ADMIN")
        admin = store.find_by_email("ops@example.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL, timeout: float = 5.0) -> None:
        self.engine: Engine = create_store_engine(db_url, timeout)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_admins(self) -> bool:
        """Return True if at least one admin record exists."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_admins)).scalar()
        return (result or 0) > 0

    def find_by_email(self, email: str) -> AdminCredential | None:
        """Look up an admin by email (case-insensitive). Returns None if not found.

        Inactive accounts are returned too -- the caller decides what an
        inactive account means so that timing stays uniform.
        """
        with self.engine.connect() as conn:
            row = conn.execute(_admins.select().where(_admins.c.email == normalize_email(email))).fetchone()
        return _row_to_admin(row) if row is not None else None

    def get_by_id(self, admin_id: int) -> AdminCredential | None:
        """Look up an admin by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_admins.select().where(_admins.c.id == admin_id)).fetchone()
        return _row_to_admin(row) if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_admin(
        self,
        email: str,
        password_hash: str,
        name: str,
        role: str = AdminRole.ADMIN.value,
        is_active: bool = True,
    ) -> int:
        """Insert a new admin and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _admins.insert().values(
                    email=normalize_email(email),
                    password_hash=password_hash,
                    name=name,
                    role=AdminRole(role).value,
                    is_active=1 if is_active else 0,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def set_active(self, admin_id: int, is_active: bool) -> bool:
        """Activate or deactivate an account. Returns False if admin_id was not found."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _admins.update().where(_admins.c.id == admin_id).values(is_active=1 if is_active else 0)
            )
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, admin_id: int) -> None:
        """Stamp the current UTC timestamp as last_login for the given admin."""
        with self.engine.connect() as conn:
            conn.execute(_admins.update().where(_admins.c.id == admin_id).values(last_login=_now_iso()))
            conn.commit()

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
            return True
        except Exception:
            return False

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_admin(row) -> AdminCredential:
    return AdminCredential(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        role=row.role,
        name=row.name,
        is_active=bool(row.is_active),
        last_login=row.last_login,
        created_at=row.created_at,
    )
