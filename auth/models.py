"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores, the session
manager, and the login service do the work.

Layer rule: no imports from api/ or audit/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class AdminRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    VIEWER = "VIEWER"


@dataclass(frozen=True)
class AdminCredential:
    """Read-only view of an admin account as the credential store returns it.

    password_hash is a bcrypt hash and must never leave the auth package --
    the API layer maps this to a public profile without it.

    last_login is the ISO 8601 timestamp of the previous successful login, or
    None for an account that has never logged in.
    """

    id: int
    email: str
    password_hash: str
    role: str
    name: str
    is_active: bool = True
    last_login: str | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Session:
    """Authenticated admin identity decoded from a session token.

    Never mutated: refreshing a session means issuing a new token.
    """

    admin_id: int
    email: str
    role: str
    name: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class ClientInfo:
    """Request metadata recorded on audit entries."""

    ip_address: str = "unknown"
    user_agent: str = "unknown"


def normalize_email(email: str) -> str:
    """Return the rate-limit identifier / lookup key for an email address."""
    return email.strip().lower()
