"""
audit/models.py -- Domain dataclasses for the security audit trail.

AuditEvent is what callers hand to AuditLogger.record(); AuditLogEntry is the
immutable row that lands in the audit store. Keeping the two apart lets the
logger own timestamping and the `details` map layout.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class AuditAction(str, Enum):
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AuditEvent:
    """A security-relevant event as reported by the login service.

    admin_id is None for failed logins, where identity is unknown or must not
    be disclosed. success is None for events where it does not apply (logout).
    """

    action: AuditAction
    email: str
    admin_id: int | None = None
    ip_address: str = "unknown"
    user_agent: str = "unknown"
    success: bool | None = None
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class AuditLogEntry:
    """One immutable row of the audit trail."""

    action: AuditAction
    timestamp: datetime
    admin_id: int | None = None
    ip_address: str = "unknown"
    user_agent: str = "unknown"
    details: dict[str, Any] = field(default_factory=dict)
    entity_type: str = "authentication"
    id: int | None = None

    @classmethod
    def from_event(cls, event: AuditEvent) -> AuditLogEntry:
        details: dict[str, Any] = {"email": event.email, "timestamp": event.timestamp.isoformat()}
        if event.success is not None:
            details["success"] = event.success
        return cls(
            action=event.action,
            timestamp=event.timestamp,
            admin_id=event.admin_id,
            ip_address=event.ip_address,
            user_agent=event.user_agent,
            details=details,
        )
