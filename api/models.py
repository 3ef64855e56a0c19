"""
API request and response models for the admin auth endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
audit/models.py, which own the internal domain representation. Route handlers
map between the two -- in particular, AdminCredential.password_hash never
reaches a response model.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from audit.models import AuditLogEntry
from auth.models import AdminCredential, Session

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one "@", no whitespace, a dot in the domain. Deliverability
# is not our concern -- the address only has to be a plausible lookup key.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    The field_validator lower-cases and strips the email before the pattern
    check, so the value that reaches the login service is already the
    rate-limit identifier.
    """

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=255)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AdminProfile(BaseModel):
    """Public admin fields returned after login. No password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: str
    role: str
    last_login: Optional[str] = None

    @classmethod
    def from_credential(cls, admin: AdminCredential) -> "AdminProfile":
        return cls(
            id=admin.id,
            email=admin.email,
            name=admin.name,
            role=admin.role,
            last_login=admin.last_login,
        )


class LoginResponse(BaseModel):
    """Response for a successful POST /api/v1/auth/login."""

    model_config = ConfigDict(frozen=True)

    session_token: str
    token_type: str = "bearer"
    expires_in: int
    admin: AdminProfile


class LogoutResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me."""

    model_config = ConfigDict(frozen=True)

    admin_id: int
    email: str
    name: str
    role: str
    issued_at: str
    expires_at: str

    @classmethod
    def from_session(cls, session: Session) -> "MeResponse":
        return cls(
            admin_id=session.admin_id,
            email=session.email,
            name=session.name,
            role=session.role,
            issued_at=session.issued_at.isoformat(),
            expires_at=session.expires_at.isoformat(),
        )


class AuditLogRow(BaseModel):
    """One row of GET /api/v1/audit/logs."""

    model_config = ConfigDict(frozen=True)

    id: int
    admin_id: Optional[int]
    action: str
    entity_type: str
    timestamp: str
    ip_address: str
    user_agent: str
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_entry(cls, entry: AuditLogEntry) -> "AuditLogRow":
        return cls(
            id=entry.id or 0,
            admin_id=entry.admin_id,
            action=entry.action.value,
            entity_type=entry.entity_type,
            timestamp=entry.timestamp.isoformat(),
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            details=entry.details,
        )


class ErrorDetail(BaseModel):
    """Machine-readable error payload.

    remaining_attempts is set on invalid_credentials; retry_after (seconds) on
    rate_limited. Both are omitted from the JSON when not set.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    remaining_attempts: Optional[int] = None
    retry_after: Optional[int] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
