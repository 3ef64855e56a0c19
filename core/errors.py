"""
core/errors.py -- Tagged error type for the admin auth core.

One exception class, AuthError, carries an ErrorKind. The HTTP status, the
stable machine-readable code, and the default user-facing message are looked
up from the kind, so the API layer dispatches on `exc.kind` rather than on
subclass identity.

User-facing messages never say which half of the credential pair was wrong or
whether an account exists. Structured details (remaining_attempts,
retry_after) travel in `details` and are surfaced by the API error envelope.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or audit/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    INPUT_VALIDATION = "input_validation"
    RATE_LIMITED = "rate_limited"
    INVALID_CREDENTIALS = "invalid_credentials"
    SESSION_INVALID = "session_invalid"
    INFRASTRUCTURE = "infrastructure"


@dataclass(frozen=True)
class _KindInfo:
    status_code: int
    code: str
    message: str


_KIND_INFO: dict[ErrorKind, _KindInfo] = {
    ErrorKind.INPUT_VALIDATION: _KindInfo(400, "invalid_input", "Email and password are required."),
    ErrorKind.INVALID_CREDENTIALS: _KindInfo(401, "invalid_credentials", "Invalid email or password."),
    ErrorKind.SESSION_INVALID: _KindInfo(401, "session_invalid", "Authentication required."),
    ErrorKind.RATE_LIMITED: _KindInfo(429, "rate_limited", "Too many login attempts. Please try again later."),
    ErrorKind.INFRASTRUCTURE: _KindInfo(500, "internal_error", "An unexpected error occurred."),
}


class AuthError(Exception):
    """Error raised by the auth core, tagged with an ErrorKind.

    Usage:
        raise AuthError(ErrorKind.RATE_LIMITED, details={"retry_after": 16})

        try: ...
        except AuthError as exc:
            if exc.kind is ErrorKind.RATE_LIMITED: ...
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        info = _KIND_INFO[kind]
        self.kind = kind
        self.message = message or info.message
        self.details: dict[str, Any] = dict(details or {})
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return _KIND_INFO[self.kind].status_code

    @property
    def code(self) -> str:
        return _KIND_INFO[self.kind].code

    # Convenience constructors for the variants raised by the login flow.

    @classmethod
    def rate_limited(cls, retry_after: int) -> AuthError:
        return cls(ErrorKind.RATE_LIMITED, details={"retry_after": retry_after})

    @classmethod
    def invalid_credentials(cls, remaining_attempts: int) -> AuthError:
        return cls(ErrorKind.INVALID_CREDENTIALS, details={"remaining_attempts": remaining_attempts})

    @classmethod
    def infrastructure(cls, detail: str) -> AuthError:
        """Build a 500-class error. `detail` is for the operational log only."""
        return cls(ErrorKind.INFRASTRUCTURE, details={"internal": detail})

    def __repr__(self) -> str:
        return f"AuthError(kind={self.kind.value!r}, message={self.message!r}, details={self.details!r})"
