"""
auth/service.py -- Login / logout orchestration.

LoginService composes the rate limiter, the credential check, the session
manager, and the audit logger into one request flow. Route handlers call
login() / logout() and never sequence those components themselves.

Per-request state machine (LoginState):

    START -> RATE_CHECKED -> AUTHENTICATED -> SESSION_ISSUED -> AUDITED -> DONE
                  |
                  +--------> REJECTED -> FAILURE_RECORDED -> AUDITED -> DONE
                  |
                  +--------> (denied) ----------------------> AUDITED -> DONE

Ordering rules:
  1. Admission is checked before any password work. A locked identifier gets
     no bcrypt comparison at all -- no hashing cost spent on it, and no timing
     signal about the account while it is locked. Admission reserves an
     in-flight slot, so parallel guesses cannot outrun the attempt budget
     while their comparisons are still running.
  2. The audit record is written only after the limiter/session decision is
     final (see audit/logger.py for why that order matters).
  3. Every failure path raises a tagged AuthError; the message never says
     which credential was wrong.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from audit.logger import AuditLogger
from audit.models import AuditAction, AuditEvent
from auth.models import AdminCredential, ClientInfo, Session, normalize_email
from auth.passwords import authenticate_admin
from auth.ratelimit import LoginRateLimiter
from auth.sessions import SessionManager
from auth.store import AdminStore
from core.errors import AuthError, ErrorKind

logger = logging.getLogger("adminauth.auth")


class LoginState(str, Enum):
    START = "START"
    RATE_CHECKED = "RATE_CHECKED"
    AUTHENTICATED = "AUTHENTICATED"
    REJECTED = "REJECTED"
    SESSION_ISSUED = "SESSION_ISSUED"
    FAILURE_RECORDED = "FAILURE_RECORDED"
    AUDITED = "AUDITED"
    DONE = "DONE"


@dataclass
class LoginAttempt:
    """Progress of a single login request through the state machine."""

    identifier: str
    client: ClientInfo
    state: LoginState = LoginState.START
    trail: list[LoginState] = field(default_factory=lambda: [LoginState.START])

    def advance(self, state: LoginState) -> None:
        logger.debug("login %s -> %s", self.state.value, state.value)
        self.state = state
        self.trail.append(state)


@dataclass(frozen=True)
class LoginResult:
    """Successful login: the token to hand to the client plus the public identity."""

    session_token: str
    session: Session
    admin: AdminCredential
    trail: tuple[LoginState, ...] = ()


class LoginService:
    """Login orchestrator. One instance per process (app.state.login_service)."""

    def __init__(
        self,
        admin_store: AdminStore,
        rate_limiter: LoginRateLimiter,
        sessions: SessionManager,
        audit: AuditLogger,
    ) -> None:
        self.admin_store = admin_store
        self.rate_limiter = rate_limiter
        self.sessions = sessions
        self.audit = audit

    def login(self, email: str, password: str, client: ClientInfo | None = None) -> LoginResult:
        """Run the full login flow for one request.

        Raises:
            AuthError(INPUT_VALIDATION): empty email or password. No limiter or
                audit interaction.
            AuthError(RATE_LIMITED): identifier is locked; details carry retry_after.
            AuthError(INVALID_CREDENTIALS): unknown email, inactive account, or
                wrong password; details carry remaining_attempts.
            AuthError(INFRASTRUCTURE): credential store unavailable.
        """
        if not email or not email.strip() or not password:
            raise AuthError(ErrorKind.INPUT_VALIDATION)

        attempt = LoginAttempt(identifier=normalize_email(email), client=client or ClientInfo())

        decision = self.rate_limiter.reserve_attempt(attempt.identifier)
        attempt.advance(LoginState.RATE_CHECKED)
        if not decision.allowed:
            logger.info("Login refused while locked (retry in %ds)", decision.retry_after_seconds)
            self._audit(attempt, AuditAction.LOGIN_FAILED, admin_id=None, success=False)
            attempt.advance(LoginState.DONE)
            raise AuthError.rate_limited(decision.retry_after_seconds)

        try:
            admin = authenticate_admin(self.admin_store, attempt.identifier, password)
        except Exception:
            # No verdict on the credentials: hand the slot back uncounted.
            self.rate_limiter.release_attempt(attempt.identifier)
            raise

        if admin is None:
            attempt.advance(LoginState.REJECTED)
            after = self.rate_limiter.record_failure(attempt.identifier)
            attempt.advance(LoginState.FAILURE_RECORDED)
            self._audit(attempt, AuditAction.LOGIN_FAILED, admin_id=None, success=False)
            attempt.advance(LoginState.DONE)
            raise AuthError.invalid_credentials(after.remaining_attempts)

        attempt.advance(LoginState.AUTHENTICATED)
        self.rate_limiter.record_success(attempt.identifier)
        token = self.sessions.create(admin)
        session = self.sessions.validate(token)
        if session is None:
            # Only possible with a misconfigured clock or key rotation mid-request.
            raise AuthError.infrastructure("freshly issued session failed validation")
        attempt.advance(LoginState.SESSION_ISSUED)
        self._audit(attempt, AuditAction.LOGIN_SUCCESS, admin_id=admin.id, success=True)
        attempt.advance(LoginState.DONE)
        logger.info("Admin %s logged in", admin.id)
        return LoginResult(session_token=token, session=session, admin=admin, trail=tuple(attempt.trail))

    def logout(self, token: str | None, client: ClientInfo | None = None) -> Session | None:
        """Record a logout for the session in token, if it is still valid.

        An absent, expired, or forged token is not an error: logout is
        idempotent and the caller clears the cookie either way. Returns the
        session that was logged out, or None.
        """
        session = self.sessions.validate(token)
        if session is None:
            return None
        client = client or ClientInfo()
        self.audit.record(
            AuditEvent(
                action=AuditAction.LOGOUT,
                email=session.email,
                admin_id=session.admin_id,
                ip_address=client.ip_address,
                user_agent=client.user_agent,
            )
        )
        logger.info("Admin %s logged out", session.admin_id)
        return session

    def _audit(self, attempt: LoginAttempt, action: AuditAction, admin_id: int | None, success: bool) -> None:
        self.audit.record(
            AuditEvent(
                action=action,
                email=attempt.identifier,
                admin_id=admin_id,
                ip_address=attempt.client.ip_address,
                user_agent=attempt.client.user_agent,
                success=success,
            )
        )
        attempt.advance(LoginState.AUDITED)
