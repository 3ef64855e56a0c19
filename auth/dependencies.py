"""
auth/dependencies.py -- FastAPI Depends() helpers for admin sessions.

The session token is looked up in priority order:
  1. Session cookie (Settings.session_cookie_name) -- set by POST /auth/login.
  2. Authorization: Bearer <token> header -- API clients replaying the token
     from the login response body.

try_get_session() is the soft variant (returns None on failure).
get_current_session() wraps it and raises AuthError(SESSION_INVALID).

Role checks are deliberately absent: the session carries the admin role, and
enforcing permissions on it is the job of the routes that own the resources.

auth/dependencies.py may import from fastapi (for Request) because this
module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import ClientInfo, Session
from auth.service import LoginService
from auth.sessions import SessionManager
from core.errors import AuthError, ErrorKind


def get_session_token(request: Request) -> str | None:
    """Return the raw session token from the cookie or Bearer header, if any."""
    sessions: SessionManager = request.app.state.session_manager
    token: str | None = request.cookies.get(sessions.cookie_name)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def try_get_session(request: Request) -> Session | None:
    """Return the validated Session for this request, or None. Never raises."""
    sessions: SessionManager = request.app.state.session_manager
    return sessions.validate(get_session_token(request))


def get_current_session(request: Request) -> Session:
    """Require a valid session.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(session: Session = Depends(get_current_session)): ...
    """
    session = try_get_session(request)
    if session is None:
        raise AuthError(ErrorKind.SESSION_INVALID)
    return session


def get_login_service(request: Request) -> LoginService:
    return request.app.state.login_service


def get_client_info(request: Request) -> ClientInfo:
    """Extract the caller's IP and user agent for audit entries.

    X-Forwarded-For may hold a chain ("client, proxy1, proxy2"); the first hop
    is the original client. Only trust these headers behind a proxy that
    overwrites them.
    """
    forwarded = request.headers.get("x-forwarded-for", "")
    ip = forwarded.split(",")[0].strip() if forwarded else ""
    if not ip:
        ip = request.headers.get("x-real-ip", "").strip()
    if not ip and request.client is not None:
        ip = request.client.host
    return ClientInfo(
        ip_address=ip or "unknown",
        user_agent=request.headers.get("user-agent") or "unknown",
    )
