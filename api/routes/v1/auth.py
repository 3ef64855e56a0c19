"""
api/routes/v1/auth.py -- Admin login, logout, and session introspection.

Routes:
  POST /api/v1/auth/login   -- email/password login; sets session cookie
  POST /api/v1/auth/logout  -- clears session cookie; always 200
  GET  /api/v1/auth/me      -- current session identity (requires session)

Security:
  [H2] POST /login is throttled per IP by slowapi (Settings.login_rate_limit)
       on top of the per-email lockout enforced inside LoginService.
  [C1] LoginService -> authenticate_admin() provides timing equalization --
       never inline store lookups + verify_password() here.
  [M5] Cache-Control: no-store on login responses (errors included, see the
       AuthError handler in api/main.py).

Failures are raised as AuthError by LoginService and rendered by the single
AuthError handler in api/main.py, so every status code and error body for
this router is decided in one place.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import AdminProfile, LoginRequest, LoginResponse, LogoutResponse, MeResponse
from auth.dependencies import get_client_info, get_current_session, get_login_service, get_session_token
from auth.models import Session
from auth.sessions import SessionManager
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/login:   public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:  public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/me:      requires a valid session (get_current_session)
router = APIRouter()


@limiter.limit(get_settings().login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set the session cookie.

    The response body also carries the token so non-browser clients can send
    it back as a Bearer header.
    """
    service = get_login_service(request)
    sessions: SessionManager = request.app.state.session_manager

    result = service.login(body.email, body.password, get_client_info(request))

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            session_token=result.session_token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- token type, not a password
            expires_in=sessions.lifetime_seconds,
            admin=AdminProfile.from_credential(result.admin),
        ).model_dump(),
    )
    sessions.set_cookie(resp, result.session_token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(request: Request) -> JSONResponse:
    """End the session. Idempotent: succeeds with or without a valid session."""
    service = get_login_service(request)
    sessions: SessionManager = request.app.state.session_manager

    service.logout(get_session_token(request), get_client_info(request))

    resp = JSONResponse(content=LogoutResponse().model_dump())
    sessions.revoke(resp)
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(session: Session = Depends(get_current_session)) -> MeResponse:
    """Return the identity carried by the current session."""
    return MeResponse.from_session(session)
