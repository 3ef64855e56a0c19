"""
auth/sessions.py -- Stateless admin session tokens.

Security design decisions:
  Tokens are JWTs signed with HS256 (python-jose) using Settings.secret_key.
  They carry the admin identity (sub, email, role, name), iat, exp, and a
  typ="admin_session" claim so that a JWT minted for another purpose with
  the same key is not accepted as a session.

  The server keeps no per-session state. validate() is a pure function of the
  token, the secret, and the clock -- no locking, no database hit.

  Expiry is fixed at issue time (Settings.session_lifetime_seconds, default
  24 hours). Sessions do not slide; a refresh means issuing a new token.

  validate() returns None for every failure (malformed, bad signature, wrong
  typ, missing claims, expired) rather than raising. The dependency layer
  turns None into a SESSION_INVALID error where a session is required.

Cookie:
  httponly=True   JS cannot read the cookie (XSS mitigation).
  samesite="lax"  Not sent on cross-site POST (CSRF mitigation).
  secure          Only sent over HTTPS when SECURE_COOKIES=true.
  max_age         Matches the token lifetime so both expire together.
  revoke() overwrites the cookie with an empty value that is already expired.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime, timezone

from jose import JWTError, jwt

from auth.models import AdminCredential, Session

_ALGORITHM = "HS256"
_TOKEN_TYPE = "admin_session"
_REQUIRED_CLAIMS = ("sub", "email", "role", "name", "iat", "exp")


class SessionManager:
    """Issue, validate, and revoke signed admin session tokens."""

    def __init__(
        self,
        secret_key: str,
        lifetime_seconds: int = 86400,
        cookie_name: str = "admin_session",
        secure_cookies: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret_key = secret_key
        self.lifetime_seconds = lifetime_seconds
        self.cookie_name = cookie_name
        self.secure_cookies = secure_cookies
        self._clock = clock

    def create(self, admin: AdminCredential) -> str:
        """Encode a signed token for the given admin identity."""
        issued_at = int(self._clock())
        payload = {
            "sub": str(admin.id),
            "email": admin.email,
            "role": admin.role,
            "name": admin.name,
            "typ": _TOKEN_TYPE,
            "iat": issued_at,
            "exp": issued_at + self.lifetime_seconds,
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def validate(self, token: str | None) -> Session | None:
        """Decode and verify a token. Returns the Session, or None if it is not valid now."""
        if not token:
            return None
        try:
            # Expiry is checked below against the injectable clock.
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError:
            return None

        if payload.get("typ") != _TOKEN_TYPE or any(claim not in payload for claim in _REQUIRED_CLAIMS):
            return None
        try:
            admin_id = int(payload["sub"])
            issued_at = int(payload["iat"])
            expires_at = int(payload["exp"])
        except (TypeError, ValueError):
            return None
        if expires_at <= self._clock():
            return None

        return Session(
            admin_id=admin_id,
            email=payload["email"],
            role=payload["role"],
            name=payload["name"],
            issued_at=datetime.fromtimestamp(issued_at, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc),
        )

    def set_cookie(self, response, token: str) -> None:
        """Write the session token as an httpOnly cookie on the response."""
        response.set_cookie(
            self.cookie_name,
            value=token,
            httponly=True,
            samesite="lax",
            secure=self.secure_cookies,
            max_age=self.lifetime_seconds,
        )

    def revoke(self, response) -> None:
        """Clear the client-held token. Safe to call when no session exists."""
        response.set_cookie(
            self.cookie_name,
            value="",
            httponly=True,
            samesite="lax",
            secure=self.secure_cookies,
            max_age=0,
            expires=0,
        )
