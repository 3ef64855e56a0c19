"""
auth/passwords.py -- Password hashing and credential verification.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper). Bcrypt is the right choice
       for low-entropy secrets because its cost factor makes offline
       brute-force expensive. Cost comes from Settings.bcrypt_rounds
       (default 12).

  Enumeration resistance [C1]: authenticate_admin() returns None for an
       unknown email, an inactive account, and a wrong password alike, and it
       always runs one bcrypt comparison -- against _DUMMY_HASH when the email
       is unknown -- so response time does not reveal whether an account
       exists.

  last_login: stamped after a successful check. The stamp is best-effort; a
       failed update is logged and the login still succeeds.

Layer rule: no imports from api/ or audit/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import bcrypt
from sqlalchemy.exc import SQLAlchemyError

from core.config import get_settings
from core.errors import AuthError

if TYPE_CHECKING:
    from auth.models import AdminCredential
    from auth.store import AdminStore

logger = logging.getLogger("adminauth.auth")

_settings = get_settings()


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are truncated by bcrypt. The API layer caps
    password length at 255 characters, and bcrypt 4.x raises on >72 bytes, so
    we truncate explicitly to keep hashing and checking consistent.
    """
    return bcrypt.hashpw(plain.encode("utf-8")[:72], bcrypt.gensalt(rounds=_settings.bcrypt_rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Never raises: a malformed hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("adminauth_timing_dummy")


def authenticate_admin(store: AdminStore, email: str, password: str) -> AdminCredential | None:
    """Verify an email/password pair against the credential store.

    Returns the AdminCredential (as it was before this login, so last_login is
    the previous login time) on success, None on any credential failure.

    Raises:
        AuthError(INFRASTRUCTURE): the store could not be queried. We cannot
            authenticate without it, so this propagates as a 500.
    """
    try:
        admin = store.find_by_email(email)
    except SQLAlchemyError as exc:
        logger.error("Credential store lookup failed: %s", exc.__class__.__name__)
        raise AuthError.infrastructure("credential store unavailable") from exc

    if admin is None:
        # Equalize timing -- do NOT return early before running bcrypt [C1]
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, admin.password_hash):
        return None
    if not admin.is_active:
        return None

    try:
        store.update_last_login(admin.id)
    except Exception:
        logger.warning("Could not update last_login for admin_id=%s", admin.id, exc_info=True)
    return admin
