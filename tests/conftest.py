"""
tests/conftest.py -- Shared test fixtures for the admin auth tests.

This module provides:
  - FakeClock: a manually advanced clock injected into the rate limiter and
    the session manager, so lockout windows and session expiry are tested
    without sleeping.
  - stores: isolated SQLite-file AdminStore + AuditStore per test (tmp_path).
  - bundle: a fully wired LoginService (plus its collaborators) over stores.
  - api_client: TestClient over the real FastAPI app with a patched lifespan
    that wires the same components into app.state.

Design: file-backed SQLite under tmp_path rather than shared in-memory URIs.
TestClient runs sync route handlers in a thread pool, and the audit logger
writes from its own worker threads; a file database gives every thread the
same schema and data with no connection-lifetime surprises.

Environment variables must be set before any api/auth/core import:
  DEBUG=true                 -- get_settings() auto-generates SECRET_KEY.
  BCRYPT_ROUNDS=4            -- minimum bcrypt cost; keeps the suite fast.
  IP_RATE_LIMIT_ENABLED=false -- the per-IP throttle would otherwise trip
                                 on the many logins a single test module makes.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set env before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("IP_RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from audit.logger import AuditLogger
from audit.store import AuditStore
from auth.passwords import hash_password
from auth.ratelimit import LoginRateLimiter
from auth.service import LoginService
from auth.sessions import SessionManager
from auth.store import AdminStore
from core.config import get_settings

ADMIN_EMAIL = "a@x.com"
ADMIN_PASSWORD = "correct-horse-battery"
ADMIN_NAME = "Alice Admin"

# Lockout schedule used by every test: 3 failures, 8s doubling to 60s.
THRESHOLD = 3
BASE_DELAY = 8.0
MAX_DELAY = 60.0
INACTIVITY = 900.0


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock returning epoch seconds; advance() moves time forward."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Stores and components
# ---------------------------------------------------------------------------


@dataclass
class Stores:
    admins: AdminStore
    audit: AuditStore
    admin_id: int


@pytest.fixture
def stores(tmp_path) -> Generator[Stores, None, None]:
    """AdminStore + AuditStore on a fresh SQLite file, seeded with one active admin."""
    db_url = f"sqlite:///{tmp_path / 'adminauth_test.db'}"
    admins = AdminStore(db_url, timeout=2.0)
    audit = AuditStore(db_url, timeout=2.0)
    admin_id = admins.create_admin(ADMIN_EMAIL, hash_password(ADMIN_PASSWORD), ADMIN_NAME, role="ADMIN")
    yield Stores(admins=admins, audit=audit, admin_id=admin_id)
    admins.close()
    audit.close()


def make_rate_limiter(clock: FakeClock) -> LoginRateLimiter:
    return LoginRateLimiter(
        threshold=THRESHOLD,
        base_delay=BASE_DELAY,
        max_delay=MAX_DELAY,
        inactivity_window=INACTIVITY,
        clock=clock,
    )


def make_session_manager(clock: FakeClock, lifetime_seconds: int = 3600) -> SessionManager:
    return SessionManager(get_settings().secret_key, lifetime_seconds=lifetime_seconds, clock=clock)


@dataclass
class ServiceBundle:
    service: LoginService
    stores: Stores
    rate_limiter: LoginRateLimiter
    sessions: SessionManager
    audit_logger: AuditLogger
    clock: FakeClock


@pytest.fixture
def bundle(stores: Stores, clock: FakeClock) -> Generator[ServiceBundle, None, None]:
    rate_limiter = make_rate_limiter(clock)
    sessions = make_session_manager(clock)
    audit_logger = AuditLogger(stores.audit, timeout=2.0)
    service = LoginService(
        admin_store=stores.admins,
        rate_limiter=rate_limiter,
        sessions=sessions,
        audit=audit_logger,
    )
    yield ServiceBundle(service, stores, rate_limiter, sessions, audit_logger, clock)
    audit_logger.shutdown()


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(b: ServiceBundle):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-built test components into app.state so TestClient routes
    use the fake clock and the tmp_path database. The purge_task is a
    long-sleeping coroutine (a real asyncio.Task is required; MagicMock would
    fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.admin_store = b.stores.admins
        app.state.audit_store = b.stores.audit
        app.state.audit_logger = b.audit_logger
        app.state.rate_limiter = b.rate_limiter
        app.state.session_manager = b.sessions
        app.state.login_service = b.service
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture
def api_client(bundle: ServiceBundle) -> Generator[tuple[TestClient, ServiceBundle], None, None]:
    """Yield (client, bundle) for API integration tests.

    The TestClient uses the real FastAPI app (middleware, handlers, routers)
    with a patched lifespan. raise_server_exceptions=False lets tests assert
    on the 500 envelope produced by the catch-all handler.
    """
    app.router.lifespan_context = _patch_lifespan(bundle)
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client, bundle
