"""
Tests for core/config.py -- SECRET_KEY policy and lockout schedule validation.

Settings(...) is constructed directly with keyword overrides so the cached
get_settings() singleton used by the app is never disturbed.
"""

import pytest
from pydantic import ValidationError

from core.config import Settings

KEY = "k" * 32


class TestSecretKey:
    def test_debug_generates_key(self):
        settings = Settings(debug=True, secret_key="")
        assert len(settings.secret_key) >= 32

    def test_production_requires_key(self):
        with pytest.raises(ValidationError, match="SECRET_KEY is required"):
            Settings(debug=False, secret_key="")

    def test_short_key_rejected(self):
        with pytest.raises(ValidationError, match="at least 32"):
            Settings(debug=True, secret_key="short")


class TestLockoutSchedule:
    def test_defaults_are_valid(self):
        settings = Settings(secret_key=KEY)
        assert settings.login_failure_threshold == 3
        assert settings.lockout_base_seconds == 8.0
        assert settings.lockout_max_seconds == 60.0
        assert settings.session_lifetime_seconds == 86400

    @pytest.mark.parametrize(
        "overrides",
        [
            {"login_failure_threshold": 0},
            {"lockout_base_seconds": 0},
            {"lockout_base_seconds": 120, "lockout_max_seconds": 60},
            {"rate_limit_inactivity_seconds": 30},
            {"session_lifetime_seconds": 0},
            {"audit_max_pending_writes": 0},
        ],
    )
    def test_inconsistent_schedule_rejected(self, overrides):
        with pytest.raises(ValidationError):
            Settings(secret_key=KEY, **overrides)


class TestAuditStoreUrl:
    def test_defaults_to_main_database(self):
        settings = Settings(secret_key=KEY, database_url="sqlite:///main.db")
        assert settings.audit_store_url == "sqlite:///main.db"

    def test_separate_audit_database(self):
        settings = Settings(secret_key=KEY, audit_database_url="sqlite:///audit.db")
        assert settings.audit_store_url == "sqlite:///audit.db"
