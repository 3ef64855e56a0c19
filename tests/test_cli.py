"""
Tests for main.py -- the operator CLI (create-admin, audit-log).
"""

import io
import sys

import pytest

import main
from audit.models import AuditAction, AuditEvent, AuditLogEntry
from audit.store import AuditStore
from auth.passwords import verify_password
from auth.store import AdminStore
from core.config import Settings


@pytest.fixture
def cli_db(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path / 'cli.db'}"
    settings = Settings(secret_key="k" * 32, database_url=db_url)
    monkeypatch.setattr(main, "get_settings", lambda: settings)
    return db_url


def _run(monkeypatch, *argv, stdin=""):
    monkeypatch.setattr(sys, "argv", ["adminauth", *argv])
    monkeypatch.setattr(sys, "stdin", io.StringIO(stdin))
    with pytest.raises(SystemExit) as exc_info:
        main.main()
    return exc_info.value.code


class TestCreateAdmin:
    def test_creates_admin_from_stdin(self, cli_db, monkeypatch, capsys):
        code = _run(
            monkeypatch,
            "create-admin", "--email", "Ops@Example.com", "--name", "Ops", "--role", "VIEWER", "--password-stdin",
            stdin="long-enough-pass\n",
        )
        assert code == 0
        assert "ops@example.com" in capsys.readouterr().out

        store = AdminStore(cli_db)
        admin = store.find_by_email("ops@example.com")
        store.close()
        assert admin.role == "VIEWER"
        assert verify_password("long-enough-pass", admin.password_hash)

    def test_short_password_is_refused(self, cli_db, monkeypatch, capsys):
        code = _run(monkeypatch, "create-admin", "--email", "a@x.com", "--name", "A", "--password-stdin", stdin="short\n")
        assert code == 1
        assert "at least" in capsys.readouterr().out

    def test_duplicate_email_is_refused(self, cli_db, monkeypatch, capsys):
        args = ("create-admin", "--email", "a@x.com", "--name", "A", "--password-stdin")
        assert _run(monkeypatch, *args, stdin="long-enough-pass\n") == 0
        assert _run(monkeypatch, *args, stdin="long-enough-pass\n") == 1
        assert "already exists" in capsys.readouterr().out


class TestAuditLog:
    def test_empty_trail(self, cli_db, monkeypatch, capsys):
        assert _run(monkeypatch, "audit-log") == 0
        assert "No audit entries" in capsys.readouterr().out

    def test_prints_filtered_entries(self, cli_db, monkeypatch, capsys):
        store = AuditStore(cli_db)
        store.append(AuditLogEntry.from_event(AuditEvent(AuditAction.LOGIN_FAILED, email="a@x.com", success=False)))
        store.append(AuditLogEntry.from_event(AuditEvent(AuditAction.LOGOUT, email="b@x.com", admin_id=2)))
        store.close()

        assert _run(monkeypatch, "audit-log", "--action", "LOGIN_FAILED") == 0
        out = capsys.readouterr().out
        assert "a@x.com" in out
        assert "b@x.com" not in out
