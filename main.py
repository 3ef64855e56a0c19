#!/usr/bin/env python3
"""
Admin auth -- operator command line.

Usage:
  python main.py create-admin --email ops@example.com --name "Ops Admin"
  python main.py create-admin --email viewer@example.com --name Viewer --role VIEWER
  echo "s3cret-pass" | python main.py create-admin --email ci@example.com --name CI --password-stdin
  python main.py audit-log
  python main.py audit-log --limit 50 --action LOGIN_FAILED

Environment variables:
  DATABASE_URL        Admin database (default sqlite:///adminauth.db)
  AUDIT_DATABASE_URL  Audit database (default: same as DATABASE_URL)
  SECRET_KEY          Required unless DEBUG=true (read by the shared settings)
"""

import argparse
import getpass
import sys

from sqlalchemy.exc import IntegrityError

from audit.models import AuditAction
from audit.store import AuditStore
from auth.models import AdminRole
from auth.passwords import hash_password
from auth.store import AdminStore
from core.config import get_settings

_MIN_PASSWORD_LENGTH = 8


def _read_password(from_stdin: bool) -> str:
    """Read the new admin's password without echoing it.

    --password-stdin reads one line from stdin for scripted provisioning.
    """
    if from_stdin:
        return sys.stdin.readline().rstrip("\n")
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Repeat password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        return ""
    return first


def _create_admin(args: argparse.Namespace) -> int:
    settings = get_settings()
    password = _read_password(args.password_stdin)
    if len(password) < _MIN_PASSWORD_LENGTH:
        print(f"  [!] Password must be at least {_MIN_PASSWORD_LENGTH} characters.")
        return 1

    store = AdminStore(settings.database_url, timeout=settings.db_timeout_seconds)
    try:
        admin_id = store.create_admin(args.email, hash_password(password), args.name, role=args.role)
    except IntegrityError:
        print(f"  [!] An admin with email '{args.email}' already exists.")
        return 1
    finally:
        store.close()

    print(f"  Created {args.role} admin #{admin_id} ({args.email.strip().lower()}).")
    return 0


def _audit_log(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = AuditStore(settings.audit_store_url, timeout=settings.db_timeout_seconds)
    try:
        action = AuditAction(args.action) if args.action else None
        entries = store.list_recent(limit=args.limit, action=action)
    finally:
        store.close()

    if not entries:
        print("  No audit entries.")
        return 0

    print(f"\n  {len(entries)} most recent audit entr{'y' if len(entries) == 1 else 'ies'}")
    print("  " + "─" * 40)
    for entry in entries:
        who = entry.details.get("email", "unknown")
        admin = f"#{entry.admin_id}" if entry.admin_id is not None else "-"
        print(f"  {entry.timestamp.isoformat()}  {entry.action.value:<13} {admin:>6}  {who}  {entry.ip_address}")
    print()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="adminauth",
        description="Operator tools for the admin auth service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command")

    create = sub.add_parser("create-admin", help="Create an admin account")
    create.add_argument("--email", required=True, help="Login email (stored lower-cased)")
    create.add_argument("--name", required=True, help="Display name")
    create.add_argument(
        "--role",
        choices=[r.value for r in AdminRole],
        default=AdminRole.ADMIN.value,
        help="Role attached to the account's sessions (default: ADMIN)",
    )
    create.add_argument(
        "--password-stdin",
        action="store_true",
        help="Read the password from the first line of stdin instead of prompting",
    )

    log = sub.add_parser("audit-log", help="Print recent authentication audit entries")
    log.add_argument("--limit", type=int, default=20, help="Number of entries (default: 20)")
    log.add_argument(
        "--action",
        choices=[a.value for a in AuditAction],
        default=None,
        help="Only show one action type",
    )

    args = parser.parse_args()

    if args.command == "create-admin":
        sys.exit(_create_admin(args))
    elif args.command == "audit-log":
        sys.exit(_audit_log(args))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
