"""
core/database.py -- SQLAlchemy engine factory shared by the admin and audit stores.

Every store talks to its database through an engine built here so that the
two outbound calls this service makes (credential lookup, audit append) are
bounded in time:

  SQLite:      connect_args["timeout"] is the busy timeout -- a writer holding
               the database lock makes us wait at most db_timeout seconds,
               then sqlite3 raises OperationalError.
  PostgreSQL:  connect_timeout bounds the connect; statement_timeout (sent as
               a startup option) bounds every query on the server side.
  MySQL:       connect_timeout plus read/write timeouts on the socket.
  All others:  pool_timeout bounds the wait for a pooled connection.

WAL journal mode is set per connection for SQLite so readers do not block on
the audit writer.

Layer rule: core/ is the kernel. No imports from api/, auth/, or audit/.
"""

from __future__ import annotations

import math
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def driver_connect_args(db_url: str, timeout: float) -> dict[str, Any]:
    """Return DBAPI connect() arguments that cap connect and query time at `timeout`."""
    backend = make_url(db_url).get_backend_name()
    # Driver connect/socket timeouts take whole seconds.
    seconds = max(1, math.ceil(timeout))
    if backend == "sqlite":
        return {"check_same_thread": False, "timeout": timeout}
    if backend == "postgresql":
        return {"connect_timeout": seconds, "options": f"-c statement_timeout={int(timeout * 1000)}"}
    if backend in ("mysql", "mariadb"):
        return {"connect_timeout": seconds, "read_timeout": seconds, "write_timeout": seconds}
    return {}


def create_store_engine(db_url: str, timeout: float) -> Engine:
    """Return an Engine for db_url whose connection waits are capped at `timeout` seconds."""
    connect_args = driver_connect_args(db_url, timeout)
    if make_url(db_url).get_backend_name() == "sqlite":
        # SQLite's default pools reject pool_timeout.
        engine = create_engine(db_url, connect_args=connect_args)
        event.listen(engine, "connect", _set_wal_mode)
        return engine
    return create_engine(db_url, connect_args=connect_args, pool_timeout=timeout, pool_pre_ping=True)
