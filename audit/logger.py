"""
audit/logger.py -- Fire-and-forget writer for the security audit trail.

The login service calls AuditLogger.record() after each decision is final
(lockout, rejection, session issued, logout). From the caller's point of view
the call cannot fail:

  - The append runs on a small worker pool and the caller waits at most
    `timeout` seconds for it. A write that is still running after that is
    left to finish in the background (detached) and the request moves on.
  - At most max_pending writes are outstanding. When a hung store has used
    them all up, further events are dropped (and logged) without waiting.
  - Any exception from the store, and any timeout, goes to the operational
    logger "adminauth.audit" -- never into the audit trail itself and never
    back to the caller.

Because record() runs strictly after the decision, a crash between the two
can lose an audit row for a real outcome, but an audit row can never exist
for an outcome that did not happen.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from audit.models import AuditEvent, AuditLogEntry
from audit.store import AuditStore

logger = logging.getLogger("adminauth.audit")


class AuditLogger:
    """Best-effort audit writer. One instance per process (app.state.audit_logger).

    At most max_pending writes may be outstanding (running or queued). Past
    that the event is dropped and logged, and record() returns at once.
    """

    def __init__(self, store: AuditStore, timeout: float = 2.0, max_workers: int = 2, max_pending: int = 100) -> None:
        self.store = store
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="audit-writer")
        self._slots = threading.BoundedSemaphore(max_pending)

    def record(self, event: AuditEvent) -> None:
        """Persist one audit entry for event. Never raises."""
        if not self._slots.acquire(blocking=False):
            logger.warning("Audit backlog full; dropping %s event", event.action.value)
            return
        try:
            entry = AuditLogEntry.from_event(event)
            future: Future = self._executor.submit(self.store.append, entry)
        except Exception:
            self._slots.release()
            logger.exception("Audit write for %s could not be scheduled", event.action.value)
            return
        future.add_done_callback(self._release_slot)

        try:
            future.result(timeout=self.timeout)
        except FutureTimeoutError:
            future.add_done_callback(_log_late_failure)
            logger.warning(
                "Audit write for %s exceeded %.1fs; continuing without waiting",
                event.action.value,
                self.timeout,
            )
        except Exception:
            logger.warning("Audit write for %s failed", event.action.value, exc_info=True)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting writes and, by default, let in-flight writes finish."""
        self._executor.shutdown(wait=wait)

    def _release_slot(self, future: Future) -> None:
        self._slots.release()


def _log_late_failure(future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        logger.warning("Detached audit write failed: %s", exc.__class__.__name__)
