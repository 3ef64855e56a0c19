"""
auth/ratelimit.py -- Per-identifier brute-force limiter for admin logins.

Policy: progressive exponential backoff.
  - Each failed login for an identifier (lower-cased email) bumps its
    failure_count and stamps last_attempt_at.
  - From the `threshold`-th failure on, every failure locks the identifier
    until now + min(base * 2 ** (failure_count - threshold), max_delay).
    With the defaults (3, 8 s, 60 s) that is 8 s, 16 s, 32 s, 60 s, 60 s, ...
  - When a lock expires the identifier is admitted again, but failure_count is
    kept, so the next failure re-locks immediately at a doubled delay.
  - A successful login deletes the entry. So does inactivity: an entry whose
    last_attempt_at is older than inactivity_window is treated as absent and
    dropped, either on read or by purge_stale().
  - Every attempt that reaches reserve_attempt() stamps last_attempt_at,
    refused ones included, so an identifier being hammered while locked
    never ages out.

Attempt budget:
  reserve_attempt() is the admission check used by the login flow. An allowed
  attempt holds one in-flight slot (entry.pending) until record_failure(),
  record_success() or release_attempt() returns it. Admission is refused once
  failure_count + pending reaches the threshold, so N parallel guesses for
  one email cannot all pass the check while their password comparisons are
  still running. check_admission() is the read-only variant.

Concurrency:
  Route handlers run in a thread pool, so reserve/failure/success can race for
  the same identifier. One threading.Lock guards the whole map and every
  read-modify-write happens under it -- no lost increments. The periodic
  purge (background task in api/main.py lifespan) takes the same lock.

Lifecycle:
  Constructed once per process in the FastAPI lifespan and stored on
  app.state.rate_limiter; clear() on shutdown. The public surface
  (reserve_attempt / record_failure / record_success / release_attempt /
  purge_stale) is all a shared-store implementation would need to provide.

This component never raises into the caller; it only returns decisions.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger("adminauth.ratelimit")


@dataclass
class RateLimitEntry:
    """Failed-attempt state for one identifier. Owned by LoginRateLimiter."""

    failure_count: int
    last_attempt_at: float
    locked_until: float | None = None
    # Admitted attempts whose outcome has not been recorded yet.
    pending: int = 0


@dataclass(frozen=True)
class AdmissionDecision:
    """Result of an admission check.

    locked_until is an epoch timestamp; retry_after_seconds is the whole
    number of seconds the caller should wait (0 when allowed).
    """

    allowed: bool
    remaining_attempts: int
    locked_until: float | None = None
    retry_after_seconds: int = 0


class LoginRateLimiter:
    """Thread-safe in-process limiter keyed by normalized email.

    Usage:
        limiter = LoginRateLimiter(threshold=3, base_delay=8, max_delay=60)
        decision = limiter.reserve_attempt("a@x.com")
        if decision.allowed:
            ...  # verify password
            limiter.record_failure("a@x.com")  # or record_success()
    """

    def __init__(
        self,
        threshold: int = 3,
        base_delay: float = 8.0,
        max_delay: float = 60.0,
        inactivity_window: float = 15 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if threshold < 1:
            raise ValueError("threshold must be at least 1")
        self.threshold = threshold
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.inactivity_window = inactivity_window
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, RateLimitEntry] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def check_admission(self, identifier: str) -> AdmissionDecision:
        """Return whether a login attempt for identifier may proceed. Read-only."""
        now = self._clock()
        with self._lock:
            entry = self._live_entry(identifier, now)
            return self._decide(entry, now)

    def reserve_attempt(self, identifier: str) -> AdmissionDecision:
        """Admit one attempt for identifier and hold an in-flight slot for it.

        The caller must hand the slot back through record_failure(),
        record_success() or release_attempt(). Below the threshold at most
        threshold - failure_count attempts may be in flight; at or past it,
        one attempt at a time once the lock has expired.
        """
        now = self._clock()
        with self._lock:
            entry = self._live_entry(identifier, now)
            if entry is None:
                entry = RateLimitEntry(failure_count=0, last_attempt_at=now)
                self._entries[identifier] = entry
            entry.last_attempt_at = now

            decision = self._decide(entry, now)
            if not decision.allowed:
                return decision
            entry.locked_until = None  # any earlier lock has expired

            if entry.pending >= max(self.threshold - entry.failure_count, 1):
                logger.info("Login refused: attempt budget held by %d in-flight attempts", entry.pending)
                return AdmissionDecision(allowed=False, remaining_attempts=0, retry_after_seconds=1)
            entry.pending += 1
            return decision

    def release_attempt(self, identifier: str) -> None:
        """Return an in-flight slot whose attempt ended without a verdict."""
        with self._lock:
            entry = self._entries.get(identifier)
            if entry is None:
                return
            entry.pending = max(entry.pending - 1, 0)
            if entry.failure_count == 0 and entry.pending == 0:
                del self._entries[identifier]

    def record_failure(self, identifier: str) -> AdmissionDecision:
        """Count a failed attempt and return the resulting admission state."""
        now = self._clock()
        with self._lock:
            entry = self._live_entry(identifier, now)
            if entry is None:
                entry = RateLimitEntry(failure_count=0, last_attempt_at=now)
                self._entries[identifier] = entry
            entry.pending = max(entry.pending - 1, 0)
            entry.failure_count += 1
            entry.last_attempt_at = now
            if entry.failure_count >= self.threshold:
                delay = self.lockout_delay(entry.failure_count)
                entry.locked_until = now + delay
                logger.warning(
                    "Login identifier locked for %.0fs after %d failed attempts",
                    delay,
                    entry.failure_count,
                )
            return self._decide(entry, now)

    def record_success(self, identifier: str) -> None:
        """Forget all failure history for identifier, in-flight slots included."""
        with self._lock:
            self._entries.pop(identifier, None)

    def purge_stale(self) -> int:
        """Delete entries idle longer than the inactivity window. Returns rows removed."""
        now = self._clock()
        with self._lock:
            stale = [key for key, entry in self._entries.items() if self._is_stale(entry, now)]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Purged %d stale rate-limit entries", len(stale))
        return len(stale)

    def lockout_delay(self, failure_count: int) -> float:
        """Seconds of lockout imposed by the failure_count-th failure (0 below threshold)."""
        if failure_count < self.threshold:
            return 0.0
        return min(self.base_delay * 2 ** (failure_count - self.threshold), self.max_delay)

    def get_entry(self, identifier: str) -> RateLimitEntry | None:
        """Return a copy of the live entry for identifier, or None. Diagnostic use."""
        now = self._clock()
        with self._lock:
            entry = self._live_entry(identifier, now)
            if entry is None:
                return None
            return RateLimitEntry(entry.failure_count, entry.last_attempt_at, entry.locked_until, entry.pending)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ------------------------------------------------------------------
    # Internals (caller holds self._lock)
    # ------------------------------------------------------------------

    def _is_stale(self, entry: RateLimitEntry, now: float) -> bool:
        return now - entry.last_attempt_at > self.inactivity_window

    def _live_entry(self, identifier: str, now: float) -> RateLimitEntry | None:
        entry = self._entries.get(identifier)
        if entry is not None and self._is_stale(entry, now):
            del self._entries[identifier]
            return None
        return entry

    def _decide(self, entry: RateLimitEntry | None, now: float) -> AdmissionDecision:
        if entry is None:
            return AdmissionDecision(allowed=True, remaining_attempts=self.threshold)
        remaining = max(self.threshold - entry.failure_count, 0)
        if entry.locked_until is not None and now < entry.locked_until:
            return AdmissionDecision(
                allowed=False,
                remaining_attempts=remaining,
                locked_until=entry.locked_until,
                retry_after_seconds=max(1, math.ceil(entry.locked_until - now)),
            )
        return AdmissionDecision(allowed=True, remaining_attempts=remaining)
