"""
Unit tests for auth/ratelimit.py -- per-identifier progressive lockout.

All timing goes through the FakeClock from conftest, so lock windows and the
inactivity purge are exercised without sleeping.
"""

import threading

from auth.ratelimit import LoginRateLimiter
from tests.conftest import BASE_DELAY, INACTIVITY, MAX_DELAY, THRESHOLD, FakeClock, make_rate_limiter

IDENT = "a@x.com"


class TestAdmission:
    def test_unknown_identifier_is_allowed_with_full_budget(self, clock):
        limiter = make_rate_limiter(clock)
        decision = limiter.check_admission("nobody@x.com")
        assert decision.allowed is True
        assert decision.remaining_attempts == THRESHOLD
        assert decision.locked_until is None
        assert decision.retry_after_seconds == 0

    def test_failures_below_threshold_never_deny(self, clock):
        limiter = make_rate_limiter(clock)
        for expected_remaining in range(THRESHOLD - 1, 0, -1):
            after = limiter.record_failure(IDENT)
            assert after.allowed is True
            assert after.remaining_attempts == expected_remaining
            assert limiter.check_admission(IDENT).allowed is True

    def test_threshold_failure_locks_identifier(self, clock):
        limiter = make_rate_limiter(clock)
        for _ in range(THRESHOLD):
            limiter.record_failure(IDENT)

        decision = limiter.check_admission(IDENT)
        assert decision.allowed is False
        assert decision.remaining_attempts == 0
        assert decision.locked_until == clock.now + BASE_DELAY
        assert decision.retry_after_seconds == int(BASE_DELAY)

    def test_lock_expires_and_admits_again(self, clock):
        limiter = make_rate_limiter(clock)
        for _ in range(THRESHOLD):
            limiter.record_failure(IDENT)

        clock.advance(BASE_DELAY - 0.5)
        assert limiter.check_admission(IDENT).allowed is False
        clock.advance(1)
        assert limiter.check_admission(IDENT).allowed is True

    def test_retry_after_rounds_up_and_is_never_zero_while_locked(self, clock):
        limiter = make_rate_limiter(clock)
        for _ in range(THRESHOLD):
            limiter.record_failure(IDENT)

        clock.advance(BASE_DELAY - 0.2)
        decision = limiter.check_admission(IDENT)
        assert decision.allowed is False
        assert decision.retry_after_seconds == 1

    def test_identifiers_are_independent(self, clock):
        limiter = make_rate_limiter(clock)
        for _ in range(THRESHOLD):
            limiter.record_failure(IDENT)
        assert limiter.check_admission("b@x.com").allowed is True


class TestEscalation:
    def test_delay_doubles_then_caps(self, clock):
        limiter = make_rate_limiter(clock)
        assert limiter.lockout_delay(THRESHOLD - 1) == 0
        assert limiter.lockout_delay(THRESHOLD) == BASE_DELAY
        assert limiter.lockout_delay(THRESHOLD + 1) == BASE_DELAY * 2
        assert limiter.lockout_delay(THRESHOLD + 2) == BASE_DELAY * 4
        assert limiter.lockout_delay(THRESHOLD + 3) == MAX_DELAY
        assert limiter.lockout_delay(THRESHOLD + 20) == MAX_DELAY

    def test_failure_after_lock_expiry_relocks_longer(self, clock):
        limiter = make_rate_limiter(clock)
        for _ in range(THRESHOLD):
            limiter.record_failure(IDENT)
        clock.advance(BASE_DELAY + 1)

        after = limiter.record_failure(IDENT)
        assert after.allowed is False
        assert after.retry_after_seconds == int(BASE_DELAY * 2)
        assert limiter.get_entry(IDENT).failure_count == THRESHOLD + 1

    def test_success_resets_history(self, clock):
        limiter = make_rate_limiter(clock)
        for _ in range(THRESHOLD - 1):
            limiter.record_failure(IDENT)

        limiter.record_success(IDENT)
        assert limiter.get_entry(IDENT) is None
        assert limiter.check_admission(IDENT).remaining_attempts == THRESHOLD

    def test_success_for_unknown_identifier_is_noop(self, clock):
        limiter = make_rate_limiter(clock)
        limiter.record_success("nobody@x.com")
        assert len(limiter) == 0


class TestInactivity:
    def test_stale_entry_is_ignored_on_read(self, clock):
        limiter = make_rate_limiter(clock)
        for _ in range(THRESHOLD - 1):
            limiter.record_failure(IDENT)

        clock.advance(INACTIVITY + 1)
        decision = limiter.check_admission(IDENT)
        assert decision.allowed is True
        assert decision.remaining_attempts == THRESHOLD
        assert len(limiter) == 0

    def test_failure_after_inactivity_starts_a_new_count(self, clock):
        limiter = make_rate_limiter(clock)
        for _ in range(THRESHOLD - 1):
            limiter.record_failure(IDENT)

        clock.advance(INACTIVITY + 1)
        limiter.record_failure(IDENT)
        assert limiter.get_entry(IDENT).failure_count == 1

    def test_purge_removes_only_stale_entries(self, clock):
        limiter = make_rate_limiter(clock)
        limiter.record_failure("old@x.com")
        clock.advance(INACTIVITY - 10)
        limiter.record_failure("fresh@x.com")
        clock.advance(20)

        assert limiter.purge_stale() == 1
        assert limiter.get_entry("old@x.com") is None
        assert limiter.get_entry("fresh@x.com") is not None

    def test_clear_empties_the_map(self, clock):
        limiter = make_rate_limiter(clock)
        limiter.record_failure(IDENT)
        limiter.clear()
        assert len(limiter) == 0


class TestConcurrency:
    def test_concurrent_failures_are_all_counted(self):
        limiter = LoginRateLimiter(threshold=1000, base_delay=1, max_delay=1, clock=FakeClock())
        workers = 50
        barrier = threading.Barrier(workers)

        def fail_once():
            barrier.wait()
            limiter.record_failure(IDENT)

        threads = [threading.Thread(target=fail_once) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert limiter.get_entry(IDENT).failure_count == workers

    def test_get_entry_returns_a_copy(self, clock):
        limiter = make_rate_limiter(clock)
        limiter.record_failure(IDENT)
        snapshot = limiter.get_entry(IDENT)
        snapshot.failure_count = 99
        assert limiter.get_entry(IDENT).failure_count == 1


class TestReservation:
    def test_in_flight_attempts_are_capped_at_threshold(self, clock):
        limiter = make_rate_limiter(clock)
        for _ in range(THRESHOLD):
            assert limiter.reserve_attempt(IDENT).allowed is True

        refused = limiter.reserve_attempt(IDENT)
        assert refused.allowed is False
        assert refused.remaining_attempts == 0
        assert refused.retry_after_seconds == 1
        assert limiter.get_entry(IDENT).pending == THRESHOLD

    def test_recorded_failure_returns_its_slot(self, clock):
        limiter = make_rate_limiter(clock)
        for _ in range(THRESHOLD):
            limiter.reserve_attempt(IDENT)

        limiter.record_failure(IDENT)
        entry = limiter.get_entry(IDENT)
        assert entry.failure_count == 1
        assert entry.pending == THRESHOLD - 1
        # Two attempts still in flight could use up the remaining budget.
        assert limiter.reserve_attempt(IDENT).allowed is False

    def test_release_returns_slot_without_counting(self, clock):
        limiter = make_rate_limiter(clock)
        limiter.reserve_attempt(IDENT)
        limiter.release_attempt(IDENT)
        assert limiter.get_entry(IDENT) is None

    def test_release_keeps_failure_history(self, clock):
        limiter = make_rate_limiter(clock)
        limiter.record_failure(IDENT)
        limiter.reserve_attempt(IDENT)
        limiter.release_attempt(IDENT)
        entry = limiter.get_entry(IDENT)
        assert entry.failure_count == 1
        assert entry.pending == 0

    def test_success_frees_all_slots(self, clock):
        limiter = make_rate_limiter(clock)
        limiter.reserve_attempt(IDENT)
        limiter.reserve_attempt(IDENT)
        limiter.record_success(IDENT)
        assert limiter.get_entry(IDENT) is None
        assert limiter.reserve_attempt(IDENT).allowed is True

    def test_one_attempt_at_a_time_after_lock_expires(self, clock):
        limiter = make_rate_limiter(clock)
        for _ in range(THRESHOLD):
            limiter.record_failure(IDENT)
        clock.advance(BASE_DELAY + 1)

        assert limiter.reserve_attempt(IDENT).allowed is True
        assert limiter.reserve_attempt(IDENT).allowed is False
        assert limiter.get_entry(IDENT).locked_until is None

    def test_refused_attempt_stamps_last_attempt(self, clock):
        limiter = make_rate_limiter(clock)
        for _ in range(THRESHOLD):
            limiter.record_failure(IDENT)
        clock.advance(BASE_DELAY / 2)

        assert limiter.reserve_attempt(IDENT).allowed is False
        assert limiter.get_entry(IDENT).last_attempt_at == clock.now

    def test_concurrent_reservations_never_exceed_budget(self, clock):
        limiter = make_rate_limiter(clock)
        workers = 50
        barrier = threading.Barrier(workers)
        decisions = []

        def reserve():
            barrier.wait()
            decisions.append(limiter.reserve_attempt(IDENT))

        threads = [threading.Thread(target=reserve) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(d.allowed for d in decisions) == THRESHOLD
        assert limiter.get_entry(IDENT).pending == THRESHOLD
