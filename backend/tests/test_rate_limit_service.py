"""
Rate limiter tests.

Verifies:
- Sliding window of 5 allowed attempts per 60 seconds per key
- Backoff ladder by consecutive failures (0, 0, 5s, 30s, 300s, capped)
- retry_after is a positive whole number of seconds
- Success resets the ladder; keys are independent
- Racing checks on one key never let more than the window through
"""

import pytest

from shopfloor.extensions import db
from shopfloor.models import RateLimitAttempt, RateLimitRecord
from shopfloor.services import rate_limit_service
from shopfloor.services.rate_limit_service import LOCK_STRIPES, MAX_ATTEMPTS_PER_WINDOW, backoff_for

from conftest import run_concurrently


KEY = "10.0.0.7"


class TestBackoffLadder:

    @pytest.mark.parametrize("failures,seconds", [
        (0, 0),
        (1, 0),
        (2, 5),
        (3, 30),
        (4, 300),
        (9, 300),
    ])
    def test_ladder(self, failures, seconds):
        assert backoff_for(failures).total_seconds() == seconds


class TestSlidingWindow:

    def test_sixth_attempt_in_window_is_refused(self, clock, db_session):
        for _ in range(MAX_ATTEMPTS_PER_WINDOW):
            assert rate_limit_service.check(KEY).allowed

        decision = rate_limit_service.check(KEY)
        assert not decision.allowed
        assert decision.retry_after == 60

    def test_window_slides(self, clock, db_session):
        for _ in range(MAX_ATTEMPTS_PER_WINDOW):
            rate_limit_service.check(KEY)
            clock.advance(seconds=10)

        # Oldest attempt was 50s ago: it ages out in 10s.
        decision = rate_limit_service.check(KEY)
        assert not decision.allowed
        assert decision.retry_after == 10

        clock.advance(seconds=10)
        assert rate_limit_service.check(KEY).allowed

    def test_refused_checks_are_not_counted(self, clock, db_session):
        for _ in range(MAX_ATTEMPTS_PER_WINDOW + 3):
            rate_limit_service.check(KEY)
        assert db_session.query(RateLimitAttempt).filter_by(source_key=KEY).count() == MAX_ATTEMPTS_PER_WINDOW

    def test_keys_are_independent(self, clock, db_session):
        for _ in range(MAX_ATTEMPTS_PER_WINDOW):
            rate_limit_service.check(KEY)
        assert not rate_limit_service.check(KEY).allowed
        assert rate_limit_service.check("10.0.0.8").allowed


class TestFailureBackoff:

    def test_first_failure_imposes_no_wait(self, clock, db_session):
        rate_limit_service.record_failure(KEY)
        assert rate_limit_service.check(KEY).allowed

    def test_ladder_through_check(self, clock, db_session):
        rate_limit_service.record_failure(KEY)
        rate_limit_service.record_failure(KEY)
        decision = rate_limit_service.check(KEY)
        assert not decision.allowed
        assert decision.retry_after == 5

        clock.advance(seconds=5)
        assert rate_limit_service.check(KEY).allowed

        rate_limit_service.record_failure(KEY)
        assert rate_limit_service.check(KEY).retry_after == 30

        clock.advance(seconds=30)
        assert rate_limit_service.check(KEY).allowed

        rate_limit_service.record_failure(KEY)
        assert rate_limit_service.check(KEY).retry_after == 300

        rate_limit_service.record_failure(KEY)
        assert rate_limit_service.check(KEY).retry_after == 300

    def test_retry_after_rounds_up(self, clock, db_session):
        rate_limit_service.record_failure(KEY)
        rate_limit_service.record_failure(KEY)
        clock.advance(seconds=4, milliseconds=100)
        assert rate_limit_service.check(KEY).retry_after == 1

    def test_success_resets(self, clock, db_session):
        for _ in range(4):
            rate_limit_service.record_failure(KEY)
        assert not rate_limit_service.check(KEY).allowed

        rate_limit_service.record_success(KEY)
        assert rate_limit_service.check(KEY).allowed
        record = db_session.query(RateLimitRecord).filter_by(source_key=KEY).one()
        assert record.consecutive_failures == 0
        assert record.next_allowed_at is None

    def test_both_gates_must_pass(self, clock, db_session):
        for _ in range(MAX_ATTEMPTS_PER_WINDOW):
            rate_limit_service.check(KEY)
        rate_limit_service.record_failure(KEY)
        rate_limit_service.record_failure(KEY)

        # Backoff over, window still full.
        clock.advance(seconds=5)
        decision = rate_limit_service.check(KEY)
        assert not decision.allowed
        assert decision.retry_after == 55


class TestStatusAndPurge:

    def test_get_status(self, clock, db_session):
        rate_limit_service.check(KEY)
        rate_limit_service.record_failure(KEY)
        status = rate_limit_service.get_status(KEY)
        assert status["consecutive_failures"] == 1
        assert status["attempts_in_window"] == 1
        assert status["max_attempts"] == MAX_ATTEMPTS_PER_WINDOW

    def test_unknown_key_status(self, clock, db_session):
        status = rate_limit_service.get_status("never-seen")
        assert status["consecutive_failures"] == 0
        assert status["attempts_in_window"] == 0

    def test_purge_removes_only_stale_rows(self, clock, db_session):
        rate_limit_service.check(KEY)
        rate_limit_service.record_failure("10.0.0.9")
        rate_limit_service.record_failure("10.0.0.9")
        clock.advance(seconds=61)
        rate_limit_service.check("10.0.0.10")

        rate_limit_service.purge_stale(clock.now)
        db_session.commit()

        assert db_session.query(RateLimitAttempt).filter_by(source_key=KEY).count() == 0
        assert db_session.query(RateLimitAttempt).filter_by(source_key="10.0.0.10").count() == 1
        # Failures outstanding: the record is kept so the ladder keeps climbing.
        assert db_session.query(RateLimitRecord).filter_by(source_key="10.0.0.9").count() == 1


class TestLocking:

    def test_lock_pool_does_not_grow_with_keys(self, clock, db_session):
        for n in range(200):
            rate_limit_service.check(f"10.1.{n // 250}.{n % 250}")
        clock.advance(hours=1)
        rate_limit_service.purge_stale(clock.now)

        assert len(rate_limit_service._key_locks) == LOCK_STRIPES
        assert rate_limit_service._lock_for(KEY) is rate_limit_service._lock_for(KEY)

    def test_racing_checks_never_exceed_window(self, file_app):
        results = run_concurrently(file_app, lambda: rate_limit_service.check(KEY).allowed, 10)

        assert len(results) == 10
        assert results.count(True) == MAX_ATTEMPTS_PER_WINDOW
        with file_app.app_context():
            assert db.session.query(RateLimitAttempt).filter_by(source_key=KEY).count() == MAX_ATTEMPTS_PER_WINDOW
