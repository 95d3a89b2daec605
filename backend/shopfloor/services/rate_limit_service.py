# Overview: Service-layer operations for PIN verification throttling.

"""
PIN Verification Rate Limiting Service

WHY: PINs are short. Without throttling, an attacker on the shop network
could walk the whole PIN space in minutes.

Two independent gates, both of which must pass:

1. Sliding window: at most MAX_ATTEMPTS_PER_WINDOW allowed attempts per
   source key in any WINDOW (60s).
2. Backoff ladder keyed by consecutive failures, measured from the most
   recent failure:

       failures   wait
       0-1        none
       2          5s
       3          30s
       4+         300s

record_success() clears the failure counter and lifts the backoff.

CONCURRENCY: check() reads both gates and records the attempt as one unit:
a striped process lock plus a row lock on the RateLimitRecord (SQLite
ignores FOR UPDATE, the process lock covers it there). Two racing requests
from the same key therefore cannot both slip under the window.

The source key is opaque here. Deriving it from the request (proxy headers
vs socket address) is request_gate.client_source_key().
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import RateLimitAttempt, RateLimitRecord
from ..time_utils import seconds_until, utcnow
from .concurrency import LockStripes, lock_for_update, run_with_retry


# Configuration constants
WINDOW = timedelta(seconds=60)
MAX_ATTEMPTS_PER_WINDOW = 5
BACKOFF_LADDER = (
    timedelta(0),
    timedelta(0),
    timedelta(seconds=5),
    timedelta(seconds=30),
    timedelta(seconds=300),
)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after: int | None = None


LOCK_STRIPES = 64
_key_locks = LockStripes(LOCK_STRIPES)


def _lock_for(source_key: str) -> threading.Lock:
    return _key_locks.for_key(source_key)


def backoff_for(consecutive_failures: int) -> timedelta:
    """Wait imposed after the given number of consecutive failures."""
    if consecutive_failures <= 0:
        return BACKOFF_LADDER[0]
    return BACKOFF_LADDER[min(consecutive_failures, len(BACKOFF_LADDER) - 1)]


def _locked_record(source_key: str, create: bool) -> RateLimitRecord | None:
    query = db.session.query(RateLimitRecord).filter_by(source_key=source_key)
    record = lock_for_update(query).first()
    if record is not None or not create:
        return record

    # First failure for this key; another worker may insert the same key.
    # Callers start a fresh transaction, so a rollback here loses nothing.
    record = RateLimitRecord(source_key=source_key, consecutive_failures=0)
    db.session.add(record)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        record = lock_for_update(query).first()
    return record


def check(source_key: str) -> RateLimitDecision:
    """
    Decide whether a verification attempt from source_key may proceed.

    An allowed decision is recorded as an attempt in the same transaction.
    """
    def _op() -> RateLimitDecision:
        now = utcnow()

        record = _locked_record(source_key, create=False)
        if record is not None and record.next_allowed_at is not None and record.next_allowed_at > now:
            db.session.commit()
            return RateLimitDecision(False, seconds_until(record.next_allowed_at, now))

        window_start = now - WINDOW
        recent = (
            db.session.query(RateLimitAttempt.attempted_at)
            .filter(
                RateLimitAttempt.source_key == source_key,
                RateLimitAttempt.attempted_at > window_start,
            )
            .order_by(RateLimitAttempt.attempted_at.asc())
            .all()
        )
        if len(recent) >= MAX_ATTEMPTS_PER_WINDOW:
            # The window frees up when the oldest counted attempt ages out.
            oldest = recent[len(recent) - MAX_ATTEMPTS_PER_WINDOW][0]
            db.session.commit()
            return RateLimitDecision(False, seconds_until(oldest + WINDOW, now))

        db.session.add(RateLimitAttempt(source_key=source_key, attempted_at=now))
        db.session.commit()
        return RateLimitDecision(True)

    with _lock_for(source_key):
        return run_with_retry(_op)


def record_failure(source_key: str) -> RateLimitRecord:
    """Count a failed verification and push next_allowed_at forward."""
    def _op() -> RateLimitRecord:
        now = utcnow()
        record = _locked_record(source_key, create=True)
        record.consecutive_failures = (record.consecutive_failures or 0) + 1
        record.last_failure_at = now
        candidate = now + backoff_for(record.consecutive_failures)
        if record.next_allowed_at is None or candidate > record.next_allowed_at:
            record.next_allowed_at = candidate
        record.updated_at = now
        db.session.commit()
        return record

    with _lock_for(source_key):
        return run_with_retry(_op)


def record_success(source_key: str) -> None:
    """Reset the failure counter and lift any backoff."""
    def _op() -> None:
        record = _locked_record(source_key, create=False)
        if record is not None:
            record.consecutive_failures = 0
            record.next_allowed_at = None
            record.updated_at = utcnow()
        db.session.commit()

    with _lock_for(source_key):
        run_with_retry(_op)


def get_status(source_key: str) -> dict:
    """
    Snapshot of limiter state for one key (operator tooling).

    Returns dict with:
    - consecutive_failures: int
    - next_allowed_at: ISO string | None
    - attempts_in_window: int
    - max_attempts: int
    """
    now = utcnow()
    record = db.session.query(RateLimitRecord).filter_by(source_key=source_key).first()
    attempts = db.session.query(RateLimitAttempt).filter(
        RateLimitAttempt.source_key == source_key,
        RateLimitAttempt.attempted_at > now - WINDOW,
    ).count()

    data = record.to_dict() if record else {
        "source_key": source_key,
        "consecutive_failures": 0,
        "last_failure_at": None,
        "next_allowed_at": None,
    }
    data["attempts_in_window"] = attempts
    data["max_attempts"] = MAX_ATTEMPTS_PER_WINDOW
    data["window_seconds"] = int(WINDOW.total_seconds())
    return data


def purge_stale(now=None) -> int:
    """
    Delete attempt rows older than the window and records whose backoff is
    over with no failures outstanding. Returns rows removed.
    """
    now = now or utcnow()
    removed = db.session.query(RateLimitAttempt).filter(
        RateLimitAttempt.attempted_at <= now - WINDOW,
    ).delete(synchronize_session=False)
    removed += db.session.query(RateLimitRecord).filter(
        RateLimitRecord.consecutive_failures == 0,
        db.or_(RateLimitRecord.next_allowed_at.is_(None), RateLimitRecord.next_allowed_at <= now),
    ).delete(synchronize_session=False)
    return removed
