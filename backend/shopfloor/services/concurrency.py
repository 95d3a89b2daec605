# Overview: Locking, retry and compare-and-swap helpers shared by the services.

from __future__ import annotations

import threading
import time
import zlib

from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write sequences.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; callers that need the guarantee
    there also hold a LockStripes lock (see rate_limit_service).
    """
    return query.with_for_update()


class LockStripes:
    """
    Fixed pool of process locks addressed by key.

    A key always maps to the same lock and the pool never grows, so callers
    can lock per source address or per ticket without tracking keys. Two keys
    may share a stripe; never hold one stripe while taking another.
    """

    def __init__(self, count: int = 64):
        self._locks = tuple(threading.Lock() for _ in range(count))

    def __len__(self) -> int:
        return len(self._locks)

    def for_key(self, key) -> threading.Lock:
        return self._locks[zlib.crc32(str(key).encode("utf-8")) % len(self._locks)]


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, "database is locked") and
    StaleDataError. The session is rolled back before each retry so func()
    always starts from a clean transaction.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def compare_and_swap(model, conditions, values: dict) -> bool:
    """
    Single conditional UPDATE: set `values` on rows matching all `conditions`.

    Returns True if exactly one row changed. The caller owns the transaction
    (commit or rollback). Identity-map objects are not refreshed; expire or
    re-query them if you need the new values.
    """
    stmt = (
        update(model)
        .where(*conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return result.rowcount == 1
