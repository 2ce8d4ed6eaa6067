# Overview: Transaction, retry and locking helpers shared by the inventory services.

from __future__ import annotations

import threading
import time
import zlib
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


SKU_LOCK_STRIPES = 64
_sku_locks = tuple(threading.Lock() for _ in range(SKU_LOCK_STRIPES))


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


@contextmanager
def sku_lock(base_sku: str | None):
    """
    Serialize cascade recomputation per base SKU within this process.

    Complements the main-product row lock, which SQLite does not honor.
    Keys map onto a fixed pool of striped locks, so unrelated SKUs may
    occasionally share one. Never nest sku_lock calls.
    """
    key = (base_sku or "").upper()
    lock = _sku_locks[zlib.crc32(key.encode("utf-8")) % SKU_LOCK_STRIPES]
    with lock:
        yield


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
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


def run_in_transaction(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run ``func`` as one unit of work and commit it.

    Any exception rolls the whole session back before propagating, so no
    partial quantity change or ledger row is ever persisted.
    """
    def _op():
        try:
            result = func()
            db.session.commit()
            return result
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
