# Overview: Concurrency primitives for stock, threshold and order mutations.

"""
Locking model

- Per-key in-process locks serialize the read -> compute -> write -> commit
  sequence for one stock key, one threshold scope or one order id. Different
  keys never contend; there is no global lock.
- Locks taken through acquire_for_transaction() are held until the enclosing
  atomic() block commits or rolls back. Callers that touch several keys take
  them in one call, which acquires in a stable sorted order.
- Acquisition order across a transaction is always: one order key, then
  stock keys. Cross-order effects go through pipeline events, which run in
  their own transaction after the emitting one has released its locks.
- Across processes the same guarantees come from row locks (with_for_update,
  honored by PostgreSQL/MySQL) and optimistic version_id columns; a lost race
  surfaces as StaleDataError and is retried by run_with_retry.
- Nothing in here ever wraps network I/O.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Hashable

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


class _KeyedLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


class KeyedLocks:
    """
    Registry of reentrant locks, one per logical key.

    An entry lives only while some thread holds or waits for it; the last
    release removes it, so the registry stays as small as the set of keys
    currently in use.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[Hashable, _KeyedLock] = {}

    def acquire(self, key: Hashable) -> None:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyedLock()
            entry.users += 1
        # block outside the guard so other keys stay available
        entry.lock.acquire()

    def release(self, key: Hashable) -> None:
        with self._guard:
            entry = self._locks[key]
            entry.lock.release()
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


_registry = KeyedLocks()
_local = threading.local()


def stock_key(workstation_id: int, item_type: str, item_id: int) -> tuple:
    return ("stock", int(workstation_id), item_type, int(item_id))


def threshold_key(scope_key: str) -> tuple:
    return ("threshold", scope_key)


def order_key(order_id: int) -> tuple:
    return ("order", int(order_id))


def _held() -> list:
    if not hasattr(_local, "held"):
        _local.held = []
        _local.depth = 0
    return _local.held


def acquire_for_transaction(*keys: Hashable) -> None:
    """
    Acquire key locks until the enclosing atomic() finishes.

    Must be called inside atomic(). Reacquiring a key already held by this
    thread is a no-op apart from the reentrant count.
    """
    held = _held()
    if _local.depth == 0:
        raise RuntimeError("acquire_for_transaction() called outside atomic()")
    for key in sorted(set(keys), key=repr):
        _registry.acquire(key)
        held.append(key)


def _release_all() -> None:
    held = _held()
    while held:
        _registry.release(held.pop())


def registered_lock_count() -> int:
    """Keys currently held or waited on, across all threads."""
    return len(_registry)


@contextmanager
def atomic():
    """
    Transaction scope. The outermost block commits on success, rolls back on
    any error, and then releases every lock acquired inside it. Nested blocks
    join the outer transaction.
    """
    _held()
    outermost = _local.depth == 0
    _local.depth += 1
    try:
        yield db.session
        if outermost:
            db.session.commit()
    except BaseException:
        if outermost:
            db.session.rollback()
        raise
    finally:
        _local.depth -= 1
        if outermost:
            _release_all()


def in_transaction() -> bool:
    _held()
    return _local.depth > 0


def lock_for_update(query):
    """
    Apply row-level locking and refresh identity-mapped rows.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; the in-process key locks cover it.
    """
    return query.populate_existing().with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, retry_on: tuple = ()):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (database locked, deadlock) and StaleDataError
    (optimistic version conflict), plus any extra exception types in retry_on.
    Only the outermost caller retries; inside an open transaction the error
    propagates so the whole unit is retried.
    """
    if in_transaction():
        return func()
    retryable = (OperationalError, StaleDataError) + tuple(retry_on)
    for attempt in range(attempts):
        try:
            return func()
        except retryable:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
