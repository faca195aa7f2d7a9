from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.observability import metrics_store


@dataclass
class _CustomerLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class CustomerLockRegistry:
    """Process-local mutex per customer id.

    Order creation (create, detect, mark) and merges for the same customer
    must not interleave; on PostgreSQL the transaction also takes an advisory
    lock so separate worker processes serialize too. A lock lives only while
    some thread holds or waits for it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, _CustomerLock] = {}

    def checkout(self, customer_id: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(customer_id)
            if entry is None:
                entry = _CustomerLock()
                self._locks[customer_id] = entry
            entry.users += 1
            return entry.lock

    def checkin(self, customer_id: str) -> None:
        with self._guard:
            entry = self._locks.get(customer_id)
            if entry is None:
                return
            entry.users -= 1
            if entry.users == 0:
                del self._locks[customer_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def reset(self) -> None:
        with self._guard:
            self._locks.clear()


customer_locks = CustomerLockRegistry()


def _acquire_advisory_lock(db: Session, customer_id: str) -> None:
    bind = db.get_bind()
    if bind.dialect.name != "postgresql":
        return
    # Released automatically when the surrounding transaction ends.
    db.execute(select(func.pg_advisory_xact_lock(func.hashtext(f"customer:{customer_id}"))))


@contextmanager
def customer_critical_section(db: Session, customer_id: str) -> Iterator[None]:
    lock = customer_locks.checkout(customer_id)
    try:
        if not lock.acquire(blocking=False):
            metrics_store.increment("customer_lock_contended_total")
            lock.acquire()
        try:
            _acquire_advisory_lock(db, customer_id)
            yield
        finally:
            lock.release()
    finally:
        customer_locks.checkin(customer_id)
