import threading

from app.db.session import SessionLocal
from app.observability import metrics_store
from app.services.customer_lock import (
    CustomerLockRegistry,
    customer_critical_section,
    customer_locks,
)


def test_registry_shares_one_lock_per_customer_while_in_use():
    registry = CustomerLockRegistry()

    first = registry.checkout("cust-1")
    assert registry.checkout("cust-1") is first
    assert registry.checkout("cust-2") is not first
    assert len(registry) == 2

    registry.checkin("cust-1")
    assert len(registry) == 2
    registry.checkin("cust-1")
    registry.checkin("cust-2")
    assert len(registry) == 0


def test_locks_are_dropped_once_released(db_session):
    for index in range(50):
        with customer_critical_section(db_session, f"cust-{index}"):
            assert len(customer_locks) == 1

    assert len(customer_locks) == 0


def test_critical_section_releases_on_error(db_session):
    try:
        with customer_critical_section(db_session, "cust-1"):
            raise ValueError("boom")
    except ValueError:
        pass

    with customer_critical_section(db_session, "cust-1"):
        pass

    assert "customer_lock_contended_total" not in metrics_store.snapshot().counters


def test_same_customer_waits_for_the_holder(db_session):
    entered = threading.Event()
    release = threading.Event()
    order_of_entry: list[str] = []

    def holder():
        db = SessionLocal()
        try:
            with customer_critical_section(db, "cust-1"):
                order_of_entry.append("holder")
                entered.set()
                release.wait(timeout=5)
        finally:
            db.close()

    thread = threading.Thread(target=holder)
    thread.start()
    assert entered.wait(timeout=5)

    waiter = threading.Thread(target=lambda: _enter(order_of_entry))
    waiter.start()
    waiter.join(timeout=0.2)
    assert waiter.is_alive()

    release.set()
    thread.join(timeout=5)
    waiter.join(timeout=5)

    assert order_of_entry == ["holder", "waiter"]
    assert metrics_store.snapshot().counters["customer_lock_contended_total"] == 1


def test_different_customers_do_not_block(db_session):
    release = threading.Event()
    entered = threading.Event()

    def holder():
        db = SessionLocal()
        try:
            with customer_critical_section(db, "cust-1"):
                entered.set()
                release.wait(timeout=5)
        finally:
            db.close()

    thread = threading.Thread(target=holder)
    thread.start()
    assert entered.wait(timeout=5)
    try:
        with customer_critical_section(db_session, "cust-2"):
            pass
    finally:
        release.set()
        thread.join(timeout=5)

    assert "customer_lock_contended_total" not in metrics_store.snapshot().counters


def _enter(order_of_entry: list[str]) -> None:
    db = SessionLocal()
    try:
        with customer_critical_section(db, "cust-1"):
            order_of_entry.append("waiter")
    finally:
        db.close()


def test_waiting_thread_keeps_the_lock_registered(db_session):
    entered = threading.Event()
    release = threading.Event()
    order_of_entry: list[str] = []

    def holder():
        db = SessionLocal()
        try:
            with customer_critical_section(db, "cust-1"):
                entered.set()
                release.wait(timeout=5)
        finally:
            db.close()

    thread = threading.Thread(target=holder)
    thread.start()
    assert entered.wait(timeout=5)
    waiter = threading.Thread(target=lambda: _enter(order_of_entry))
    waiter.start()
    waiter.join(timeout=0.2)

    release.set()
    thread.join(timeout=5)
    waiter.join(timeout=5)

    assert order_of_entry == ["waiter"]
    assert len(customer_locks) == 0
