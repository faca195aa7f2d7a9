import threading
from datetime import datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import app.models  # noqa: F401
from app.config import settings
from app.db.base import Base
from app.db.session import engine as app_engine
from app.db.session import get_db
from app.dependencies import get_suspicious_order_notifier
from app.main import app
from app.observability import metrics_store
from app.schemas.order import OrderCreate
from app.services.customer_lock import customer_locks
from app.services.orders_service import create_order


class RecordingNotifier:
    def __init__(self) -> None:
        self.notifications: list[dict] = []

    def notify_suspicious_order(self, **kwargs) -> None:
        self.notifications.append(kwargs)


@pytest.fixture(scope="session", autouse=True)
def setup_test_schema():
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    yield
    Base.metadata.drop_all(bind=app_engine)


@pytest.fixture(autouse=True)
def reset_db():
    customer_locks.reset()
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    yield


@pytest.fixture(autouse=True)
def reset_metrics_store():
    metrics_store.reset()
    yield


@pytest.fixture(scope="session", autouse=True)
def enable_testing_mode():
    original = settings.testing
    settings.testing = True
    yield
    settings.testing = original


@pytest.fixture
def db_session():
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=app_engine)
    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def place_order(db_session, notifier):
    def _place(
        at: datetime,
        customer_id: str = "cust-1",
        total_amount: str = "100.00",
    ):
        return create_order(
            db_session,
            OrderCreate(customer_id=customer_id, total_amount=Decimal(total_amount)),
            notifier=notifier,
            created_at=at,
        )

    return _place


@pytest.fixture
def client(db_session, notifier):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=app_engine)
    db_session_lock = threading.Lock()

    def override_get_db():
        if db_session_lock.acquire(blocking=False):
            try:
                yield db_session
            finally:
                db_session_lock.release()
            return

        db = testing_session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_suspicious_order_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"X-Admin-Id": "admin-1"}
