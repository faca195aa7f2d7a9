from app.observability import metrics_store


def test_database_dependency_status_handles_sqlalchemy_error():
    from sqlalchemy.exc import SQLAlchemyError

    from app.services.readiness_service import database_dependency_status

    class BrokenSession:
        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            return False

        def execute(self, *args, **kwargs):
            raise SQLAlchemyError("db down")

    assert database_dependency_status(BrokenSession) == "error"


def test_database_dependency_status_ok_against_test_database():
    from app.db.session import SessionLocal
    from app.services.readiness_service import database_dependency_status

    assert database_dependency_status(SessionLocal) == "ok"


def test_safe_dependency_status_logs_unexpected_exception(monkeypatch):
    from app.services import readiness_service

    events: list[tuple[str, dict]] = []

    def _record_event(message: str, **kwargs):
        events.append((message, kwargs))

    def _raises():
        raise RuntimeError("boom")

    monkeypatch.setattr(readiness_service, "log_event", _record_event)

    result = readiness_service.safe_dependency_status("database", _raises)

    snapshot = metrics_store.snapshot()
    assert result == "error"
    assert snapshot.counters.get("readiness_dependency_checked_total") == 1
    assert snapshot.counters.get("readiness_dependency_error_total") == 1
    assert events == [
        (
            "readiness_dependency_check_failed",
            {"dependency": "database", "error": "RuntimeError"},
        )
    ]


def test_safe_dependency_status_increments_metrics_for_error_status():
    from app.services.readiness_service import safe_dependency_status

    result = safe_dependency_status("database", lambda: "error")

    snapshot = metrics_store.snapshot()
    assert result == "error"
    assert snapshot.counters.get("readiness_dependency_checked_total") == 1
    assert snapshot.counters.get("readiness_dependency_error_total") == 1


def test_safe_dependency_status_increments_metrics_for_ok_status():
    from app.services.readiness_service import safe_dependency_status

    result = safe_dependency_status("database", lambda: "ok")

    snapshot = metrics_store.snapshot()
    assert result == "ok"
    assert snapshot.counters.get("readiness_dependency_checked_total") == 1
    assert snapshot.counters.get("readiness_dependency_error_total", 0) == 0


def test_safe_dependency_status_treats_unexpected_status_as_error(monkeypatch):
    from app.services import readiness_service

    events: list[tuple[str, dict]] = []

    def _record_event(message: str, **kwargs):
        events.append((message, kwargs))

    monkeypatch.setattr(readiness_service, "log_event", _record_event)

    result = readiness_service.safe_dependency_status("database", lambda: "degraded")

    snapshot = metrics_store.snapshot()
    assert result == "error"
    assert snapshot.counters.get("readiness_dependency_error_total") == 1
    assert events == [
        (
            "readiness_dependency_status_invalid",
            {"dependency": "database", "status": "degraded"},
        )
    ]


def test_database_dependency_status_errors_without_order_tables(tmp_path):
    from sqlalchemy import create_engine
    from sqlalchemy.orm import sessionmaker

    from app.services.readiness_service import database_dependency_status

    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'empty.db'}")
    try:
        assert database_dependency_status(sessionmaker(bind=engine)) == "error"
    finally:
        engine.dispose()


def test_readiness_report_degrades_when_any_check_fails():
    from app.services.readiness_service import readiness_report

    overall, results = readiness_report({"database": lambda: "ok", "schema": lambda: "error"})

    assert overall == "degraded"
    assert results == [("database", "ok"), ("schema", "error")]
    assert readiness_report({"database": lambda: "ok"}) == ("ok", [("database", "ok")])
