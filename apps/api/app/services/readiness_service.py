from collections.abc import Callable, Mapping
from typing import Literal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.order import Order
from app.models.order_merge import OrderMergeMember
from app.observability import log_event, metrics_store

ReadinessStatus = Literal["ok", "error"]


def safe_dependency_status(
    dependency_name: str,
    checker: Callable[[], ReadinessStatus],
) -> ReadinessStatus:
    metrics_store.increment("readiness_dependency_checked_total")
    try:
        status = checker()
    except Exception as exc:  # readiness must fail closed to degraded
        metrics_store.increment("readiness_dependency_error_total")
        log_event(
            "readiness_dependency_check_failed",
            dependency=dependency_name,
            error=type(exc).__name__,
        )
        return "error"

    if status == "ok":
        return "ok"

    metrics_store.increment("readiness_dependency_error_total")
    if status != "error":
        log_event("readiness_dependency_status_invalid", dependency=dependency_name, status=status)
    return "error"


def database_dependency_status(
    session_factory: Callable[[], Session],
) -> ReadinessStatus:
    """Probe the order and merge tables, not just the connection."""
    try:
        with session_factory() as db:
            db.execute(select(Order.id).limit(1))
            db.execute(select(OrderMergeMember.id).limit(1))
    except SQLAlchemyError:
        return "error"
    return "ok"


def readiness_report(
    checks: Mapping[str, Callable[[], ReadinessStatus]],
) -> tuple[Literal["ok", "degraded"], list[tuple[str, ReadinessStatus]]]:
    results = [(name, safe_dependency_status(name, checker)) for name, checker in checks.items()]
    overall = "ok" if all(status == "ok" for _, status in results) else "degraded"
    return overall, results
