from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.dependencies import SuspiciousOrderNotifier
from app.models.order import Order, OrderStatus
from app.models.order_event import OrderEvent, OrderEventType
from app.observability import log_event, metrics_store
from app.services.pattern_detector import Verdict


def _ids_to_flag(db: Session, order: Order, verdict: Verdict) -> list[int]:
    """The subject when its stored verdict differs, plus unflagged pending siblings.

    Approved siblings count for detection but are never flagged themselves.
    """
    ids: list[int] = []
    if not (
        order.is_suspicious
        and order.suspicious_reason == verdict.reason
        and order.linked_merged_order_id == verdict.linked_merged_order_id
    ):
        ids.append(order.id)

    if verdict.related_order_ids:
        ids.extend(
            db.scalars(
                select(Order.id)
                .where(
                    Order.id.in_(verdict.related_order_ids),
                    Order.status == OrderStatus.PENDING,
                    Order.is_suspicious.is_(False),
                )
                .order_by(Order.id.asc())
            )
        )
    return ids


def mark(
    db: Session,
    order: Order,
    verdict: Verdict | None,
    *,
    notifier: SuspiciousOrderNotifier,
) -> list[int]:
    """Persist ``verdict`` on ``order`` (and its unflagged pending siblings).

    Returns the ids whose record changed. Calling again with an equivalent
    verdict changes nothing and notifies nobody. The caller owns the commit.
    """
    if verdict is None:
        raise ValueError("mark() requires a verdict")

    was_suspicious = bool(order.is_suspicious)
    ids = _ids_to_flag(db, order, verdict)
    if not ids:
        return []

    db.execute(
        update(Order)
        .where(Order.id.in_(ids))
        .values(
            is_suspicious=True,
            suspicious_reason=verdict.reason,
            linked_merged_order_id=verdict.linked_merged_order_id,
        )
        .execution_options(synchronize_session="fetch")
    )

    for order_id in ids:
        db.add(
            OrderEvent(
                order_id=order_id,
                type=OrderEventType.FLAGGED_SUSPICIOUS,
                message=verdict.reason,
                payload={
                    "trigger_order_id": order.id,
                    "related_order_ids": sorted(verdict.related_order_ids),
                    "linked_merged_order_id": verdict.linked_merged_order_id,
                },
            )
        )

    metrics_store.increment("suspicious_orders_flagged_total", len(ids))
    log_event(
        "orders_marked_suspicious",
        order_id=order.id,
        customer_id=order.customer_id,
        flagged_order_ids=ids,
        reason=verdict.reason,
        linked_merged_order_id=verdict.linked_merged_order_id,
    )

    newly_flagged = [order_id for order_id in ids if order_id != order.id or not was_suspicious]
    if newly_flagged:
        notifier.notify_suspicious_order(
            order_id=order.id,
            customer_id=order.customer_id,
            reason=verdict.reason,
            related_order_ids=sorted(verdict.related_order_ids),
            linked_merged_order_id=verdict.linked_merged_order_id,
        )
        metrics_store.increment("suspicious_order_notifications_total")
    return ids


def clear(db: Session, order: Order, *, admin_id: str) -> Order:
    """Dismiss a suspicion flag set by detection. The caller owns the commit."""
    if not order.is_suspicious:
        return order

    previous_reason = order.suspicious_reason
    order.is_suspicious = False
    order.suspicious_reason = None
    order.linked_merged_order_id = None
    order.admin_id = admin_id
    db.add(
        OrderEvent(
            order_id=order.id,
            type=OrderEventType.SUSPICION_CLEARED,
            message="Suspicious flag cleared",
            payload={"previous_reason": previous_reason},
            admin_id=admin_id,
        )
    )
    metrics_store.increment("suspicion_cleared_total")
    log_event(
        "suspicious_flag_cleared",
        order_id=order.id,
        customer_id=order.customer_id,
        admin_id=admin_id,
    )
    return order
