from datetime import datetime
from typing import Literal

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.dependencies import SuspiciousOrderNotifier
from app.models.domain import as_utc, now_utc
from app.models.order import Order, OrderStatus
from app.models.order_event import OrderEvent, OrderEventType
from app.observability import log_event, metrics_store
from app.schemas.order import OrderCreate
from app.services import pattern_detector, suspicion_marker
from app.services.customer_lock import customer_critical_section
from app.services.errors import InvalidGroupVerdict
from app.services.state_machine import ensure_valid_transition, event_type_for_status

GROUP_VERDICT_STATUSES = (OrderStatus.PENDING, OrderStatus.DELAYED)


def _append_event(
    db: Session,
    order_id: int,
    event_type: OrderEventType,
    message: str,
    payload: dict | None = None,
    admin_id: str | None = None,
) -> None:
    db.add(
        OrderEvent(
            order_id=order_id,
            type=event_type,
            message=message,
            payload=payload or {},
            admin_id=admin_id,
        )
    )


def transition_order_status(
    db: Session,
    order: Order,
    next_status: OrderStatus,
    message: str,
    *,
    admin_id: str | None = None,
    payload: dict | None = None,
) -> Order:
    previous_status = order.status
    ensure_valid_transition(previous_status, next_status)

    if previous_status == next_status:
        return order

    order.status = next_status
    if admin_id is not None:
        order.admin_id = admin_id
    _append_event(
        db,
        order.id,
        event_type_for_status(next_status),
        message,
        {
            "from_status": previous_status.value,
            "to_status": next_status.value,
            **(payload or {}),
        },
        admin_id=admin_id,
    )
    return order


def create_order(
    db: Session,
    payload: OrderCreate,
    *,
    notifier: SuspiciousOrderNotifier,
    created_at: datetime | None = None,
) -> Order:
    """Persist a pending order and run suspicious pattern detection on it.

    Detection and marking happen inside the customer's critical section and
    are committed before this returns.
    """
    with customer_critical_section(db, payload.customer_id):
        try:
            order = Order(
                customer_id=payload.customer_id,
                total_amount=payload.total_amount,
                admin_notes=payload.admin_notes or None,
                status=OrderStatus.PENDING,
                created_at=as_utc(created_at) if created_at else now_utc(),
            )
            db.add(order)
            db.flush()

            _append_event(db, order.id, OrderEventType.CREATED, "Order created")

            verdict = pattern_detector.detect(db, order)
            if verdict is not None:
                suspicion_marker.mark(db, order, verdict, notifier=notifier)

            db.commit()
        except Exception:
            db.rollback()
            raise

    db.refresh(order)
    metrics_store.increment("orders_created_total")
    log_event(
        "order_created",
        order_id=order.id,
        customer_id=order.customer_id,
        is_suspicious=order.is_suspicious,
    )
    return order


def get_order(db: Session, order_id: int) -> Order:
    order = db.get(Order, order_id)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


def list_orders(
    db: Session,
    status_filter: OrderStatus | None = None,
    *,
    customer_id: str | None = None,
    suspicious: bool | None = None,
) -> list[Order]:
    query = select(Order)
    if status_filter:
        query = query.where(Order.status == status_filter)
    if customer_id:
        query = query.where(Order.customer_id == customer_id)
    if suspicious is not None:
        query = query.where(Order.is_suspicious.is_(suspicious))
    return list(db.scalars(query.order_by(Order.created_at.desc(), Order.id.desc())))


def list_order_events(db: Session, order_id: int) -> list[OrderEvent]:
    get_order(db, order_id)
    events = db.scalars(
        select(OrderEvent)
        .where(OrderEvent.order_id == order_id)
        .order_by(OrderEvent.created_at.asc(), OrderEvent.id.asc())
    )
    return list(events)


def _admin_action(
    db: Session,
    order_id: int,
    next_status: OrderStatus,
    message: str,
    admin_id: str,
    admin_notes: str | None,
) -> Order:
    order = get_order(db, order_id)
    if order.status == next_status:
        return order

    transition_order_status(
        db,
        order,
        next_status,
        message,
        admin_id=admin_id,
        payload={"admin_notes": admin_notes} if admin_notes else None,
    )
    if admin_notes:
        order.admin_notes = admin_notes
    db.commit()
    db.refresh(order)
    log_event(
        f"order_{next_status.value}",
        order_id=order.id,
        customer_id=order.customer_id,
        admin_id=admin_id,
    )
    return order


def approve_order(
    db: Session, order_id: int, admin_id: str, admin_notes: str | None = None
) -> Order:
    return _admin_action(
        db, order_id, OrderStatus.APPROVED, "Order approved", admin_id, admin_notes
    )


def reject_order(
    db: Session, order_id: int, admin_id: str, admin_notes: str | None = None
) -> Order:
    return _admin_action(
        db, order_id, OrderStatus.REJECTED, "Order rejected", admin_id, admin_notes
    )


def delay_order(
    db: Session, order_id: int, admin_id: str, admin_notes: str | None = None
) -> Order:
    return _admin_action(db, order_id, OrderStatus.DELAYED, "Order delayed", admin_id, admin_notes)


def cancel_order(
    db: Session, order_id: int, admin_id: str, admin_notes: str | None = None
) -> Order:
    return _admin_action(
        db, order_id, OrderStatus.CANCELLED, "Order cancelled", admin_id, admin_notes
    )


def clear_suspicion(db: Session, order_id: int, admin_id: str) -> Order:
    order = get_order(db, order_id)
    suspicion_marker.clear(db, order, admin_id=admin_id)
    db.commit()
    db.refresh(order)
    return order


def apply_group_verdict(
    db: Session,
    order_ids: list[int],
    verdict: Literal["approve", "reject"],
    admin_id: str,
    admin_notes: str | None = None,
) -> list[Order]:
    """Approve or reject a customer's group of orders as one decision."""
    next_status = OrderStatus.APPROVED if verdict == "approve" else OrderStatus.REJECTED
    unique_ids = list(dict.fromkeys(order_ids))

    orders = list(db.scalars(select(Order).where(Order.id.in_(unique_ids))))
    if not orders:
        raise InvalidGroupVerdict("No orders found", unique_ids)
    found = {order.id for order in orders}
    missing = [order_id for order_id in unique_ids if order_id not in found]
    if missing:
        raise InvalidGroupVerdict("Orders not found", missing)
    if len({order.customer_id for order in orders}) > 1:
        raise InvalidGroupVerdict(
            "Cannot apply group verdict to orders from different customers", unique_ids
        )
    invalid = [order.id for order in orders if order.status not in GROUP_VERDICT_STATUSES]
    if invalid:
        raise InvalidGroupVerdict(
            "Only pending or delayed orders can be approved/rejected", invalid
        )

    try:
        for order in sorted(orders, key=lambda item: item.id):
            transition_order_status(
                db,
                order,
                next_status,
                f"Order {next_status.value} by group verdict",
                admin_id=admin_id,
                payload={"group_order_ids": unique_ids},
            )
            if admin_notes:
                order.admin_notes = admin_notes
        db.commit()
    except Exception:
        db.rollback()
        log_event(
            "group_verdict_failed",
            admin_id=admin_id,
            order_ids=unique_ids,
            verdict=verdict,
        )
        raise

    metrics_store.increment(f"group_verdict_{verdict}_total")
    log_event(
        "group_verdict_applied",
        customer_id=orders[0].customer_id,
        admin_id=admin_id,
        order_ids=unique_ids,
        verdict=verdict,
    )
    for order in orders:
        db.refresh(order)
    return sorted(orders, key=lambda item: item.id)
