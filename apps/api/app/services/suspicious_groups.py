from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import settings
from app.models.domain import as_utc
from app.models.order import ACTIVE_ORDER_STATUSES, Order, OrderStatus

REVIEWABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.DELAYED)


@dataclass
class OrderGroup:
    customer_id: str
    orders: list[Order] = field(default_factory=list)
    linked_merged_order_id: int | None = None

    @property
    def total_amount(self) -> Decimal:
        return sum((Decimal(order.total_amount) for order in self.orders), Decimal("0"))

    @property
    def minutes_span(self) -> int:
        if len(self.orders) < 2:
            return 0
        first = as_utc(self.orders[0].created_at)
        last = as_utc(self.orders[-1].created_at)
        return round((last - first).total_seconds() / 60)

    @property
    def mergeable(self) -> bool:
        return len(self.orders) >= 2 and all(
            order.status in ACTIVE_ORDER_STATUSES for order in self.orders
        )


@dataclass
class SuspiciousOrderStats:
    total_groups: int
    total_orders: int
    total_amount: Decimal


def list_reviewable_suspicious_orders(db: Session) -> list[Order]:
    return list(
        db.scalars(
            select(Order)
            .where(Order.is_suspicious.is_(True), Order.status.in_(REVIEWABLE_STATUSES))
            .order_by(Order.created_at.asc(), Order.id.asc())
        )
    )


def group_suspicious_orders(
    orders: Sequence[Order], window: timedelta | None = None
) -> list[OrderGroup]:
    """Group a customer's suspicious orders that sit within ``window`` of the
    earliest order of the group.

    Follow-ups linked to a merged order are always reviewed alone: their
    siblings were already consolidated.
    """
    window = window or timedelta(seconds=settings.sibling_window_s)
    ordered = sorted(orders, key=lambda order: (as_utc(order.created_at), order.id))
    grouped_ids: set[int] = set()
    groups: list[OrderGroup] = []

    for order in ordered:
        if order.id in grouped_ids:
            continue
        grouped_ids.add(order.id)

        if order.linked_merged_order_id is not None:
            groups.append(
                OrderGroup(
                    customer_id=order.customer_id,
                    orders=[order],
                    linked_merged_order_id=order.linked_merged_order_id,
                )
            )
            continue

        group = OrderGroup(customer_id=order.customer_id, orders=[order])
        started_at = as_utc(order.created_at)
        for candidate in ordered:
            if candidate.id in grouped_ids or candidate.customer_id != order.customer_id:
                continue
            if candidate.linked_merged_order_id is not None:
                continue
            if as_utc(candidate.created_at) - started_at <= window:
                group.orders.append(candidate)
                grouped_ids.add(candidate.id)
        groups.append(group)

    return groups


def suspicious_order_stats(groups: Sequence[OrderGroup]) -> SuspiciousOrderStats:
    return SuspiciousOrderStats(
        total_groups=len(groups),
        total_orders=sum(len(group.orders) for group in groups),
        total_amount=sum((group.total_amount for group in groups), Decimal("0")),
    )
