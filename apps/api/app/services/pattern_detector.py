"""Suspicious order pattern detection.

Two signatures are recognised for a newly created order, checked in order:

1. sibling window: the customer has other pending/approved orders created
   within ``settings.sibling_window_s`` of this one, before or after;
2. merge follow-up: no siblings, but the customer has a merged & approved
   order created at most ``settings.follow_up_window_s`` before this one.

Both boundaries are inclusive. The detector only reads.
"""

from dataclasses import dataclass, field
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import settings
from app.models.domain import as_utc
from app.models.order import ACTIVE_ORDER_STATUSES, Order
from app.observability import log_event, metrics_store, observe_timing
from app.services.linkage import find_anchor

SIBLING_WINDOW_REASON = "multiple orders within short interval"
MERGE_FOLLOW_UP_REASON = "order placed shortly after a merged order was approved"


@dataclass(frozen=True)
class Verdict:
    reason: str
    related_order_ids: frozenset[int] = field(default_factory=frozenset)
    linked_merged_order_id: int | None = None
    is_single_suspicious: bool = False
    suspicious: bool = True


def find_active_siblings(db: Session, order: Order, window: timedelta) -> list[Order]:
    created_at = as_utc(order.created_at)
    return list(
        db.scalars(
            select(Order)
            .where(
                Order.customer_id == order.customer_id,
                Order.id != order.id,
                Order.status.in_(ACTIVE_ORDER_STATUSES),
                Order.created_at >= created_at - window,
                Order.created_at <= created_at + window,
            )
            .order_by(Order.created_at.asc(), Order.id.asc())
        )
    )


def detect(db: Session, order: Order) -> Verdict | None:
    if order.status not in ACTIVE_ORDER_STATUSES:
        return None

    with observe_timing("order_detection_seconds"):
        siblings = find_active_siblings(
            db, order, timedelta(seconds=settings.sibling_window_s)
        )
        if siblings:
            related = frozenset(sibling.id for sibling in siblings)
            metrics_store.increment("suspicious_sibling_window_total")
            log_event(
                "suspicious_sibling_window_detected",
                order_id=order.id,
                customer_id=order.customer_id,
                related_order_ids=sorted(related),
                window_s=settings.sibling_window_s,
            )
            return Verdict(reason=SIBLING_WINDOW_REASON, related_order_ids=related)

        anchor = find_anchor(
            db,
            order.customer_id,
            order.created_at,
            exclude_order_id=order.id,
            window=timedelta(seconds=settings.follow_up_window_s),
        )
        if anchor is None:
            return None

        metrics_store.increment("suspicious_follow_up_total")
        log_event(
            "suspicious_merge_follow_up_detected",
            order_id=order.id,
            customer_id=order.customer_id,
            linked_merged_order_id=anchor.id,
            seconds_since_anchor=(
                as_utc(order.created_at) - as_utc(anchor.created_at)
            ).total_seconds(),
        )
        return Verdict(
            reason=MERGE_FOLLOW_UP_REASON,
            linked_merged_order_id=anchor.id,
            is_single_suspicious=True,
        )
