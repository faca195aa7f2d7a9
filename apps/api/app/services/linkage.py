from datetime import datetime, timedelta

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from app.config import settings
from app.models.domain import as_utc
from app.models.order import Order, OrderStatus
from app.models.order_merge import OrderMergeMember


def _is_merge_survivor():
    return exists().where(OrderMergeMember.survivor_order_id == Order.id)


def find_anchor(
    db: Session,
    customer_id: str,
    before: datetime,
    *,
    exclude_order_id: int | None = None,
    window: timedelta | None = None,
) -> Order | None:
    """Return the latest merged & approved order of the customer created in
    ``[before - window, before]``, or ``None``.

    Ties on ``created_at`` go to the highest id.
    """
    window = window or timedelta(seconds=settings.follow_up_window_s)
    upper = as_utc(before)
    lower = upper - window

    query = select(Order).where(
        Order.customer_id == customer_id,
        Order.status == OrderStatus.APPROVED,
        Order.created_at >= lower,
        Order.created_at <= upper,
        _is_merge_survivor(),
    )
    if exclude_order_id is not None:
        query = query.where(Order.id != exclude_order_id)

    return db.scalar(query.order_by(Order.created_at.desc(), Order.id.desc()).limit(1))


def merged_from_ids(db: Session, survivor_order_id: int) -> list[int]:
    """Every order folded into the survivor so far, including itself."""
    rows = db.scalars(
        select(OrderMergeMember.source_order_id)
        .where(OrderMergeMember.survivor_order_id == survivor_order_id)
        .order_by(OrderMergeMember.position.asc())
    )
    return list(rows)
