from fastapi import HTTPException, status

from app.models.order import OrderStatus
from app.models.order_event import OrderEventType

ORDER_STATE_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {
        OrderStatus.APPROVED,
        OrderStatus.REJECTED,
        OrderStatus.DELAYED,
        OrderStatus.CANCELLED,
        OrderStatus.MERGED,
    },
    OrderStatus.DELAYED: {
        OrderStatus.APPROVED,
        OrderStatus.REJECTED,
        OrderStatus.CANCELLED,
        OrderStatus.MERGED,
    },
    OrderStatus.APPROVED: {OrderStatus.MERGED},
    OrderStatus.REJECTED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.MERGED: set(),
}


def ensure_valid_transition(current: OrderStatus, next_status: OrderStatus) -> None:
    if next_status == current:
        return

    allowed = ORDER_STATE_TRANSITIONS.get(current, set())
    if next_status not in allowed:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Invalid state transition: {current.value} -> {next_status.value}",
        )


def event_type_for_status(status_value: OrderStatus) -> OrderEventType:
    return OrderEventType[status_value.name]
