from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.dependencies import (
    SuspiciousOrderNotifier,
    get_suspicious_order_notifier,
    require_admin_id,
)
from app.models.order import OrderStatus
from app.observability import observe_timing
from app.schemas.order import (
    GroupVerdictRequest,
    GroupVerdictResponse,
    MergeOrdersRequest,
    MergeOrdersResponse,
    OrderActionRequest,
    OrderCreate,
    OrderEventResponse,
    OrderEventsResponse,
    OrderListResponse,
    OrderResponse,
    SuspiciousOrderGroupResponse,
    SuspiciousOrdersResponse,
    SuspiciousOrderStats,
)
from app.services.errors import InvalidGroupVerdict, InvalidMergeInput, OrderDomainError
from app.services.linkage import merged_from_ids
from app.services.merge_service import merge_orders
from app.services.orders_service import (
    apply_group_verdict,
    approve_order,
    cancel_order,
    clear_suspicion,
    create_order,
    delay_order,
    get_order,
    list_order_events,
    list_orders,
    reject_order,
)
from app.services.suspicious_groups import (
    group_suspicious_orders,
    list_reviewable_suspicious_orders,
    suspicious_order_stats,
)

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


def _translate_domain_error(err: OrderDomainError) -> HTTPException:
    if isinstance(err, (InvalidMergeInput, InvalidGroupVerdict)):
        status_code = 422
    else:
        status_code = status.HTTP_409_CONFLICT
    return HTTPException(
        status_code=status_code,
        detail={"code": err.code, "message": err.message, "order_ids": err.order_ids},
    )


@router.post("", response_model=OrderResponse, summary="Create order", status_code=201)
def create_order_endpoint(
    payload: OrderCreate,
    db: Session = Depends(get_db),
    notifier: SuspiciousOrderNotifier = Depends(get_suspicious_order_notifier),
) -> OrderResponse:
    with observe_timing("order_create_seconds"):
        order = create_order(db, payload, notifier=notifier)
    return OrderResponse.model_validate(order)


@router.get("", response_model=OrderListResponse, summary="List orders")
def list_orders_endpoint(
    db: Session = Depends(get_db),
    status_filter: OrderStatus | None = Query(default=None, alias="status"),
    customer_id: str | None = Query(default=None),
    suspicious: bool | None = Query(default=None),
) -> OrderListResponse:
    orders = list_orders(db, status_filter, customer_id=customer_id, suspicious=suspicious)
    return OrderListResponse(items=[OrderResponse.model_validate(order) for order in orders])


@router.get(
    "/suspicious",
    response_model=SuspiciousOrdersResponse,
    summary="Suspicious orders grouped for review",
)
def suspicious_orders_endpoint(
    db: Session = Depends(get_db),
    _admin_id: str = Depends(require_admin_id),
) -> SuspiciousOrdersResponse:
    groups = group_suspicious_orders(list_reviewable_suspicious_orders(db))
    stats = suspicious_order_stats(groups)
    return SuspiciousOrdersResponse(
        groups=[
            SuspiciousOrderGroupResponse(
                customer_id=group.customer_id,
                orders=[OrderResponse.model_validate(order) for order in group.orders],
                total_amount=group.total_amount,
                minutes_span=group.minutes_span,
                linked_merged_order_id=group.linked_merged_order_id,
                mergeable=group.mergeable,
            )
            for group in groups
        ],
        stats=SuspiciousOrderStats(
            total_groups=stats.total_groups,
            total_orders=stats.total_orders,
            total_amount=stats.total_amount,
        ),
    )


@router.post("/merge", response_model=MergeOrdersResponse, summary="Merge suspicious orders")
def merge_orders_endpoint(
    payload: MergeOrdersRequest,
    db: Session = Depends(get_db),
    admin_id: str = Depends(require_admin_id),
) -> MergeOrdersResponse:
    try:
        with observe_timing("order_merge_seconds"):
            survivor = merge_orders(
                db, payload.order_ids, admin_id, admin_notes=payload.admin_notes
            )
    except OrderDomainError as err:
        raise _translate_domain_error(err) from err

    return MergeOrdersResponse(
        order=OrderResponse.model_validate(survivor),
        merged_from=merged_from_ids(db, survivor.id),
    )


@router.post(
    "/group-verdict",
    response_model=GroupVerdictResponse,
    summary="Approve or reject a group of orders",
)
def group_verdict_endpoint(
    payload: GroupVerdictRequest,
    db: Session = Depends(get_db),
    admin_id: str = Depends(require_admin_id),
) -> GroupVerdictResponse:
    try:
        orders = apply_group_verdict(
            db, payload.order_ids, payload.verdict, admin_id, payload.admin_notes
        )
    except OrderDomainError as err:
        raise _translate_domain_error(err) from err

    return GroupVerdictResponse(
        verdict=payload.verdict,
        items=[OrderResponse.model_validate(order) for order in orders],
    )


@router.get("/{order_id}", response_model=OrderResponse, summary="Get order detail")
def get_order_endpoint(order_id: int, db: Session = Depends(get_db)) -> OrderResponse:
    return OrderResponse.model_validate(get_order(db, order_id))


@router.get("/{order_id}/events", response_model=OrderEventsResponse, summary="Order timeline")
def get_events_endpoint(order_id: int, db: Session = Depends(get_db)) -> OrderEventsResponse:
    events = [OrderEventResponse.model_validate(event) for event in list_order_events(db, order_id)]
    return OrderEventsResponse(items=events)


@router.post("/{order_id}/approve", response_model=OrderResponse, summary="Approve order")
def approve_endpoint(
    order_id: int,
    payload: OrderActionRequest | None = None,
    db: Session = Depends(get_db),
    admin_id: str = Depends(require_admin_id),
) -> OrderResponse:
    notes = payload.admin_notes if payload else None
    return OrderResponse.model_validate(approve_order(db, order_id, admin_id, notes))


@router.post("/{order_id}/reject", response_model=OrderResponse, summary="Reject order")
def reject_endpoint(
    order_id: int,
    payload: OrderActionRequest | None = None,
    db: Session = Depends(get_db),
    admin_id: str = Depends(require_admin_id),
) -> OrderResponse:
    notes = payload.admin_notes if payload else None
    return OrderResponse.model_validate(reject_order(db, order_id, admin_id, notes))


@router.post("/{order_id}/delay", response_model=OrderResponse, summary="Delay order")
def delay_endpoint(
    order_id: int,
    payload: OrderActionRequest | None = None,
    db: Session = Depends(get_db),
    admin_id: str = Depends(require_admin_id),
) -> OrderResponse:
    notes = payload.admin_notes if payload else None
    return OrderResponse.model_validate(delay_order(db, order_id, admin_id, notes))


@router.post("/{order_id}/cancel", response_model=OrderResponse, summary="Cancel order")
def cancel_endpoint(
    order_id: int,
    payload: OrderActionRequest | None = None,
    db: Session = Depends(get_db),
    admin_id: str = Depends(require_admin_id),
) -> OrderResponse:
    notes = payload.admin_notes if payload else None
    return OrderResponse.model_validate(cancel_order(db, order_id, admin_id, notes))


@router.post(
    "/{order_id}/clear-suspicion",
    response_model=OrderResponse,
    summary="Dismiss a suspicious flag",
)
def clear_suspicion_endpoint(
    order_id: int,
    db: Session = Depends(get_db),
    admin_id: str = Depends(require_admin_id),
) -> OrderResponse:
    return OrderResponse.model_validate(clear_suspicion(db, order_id, admin_id))
