from collections import defaultdict
from decimal import Decimal

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from app.models.order import ACTIVE_ORDER_STATUSES, Order, OrderStatus
from app.models.order_event import OrderEvent, OrderEventType
from app.models.order_merge import OrderMergeMember, merge_provenance_note
from app.observability import log_event, metrics_store
from app.services.customer_lock import customer_critical_section
from app.services.errors import InvalidMergeInput, NotMergeable
from app.services.state_machine import ensure_valid_transition

MIN_ORDERS_TO_MERGE = 2


def _reject(error: InvalidMergeInput | NotMergeable) -> None:
    metrics_store.increment("merge_rejected_total")
    log_event(
        "order_merge_rejected",
        code=error.code,
        reason=error.message,
        order_ids=error.order_ids,
    )
    raise error


def _validate_request(order_ids: list[int]) -> None:
    if len(order_ids) < MIN_ORDERS_TO_MERGE:
        _reject(InvalidMergeInput("At least 2 orders are required to merge", order_ids))
    if len(set(order_ids)) != len(order_ids):
        _reject(InvalidMergeInput("Order ids must not repeat", order_ids))


def _load_merge_inputs(db: Session, order_ids: list[int]) -> list[Order]:
    found = {
        order.id: order
        for order in db.scalars(
            select(Order)
            .where(Order.id.in_(order_ids))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    }
    missing = [order_id for order_id in order_ids if order_id not in found]
    if missing:
        _reject(InvalidMergeInput("Orders not found", missing))

    orders = [found[order_id] for order_id in order_ids]
    if len({order.customer_id for order in orders}) > 1:
        _reject(InvalidMergeInput("Cannot merge orders from different customers", order_ids))

    not_mergeable = [order.id for order in orders if order.status not in ACTIVE_ORDER_STATUSES]
    if not_mergeable:
        _reject(NotMergeable("Only pending or approved orders can be merged", not_mergeable))
    return orders


def _earlier_members(db: Session, order_ids: list[int]) -> dict[int, list[int]]:
    rows = db.execute(
        select(OrderMergeMember.survivor_order_id, OrderMergeMember.source_order_id)
        .where(OrderMergeMember.survivor_order_id.in_(order_ids))
        .order_by(OrderMergeMember.position.asc())
    )
    members: dict[int, list[int]] = defaultdict(list)
    for survivor_order_id, source_order_id in rows:
        members[survivor_order_id].append(source_order_id)
    return members


def _cumulative_members(order_ids: list[int], earlier: dict[int, list[int]]) -> list[int]:
    """Inputs in request order, each earlier survivor expanded to its own members."""
    members: list[int] = []
    for order_id in order_ids:
        for member_id in earlier.get(order_id) or [order_id]:
            if member_id not in members:
                members.append(member_id)
    return members


def _append_note(existing: str | None, note: str) -> str:
    if existing and existing.strip():
        return f"{existing.rstrip()}\n{note}"
    return note


def merge_orders(
    db: Session,
    order_ids: list[int],
    admin_id: str,
    *,
    admin_notes: str | None = None,
) -> Order:
    """Absorb every listed order into the first one.

    The survivor takes the summed total, becomes approved and loses its
    suspicion flag; the rest become ``merged``. Validation happens before any
    write and the whole merge commits or rolls back as one transaction.

    An input that survived an earlier merge brings its members along, and
    follow-ups linked to it are re-linked to the new survivor.
    """
    order_ids = list(order_ids)
    try:
        _validate_request(order_ids)
        customer_id = db.scalar(select(Order.customer_id).where(Order.id == order_ids[0]))
        if customer_id is None:
            _reject(InvalidMergeInput("Orders not found", [order_ids[0]]))

        with customer_critical_section(db, customer_id):
            orders = _load_merge_inputs(db, order_ids)
            survivor, absorbed = orders[0], orders[1:]
            absorbed_ids = [order.id for order in absorbed]
            earlier = _earlier_members(db, order_ids)
            members = _cumulative_members(order_ids, earlier)

            previous_total = survivor.total_amount
            survivor.total_amount = sum(
                (Decimal(order.total_amount) for order in orders), Decimal("0")
            )

            ensure_valid_transition(survivor.status, OrderStatus.APPROVED)
            previous_status = survivor.status
            survivor.status = OrderStatus.APPROVED
            survivor.is_suspicious = False
            survivor.suspicious_reason = None
            survivor.linked_merged_order_id = None
            survivor.admin_id = admin_id

            note = merge_provenance_note(members)
            if admin_notes and admin_notes.strip():
                note = f"{note} | Admin notes: {admin_notes.strip()}"
            survivor.admin_notes = _append_note(survivor.admin_notes, note)

            for order in absorbed:
                ensure_valid_transition(order.status, OrderStatus.MERGED)
                from_status = order.status
                order.status = OrderStatus.MERGED
                order.merged_into_order_id = survivor.id
                order.admin_notes = f"Merged into order #{survivor.id}"
                order.admin_id = admin_id
                db.add(
                    OrderEvent(
                        order_id=order.id,
                        type=OrderEventType.MERGED,
                        message=order.admin_notes,
                        payload={
                            "from_status": from_status.value,
                            "to_status": OrderStatus.MERGED.value,
                            "survivor_order_id": survivor.id,
                        },
                        admin_id=admin_id,
                    )
                )

            # Follow-ups anchored on an absorbed survivor now point at the new one.
            relinked = db.execute(
                update(Order)
                .where(
                    Order.linked_merged_order_id.in_(absorbed_ids),
                    Order.id.not_in(order_ids),
                )
                .values(linked_merged_order_id=survivor.id)
                .execution_options(synchronize_session="fetch")
            ).rowcount

            # Absorbed survivors hand their membership over to this survivor.
            db.execute(
                delete(OrderMergeMember)
                .where(OrderMergeMember.survivor_order_id.in_(absorbed_ids))
                .execution_options(synchronize_session="fetch")
            )
            kept = earlier.get(survivor.id, [])
            new_members = [member_id for member_id in members if member_id not in kept]
            for position, member_id in enumerate(new_members, start=len(kept)):
                db.add(
                    OrderMergeMember(
                        survivor_order_id=survivor.id,
                        source_order_id=member_id,
                        position=position,
                        merged_by=admin_id,
                    )
                )

            db.add(
                OrderEvent(
                    order_id=survivor.id,
                    type=OrderEventType.APPROVED,
                    message=note,
                    payload={
                        "from_status": previous_status.value,
                        "to_status": OrderStatus.APPROVED.value,
                        "merged_from": members,
                        "previous_total": str(previous_total),
                        "total_amount": str(survivor.total_amount),
                    },
                    admin_id=admin_id,
                )
            )
            db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(survivor)
    metrics_store.increment("orders_merged_total")
    log_event(
        "orders_merged",
        order_id=survivor.id,
        customer_id=survivor.customer_id,
        admin_id=admin_id,
        merged_from=members,
        relinked_follow_ups=relinked,
        total_amount=str(survivor.total_amount),
    )
    return survivor
