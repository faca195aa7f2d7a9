from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.domain import now_utc

MERGE_PROVENANCE_PREFIX = "Merged from orders: "


class OrderMergeMember(Base):
    """One input order of a merge, keyed by the order that survived it.

    The survivor has a row for itself, so ``source_order_id`` lists every
    order that went into the merge in request order (``position``).
    """

    __tablename__ = "order_merge_members"
    __table_args__ = (
        UniqueConstraint(
            "survivor_order_id", "source_order_id", name="uq_order_merge_members_pair"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    survivor_order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    source_order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    merged_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc, server_default=func.now()
    )


def merge_provenance_note(order_ids: list[int]) -> str:
    return MERGE_PROVENANCE_PREFIX + ", ".join(str(order_id) for order_id in order_ids)
