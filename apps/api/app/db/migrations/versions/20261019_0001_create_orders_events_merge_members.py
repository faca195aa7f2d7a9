"""create orders, order_events, order_merge_members

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

order_status = sa.Enum(
    "pending",
    "approved",
    "rejected",
    "delayed",
    "cancelled",
    "merged",
    name="order_status",
)
order_event_type = sa.Enum(
    "CREATED",
    "APPROVED",
    "REJECTED",
    "DELAYED",
    "CANCELLED",
    "MERGED",
    "FLAGGED_SUSPICIOUS",
    "SUSPICION_CLEARED",
    name="order_event_type",
)


def upgrade() -> None:
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("customer_id", sa.String(length=64), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", order_status, nullable=False),
        sa.Column("is_suspicious", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("suspicious_reason", sa.Text(), nullable=True),
        sa.Column("linked_merged_order_id", sa.Integer(), nullable=True),
        sa.Column("merged_into_order_id", sa.Integer(), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("admin_id", sa.String(length=64), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["linked_merged_order_id"], ["orders.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["merged_into_order_id"], ["orders.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_orders_customer_id", "orders", ["customer_id"], unique=False)
    op.create_index(
        "ix_orders_customer_id_created_at",
        "orders",
        ["customer_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "order_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("type", order_event_type, nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("admin_id", sa.String(length=64), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_order_events_order_id", "order_events", ["order_id"], unique=False)

    op.create_table(
        "order_merge_members",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("survivor_order_id", sa.Integer(), nullable=False),
        sa.Column("source_order_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("merged_by", sa.String(length=64), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["survivor_order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["source_order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "survivor_order_id", "source_order_id", name="uq_order_merge_members_pair"
        ),
    )
    op.create_index(
        "ix_order_merge_members_survivor_order_id",
        "order_merge_members",
        ["survivor_order_id"],
        unique=False,
    )
    op.create_index(
        "ix_order_merge_members_source_order_id",
        "order_merge_members",
        ["source_order_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_order_merge_members_source_order_id", table_name="order_merge_members")
    op.drop_index("ix_order_merge_members_survivor_order_id", table_name="order_merge_members")
    op.drop_table("order_merge_members")
    op.drop_index("ix_order_events_order_id", table_name="order_events")
    op.drop_table("order_events")
    op.drop_index("ix_orders_customer_id_created_at", table_name="orders")
    op.drop_index("ix_orders_customer_id", table_name="orders")
    op.drop_table("orders")
    order_event_type.drop(op.get_bind(), checkfirst=True)
    order_status.drop(op.get_bind(), checkfirst=True)
