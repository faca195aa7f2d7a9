from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.order import OrderStatus
from app.models.order_event import OrderEventType


class OrderCreate(BaseModel):
    customer_id: str = Field(min_length=1, max_length=64)
    total_amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    admin_notes: str | None = Field(default=None, max_length=1000)

    @field_validator("customer_id", "admin_notes")
    @classmethod
    def strip_strings(cls, value: str | None) -> str | None:
        if value is None:
            return value
        return value.strip()


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: str
    total_amount: Decimal
    status: OrderStatus
    is_suspicious: bool
    suspicious_reason: str | None
    linked_merged_order_id: int | None
    merged_into_order_id: int | None
    admin_notes: str | None
    admin_id: str | None
    created_at: datetime
    updated_at: datetime


class OrderListResponse(BaseModel):
    items: list[OrderResponse]


class OrderEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    type: OrderEventType
    message: str
    payload: dict
    admin_id: str | None
    created_at: datetime


class OrderEventsResponse(BaseModel):
    items: list[OrderEventResponse]


class OrderActionRequest(BaseModel):
    admin_notes: str | None = Field(default=None, max_length=1000)


class MergeOrdersRequest(BaseModel):
    order_ids: list[int] = Field(min_length=1)
    admin_notes: str | None = Field(default=None, max_length=1000)


class MergeOrdersResponse(BaseModel):
    order: OrderResponse
    merged_from: list[int]


class GroupVerdictRequest(BaseModel):
    order_ids: list[int] = Field(min_length=1)
    verdict: Literal["approve", "reject"]
    admin_notes: str | None = Field(default=None, max_length=1000)


class GroupVerdictResponse(BaseModel):
    verdict: Literal["approve", "reject"]
    items: list[OrderResponse]


class SuspiciousOrderGroupResponse(BaseModel):
    customer_id: str
    orders: list[OrderResponse]
    total_amount: Decimal
    minutes_span: int
    linked_merged_order_id: int | None
    mergeable: bool


class SuspiciousOrderStats(BaseModel):
    total_groups: int
    total_orders: int
    total_amount: Decimal


class SuspiciousOrdersResponse(BaseModel):
    groups: list[SuspiciousOrderGroupResponse]
    stats: SuspiciousOrderStats
