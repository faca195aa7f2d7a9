from app.schemas.order import (
    GroupVerdictRequest,
    MergeOrdersRequest,
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    SuspiciousOrdersResponse,
)

__all__ = [
    "OrderCreate",
    "OrderResponse",
    "OrderListResponse",
    "MergeOrdersRequest",
    "GroupVerdictRequest",
    "SuspiciousOrdersResponse",
]
