# Import SQLAlchemy models so they register on Base.metadata
from app.models.order import Order, OrderStatus  # noqa: F401
from app.models.order_event import OrderEvent, OrderEventType  # noqa: F401
from app.models.order_merge import OrderMergeMember  # noqa: F401
