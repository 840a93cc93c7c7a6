"""SQLAlchemy ORM models."""

from app.models.listing import Listing
from app.models.order import Order
from app.models.order_status_history import OrderStatusHistory

__all__ = [
    "Listing",
    "Order",
    "OrderStatusHistory",
]
