"""Order request/response schemas."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class OrderCreate(BaseModel):
    listing_id: int
    quantity: int
    delivery_address: str
    notes: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: str  # accepted | rejected | shipped | delivered | cancelled


class OrderResponse(BaseModel):
    id: int
    buyer_id: int
    seller_id: int
    listing_id: int
    quantity: int
    unit_price: Decimal
    total_amount: Decimal
    status: str
    delivery_address: str
    notes: Optional[str]
    allowed_next: list[str] = []
    created_at: str
    updated_at: str

    class Config:
        from_attributes = True


class OrderCreatedResponse(OrderResponse):
    # Listing state right after the reservation, so clients can refresh caches
    remaining_quantity: int
    listing_status: str


class StatusHistoryEntry(BaseModel):
    id: int
    from_status: Optional[str]
    to_status: str
    changed_by_user_id: int
    created_at: str

    class Config:
        from_attributes = True


class ListingSummary(BaseModel):
    id: int
    title: str
    unit: str
    unit_price: Decimal


class OrderListItem(OrderResponse):
    listing: Optional[ListingSummary] = None


class OrderDetailResponse(OrderListItem):
    history: list[StatusHistoryEntry]


class OrderListResponse(BaseModel):
    items: list[OrderListItem]
    total: int
    limit: int
    offset: int
