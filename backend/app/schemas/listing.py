"""Listing request/response schemas."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class ListingCreate(BaseModel):
    title: str
    category: str
    unit: str  # kg | crate | bunch | ...
    unit_price: Decimal
    available_quantity: int
    description: Optional[str] = None


class ListingUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    unit_price: Optional[Decimal] = None
    available_quantity: Optional[int] = None
    status: Optional[str] = None  # active | inactive | expired


class ListingResponse(BaseModel):
    id: int
    seller_id: int
    title: str
    description: Optional[str]
    category: str
    unit: str
    unit_price: Decimal
    available_quantity: int
    status: str
    created_at: str
    updated_at: str

    class Config:
        from_attributes = True
