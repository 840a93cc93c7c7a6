"""Client-side cart and its reconciliation against live listings."""

from app.client.cart import Cart
from app.client.listing_client import ListingClient, ListingSnapshot
from app.client.reconciliation import (
    CartLine,
    PriceAdjustment,
    QuantityAdjustment,
    Reconciliation,
    RemovedAdjustment,
    reconcile,
)

__all__ = [
    "Cart",
    "CartLine",
    "ListingClient",
    "ListingSnapshot",
    "PriceAdjustment",
    "QuantityAdjustment",
    "Reconciliation",
    "RemovedAdjustment",
    "reconcile",
]
