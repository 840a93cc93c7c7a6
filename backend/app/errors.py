"""Marketplace exceptions.

Every error carries the HTTP status it maps to and a stable machine code so
routers can translate it without inspecting message text.
"""

from typing import Optional

from fastapi import HTTPException


class MarketplaceError(Exception):
    """Base exception for all marketplace errors."""

    status_code = 500
    code = "internal_error"
    retryable = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_detail(self) -> dict:
        return {"error": self.code, "message": self.message, "retryable": self.retryable}


class ValidationFailed(MarketplaceError):
    """Raised when an input field has the wrong shape or range."""

    status_code = 400
    code = "validation_error"

    def __init__(self, field: str, reason: str):
        self.field = field
        super().__init__(f"Invalid {field}: {reason}")

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail["field"] = self.field
        return detail


class Forbidden(MarketplaceError):
    """Raised when the caller's role or relationship does not permit the action."""

    status_code = 403
    code = "forbidden"


class NotFound(MarketplaceError):
    """Raised when an order or listing does not exist."""

    status_code = 404
    code = "not_found"

    def __init__(self, entity: str, entity_id: int):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} {entity_id} not found")


class SelfPurchase(MarketplaceError):
    """Raised when a seller tries to order their own listing."""

    status_code = 400
    code = "self_purchase"

    def __init__(self):
        super().__init__("Cannot order your own listing")


class Unavailable(MarketplaceError):
    """Raised when a listing is missing, not active, or short on stock.

    Not retryable as-is: the caller has to change the request.
    """

    code = "unavailable"

    def __init__(self, listing_id: int, reason: str, available: Optional[int] = None):
        self.listing_id = listing_id
        self.reason = reason
        self.available = available
        # Insufficient stock is a bad request; a gone/inactive listing is a 404
        self.status_code = 400 if reason == "insufficient_stock" else 404
        if reason == "insufficient_stock":
            message = f"Insufficient quantity available for listing {listing_id}"
        else:
            message = f"Listing {listing_id} not found or not available"
        super().__init__(message)

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail["reason"] = self.reason
        if self.available is not None:
            detail["available_quantity"] = self.available
        return detail


class StockConflict(MarketplaceError):
    """Raised when a concurrent reservation changed the stock between read and write."""

    status_code = 409
    code = "stock_conflict"
    retryable = True

    def __init__(self, listing_id: int):
        self.listing_id = listing_id
        super().__init__("Stock changed, please retry order")


class ListingEditConflict(MarketplaceError):
    """Raised when a listing changed between a seller's read and their edit."""

    status_code = 409
    code = "listing_edit_conflict"
    retryable = True

    def __init__(self, listing_id: int):
        self.listing_id = listing_id
        super().__init__(f"Listing {listing_id} changed while you were editing it, reload and try again")


class InvalidTransition(MarketplaceError):
    """Raised when a status change is not a legal successor of the current status."""

    status_code = 409
    code = "invalid_transition"

    def __init__(self, order_id: int, current: str, target: str):
        self.order_id = order_id
        self.current = current
        self.target = target
        super().__init__(f"Cannot move order {order_id} from '{current}' to '{target}'")

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail["current_status"] = self.current
        detail["target_status"] = self.target
        return detail


class AuditInconsistency(MarketplaceError):
    """Raised when a status change could not be recorded in the order history."""

    status_code = 500
    code = "audit_inconsistency"

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Failed to record status history for order {order_id}")


def to_http_exception(err: MarketplaceError) -> HTTPException:
    """Translate a service error into the HTTP error the routers raise."""
    return HTTPException(status_code=err.status_code, detail=err.to_detail())
