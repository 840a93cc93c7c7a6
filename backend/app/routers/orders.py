"""Orders router — placement, status changes, detail, and per-user listings."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.errors import MarketplaceError, ValidationFailed, to_http_exception
from app.middleware.auth import Actor, get_current_actor, require_purchaser, require_seller_or_admin
from app.middleware.rate_limit import limiter
from app.models.order import Order
from app.schemas.order import (
    ListingSummary,
    OrderCreate,
    OrderCreatedResponse,
    OrderDetailResponse,
    OrderListItem,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    StatusHistoryEntry,
)
from app.services import order_service

router = APIRouter(prefix="/api/orders", tags=["orders"])


def _order_fields(order: Order) -> dict:
    return dict(
        id=order.id,
        buyer_id=order.buyer_id,
        seller_id=order.seller_id,
        listing_id=order.listing_id,
        quantity=order.quantity,
        unit_price=order.unit_price,
        total_amount=order.total_amount,
        status=order.status,
        delivery_address=order.delivery_address,
        notes=order.notes,
        allowed_next=list(order_service.allowed_transitions(order.status)),
        created_at=order.created_at.isoformat() if order.created_at else "",
        updated_at=order.updated_at.isoformat() if order.updated_at else "",
    )


def _listing_summary(order: Order) -> Optional[ListingSummary]:
    listing = order.listing
    if listing is None:
        return None
    return ListingSummary(id=listing.id, title=listing.title, unit=listing.unit, unit_price=listing.unit_price)


@router.post("", response_model=OrderCreatedResponse, status_code=201)
@limiter.limit(settings.ORDER_RATE_LIMIT)
def create_order(
    request: Request,
    req: OrderCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_purchaser),
):
    """Place an order. A 409 stock_conflict is retryable after re-fetching the listing."""
    try:
        placed = order_service.create_order(
            db,
            buyer_id=actor.id,
            listing_id=req.listing_id,
            quantity=req.quantity,
            delivery_address=req.delivery_address,
            notes=req.notes,
        )
    except MarketplaceError as e:
        raise to_http_exception(e)
    return OrderCreatedResponse(
        **_order_fields(placed.order),
        remaining_quantity=placed.remaining_quantity,
        listing_status=placed.listing_status,
    )


@router.get("", response_model=OrderListResponse)
def list_orders(
    buyer: Optional[str] = Query(None),
    farmer: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    offset: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """The caller's orders: ?buyer=me for purchases, ?farmer=me for sales."""
    try:
        if (buyer == "me") == (farmer == "me"):
            raise ValidationFailed("query", "specify exactly one of buyer=me or farmer=me")
        side = "buyer" if buyer == "me" else "farmer"
        page, total, limit, offset = order_service.list_orders(
            db, actor.id, actor.role, side, limit=limit, offset=offset
        )
    except MarketplaceError as e:
        raise to_http_exception(e)
    return OrderListResponse(
        items=[OrderListItem(**_order_fields(o), listing=_listing_summary(o)) for o in page],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{order_id}", response_model=OrderDetailResponse)
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Order detail with its full status history, oldest first."""
    try:
        order, history = order_service.get_order_detail(db, order_id, actor.id, actor.role)
    except MarketplaceError as e:
        raise to_http_exception(e)

    return OrderDetailResponse(
        **_order_fields(order),
        listing=_listing_summary(order),
        history=[
            StatusHistoryEntry(
                id=h.id,
                from_status=h.from_status,
                to_status=h.to_status,
                changed_by_user_id=h.changed_by_user_id,
                created_at=h.created_at.isoformat() if h.created_at else "",
            )
            for h in history
        ],
    )


@router.patch("/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: int,
    req: OrderStatusUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_seller_or_admin),
):
    """Move an order along its lifecycle (seller or admin)."""
    try:
        order = order_service.transition_status(db, order_id, actor.id, actor.role, req.status)
    except MarketplaceError as e:
        raise to_http_exception(e)
    return OrderResponse(**_order_fields(order))
