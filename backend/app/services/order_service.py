"""Order service — order placement and the guarded status lifecycle."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.config import settings
from app.errors import (
    AuditInconsistency,
    Forbidden,
    InvalidTransition,
    NotFound,
    SelfPurchase,
    StockConflict,
    Unavailable,
    ValidationFailed,
)
from app.models.listing import Listing
from app.models.order import Order, ORDER_STATUSES
from app.models.order_status_history import OrderStatusHistory
from app.services import audit_trail, stock_ledger

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Forward-only lifecycle. Anything missing here is terminal.
TRANSITIONS: dict[str, tuple[str, ...]] = {
    "pending": ("accepted", "rejected"),
    "accepted": ("shipped", "cancelled"),
    "shipped": ("delivered",),
    "rejected": (),
    "cancelled": (),
    "delivered": (),
}

TERMINAL_STATUSES = frozenset(s for s, nxt in TRANSITIONS.items() if not nxt)
RESTOCK_STATUSES = frozenset({"rejected", "cancelled"})
STATUS_CHANGE_ROLES = ("farmer", "admin")


@dataclass
class PlacedOrder:
    """A freshly created order plus the listing state the reservation left behind."""

    order: Order
    remaining_quantity: int
    listing_status: str


def allowed_transitions(status: str) -> tuple[str, ...]:
    return TRANSITIONS.get(status, ())


def _validate_order_input(quantity, delivery_address: Optional[str]) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationFailed("quantity", "must be a positive integer")
    if delivery_address is None or not delivery_address.strip():
        raise ValidationFailed("delivery_address", "must not be empty")


def create_order(
    db: Session,
    buyer_id: int,
    listing_id: int,
    quantity: int,
    delivery_address: str,
    notes: Optional[str] = None,
) -> PlacedOrder:
    """Reserve stock and create a pending order in one transaction.

    Steps:
    1. Validate quantity and address
    2. Refuse purchases of the buyer's own listing
    3. Conditionally decrement stock (Conflict -> retryable error)
    4. Insert the order with seller and unit price copied from the listing
    5. Record the null -> pending history entry
    All writes commit together or not at all.
    """
    _validate_order_input(quantity, delivery_address)

    seller_id = db.query(Listing.seller_id).filter(Listing.id == listing_id).scalar()
    if seller_id is None:
        raise Unavailable(listing_id, "not_found")
    if seller_id == buyer_id:
        raise SelfPurchase()

    try:
        outcome = stock_ledger.reserve_stock(db, listing_id, quantity)
        if isinstance(outcome, stock_ledger.Conflict):
            raise StockConflict(listing_id)
        if isinstance(outcome, stock_ledger.NotAvailable):
            raise Unavailable(listing_id, outcome.reason, outcome.available)

        unit_price = Decimal(outcome.unit_price)
        order = Order(
            buyer_id=buyer_id,
            seller_id=outcome.seller_id,
            listing_id=listing_id,
            quantity=quantity,
            unit_price=unit_price,
            total_amount=(unit_price * quantity).quantize(CENT),
            status="pending",
            delivery_address=delivery_address.strip(),
            notes=notes,
        )
        db.add(order)
        db.flush()

        audit_trail.append(db, order.id, None, "pending", buyer_id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(
        "Order %s created: buyer=%s listing=%s qty=%s remaining=%s",
        order.id, buyer_id, listing_id, quantity, outcome.new_quantity,
    )
    return PlacedOrder(
        order=order,
        remaining_quantity=outcome.new_quantity,
        listing_status=outcome.resulting_status,
    )


def transition_status(
    db: Session,
    order_id: int,
    actor_id: int,
    actor_role: str,
    target_status: str,
) -> Order:
    """Move an order to `target_status` if the state machine allows it.

    Only the order's seller (farmer role) or an admin may do this. The status
    write is conditioned on the status we read, so a concurrent change turns
    into InvalidTransition rather than a silent overwrite. The status update,
    its history entry and any restock commit as one unit.
    """
    if actor_role not in STATUS_CHANGE_ROLES:
        raise Forbidden("Only the seller or an admin can change order status")
    if target_status not in ORDER_STATUSES:
        raise ValidationFailed("status", f"must be one of {', '.join(ORDER_STATUSES)}")

    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFound("order", order_id)
    if actor_role == "farmer" and order.seller_id != actor_id:
        raise Forbidden("Not the seller of this order")

    current = order.status
    if target_status not in allowed_transitions(current):
        raise InvalidTransition(order_id, current, target_status)

    try:
        result = db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == current)
            .values(status=target_status, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidTransition(order_id, current, target_status)

        try:
            audit_trail.append(db, order_id, current, target_status, actor_id)
            db.flush()
        except SQLAlchemyError as e:
            logger.error("History append failed for order %s (%s -> %s): %s", order_id, current, target_status, e)
            raise AuditInconsistency(order_id) from e

        if target_status in RESTOCK_STATUSES and settings.RESTOCK_ON_CANCEL:
            stock_ledger.restock(db, order.listing_id, order.quantity)

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info("Order %s: %s -> %s by user %s (%s)", order_id, current, target_status, actor_id, actor_role)
    return order


def get_order_detail(
    db: Session,
    order_id: int,
    actor_id: int,
    actor_role: str,
) -> tuple[Order, list[OrderStatusHistory]]:
    """Order plus its history, oldest first. Visible to its buyer, seller, or an admin."""
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFound("order", order_id)
    if actor_role != "admin" and actor_id not in (order.buyer_id, order.seller_id):
        raise Forbidden("Not a party to this order")

    history = audit_trail.chronological(audit_trail.list_for(db, order_id))
    return order, history


def _clamp_page(limit: Optional[int], offset: Optional[int]) -> tuple[int, int]:
    if limit is None or limit <= 0:
        limit = settings.ORDER_PAGE_SIZE_DEFAULT
    limit = min(limit, settings.ORDER_PAGE_SIZE_MAX)
    if offset is None or offset < 0:
        offset = 0
    return limit, offset


def list_orders(
    db: Session,
    actor_id: int,
    actor_role: str,
    side: str,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> tuple[list[Order], int, int, int]:
    """The caller's orders as buyer or as seller, newest first.

    Returns (page, total, limit, offset).
    """
    if side == "buyer":
        if actor_role not in ("buyer", "farmer"):
            raise Forbidden("Need buyer or farmer role")
        column = Order.buyer_id
    elif side == "farmer":
        if actor_role != "farmer":
            raise Forbidden("Not a farmer")
        column = Order.seller_id
    else:
        raise ValidationFailed("side", "specify buyer=me or farmer=me")

    limit, offset = _clamp_page(limit, offset)
    query = db.query(Order).filter(column == actor_id)
    total = query.count()
    page = (
        query.options(joinedload(Order.listing))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return page, total, limit, offset
