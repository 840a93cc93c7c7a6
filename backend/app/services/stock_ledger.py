"""Stock ledger — the only code path that consumes listing inventory.

A reservation reads the listing's current quantity, price and status, then
writes the decrement conditioned on quantity and price still being the values
it read, so an order never records a price the listing no longer shows.
Zero affected rows means another reservation or a seller edit got there
first; the caller gets a Conflict and nothing is applied. No locks: the row-level conditional update
is the synchronization primitive.

Nothing in here commits. Callers own the transaction so the decrement can be
rolled back together with whatever they write next.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Union

from sqlalchemy import case, update
from sqlalchemy.orm import Session

from app.errors import ValidationFailed
from app.models.listing import Listing

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockSnapshot:
    """What a reservation observed before writing."""

    listing_id: int
    seller_id: int
    unit_price: Decimal
    available_quantity: int
    status: str


@dataclass(frozen=True)
class Reservation:
    listing_id: int
    quantity: int
    new_quantity: int
    resulting_status: str
    seller_id: int
    unit_price: Decimal


@dataclass(frozen=True)
class Conflict:
    listing_id: int


@dataclass(frozen=True)
class NotAvailable:
    listing_id: int
    reason: str  # not_found | inactive | insufficient_stock
    available: Optional[int] = None


ReservationResult = Union[Reservation, Conflict, NotAvailable]


def read_snapshot(db: Session, listing_id: int) -> Optional[StockSnapshot]:
    """Read the listing's current stock state straight from the store."""
    row = (
        db.query(
            Listing.id,
            Listing.seller_id,
            Listing.unit_price,
            Listing.available_quantity,
            Listing.status,
        )
        .filter(Listing.id == listing_id)
        .first()
    )
    if row is None:
        return None
    return StockSnapshot(
        listing_id=row.id,
        seller_id=row.seller_id,
        unit_price=row.unit_price,
        available_quantity=row.available_quantity,
        status=row.status,
    )


def _check_quantity(quantity) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationFailed("quantity", "must be a positive integer")


def reserve_from_snapshot(db: Session, snapshot: StockSnapshot, quantity: int) -> ReservationResult:
    """Validate against an observed snapshot, then apply the conditional decrement."""
    _check_quantity(quantity)

    if snapshot.status != "active":
        return NotAvailable(snapshot.listing_id, "inactive")
    if snapshot.available_quantity < quantity:
        return NotAvailable(snapshot.listing_id, "insufficient_stock", snapshot.available_quantity)

    new_quantity = snapshot.available_quantity - quantity
    values = {"available_quantity": new_quantity, "updated_at": datetime.now(timezone.utc)}
    resulting_status = snapshot.status
    if new_quantity == 0:
        values["status"] = "sold"
        resulting_status = "sold"

    result = db.execute(
        update(Listing)
        .where(
            Listing.id == snapshot.listing_id,
            Listing.available_quantity == snapshot.available_quantity,
            Listing.unit_price == snapshot.unit_price,
            Listing.status == "active",
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning(
            "Reservation conflict on listing %s (observed quantity %s at %s, requested %s)",
            snapshot.listing_id, snapshot.available_quantity, snapshot.unit_price, quantity,
        )
        return Conflict(snapshot.listing_id)

    if resulting_status == "sold":
        logger.info("Listing %s sold out", snapshot.listing_id)

    return Reservation(
        listing_id=snapshot.listing_id,
        quantity=quantity,
        new_quantity=new_quantity,
        resulting_status=resulting_status,
        seller_id=snapshot.seller_id,
        unit_price=snapshot.unit_price,
    )


def reserve_stock(db: Session, listing_id: int, quantity: int) -> ReservationResult:
    """Consume `quantity` units of a listing.

    Returns a Reservation on success, NotAvailable when the listing is
    missing, not active or short on stock, and Conflict when a concurrent
    write changed the stock between our read and our write.
    """
    _check_quantity(quantity)
    snapshot = read_snapshot(db, listing_id)
    if snapshot is None:
        return NotAvailable(listing_id, "not_found")
    return reserve_from_snapshot(db, snapshot, quantity)


def restock(db: Session, listing_id: int, quantity: int) -> None:
    """Return units to a listing with an additive update.

    A listing that sold out becomes active again; inactive and expired
    listings keep their status.
    """
    _check_quantity(quantity)
    db.execute(
        update(Listing)
        .where(Listing.id == listing_id)
        .values(
            available_quantity=Listing.available_quantity + quantity,
            status=case((Listing.status == "sold", "active"), else_=Listing.status),
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    logger.info("Restocked %s units on listing %s", quantity, listing_id)
