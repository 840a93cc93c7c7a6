"""Listing service — seller-side listing CRUD and the read paths buyers use."""

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.errors import Forbidden, ListingEditConflict, NotFound, ValidationFailed
from app.models.listing import Listing, SELLER_SETTABLE_STATUSES

logger = logging.getLogger(__name__)


def _check_price(unit_price) -> Decimal:
    try:
        price = Decimal(str(unit_price))
    except (InvalidOperation, ValueError):
        raise ValidationFailed("unit_price", "must be a decimal amount")
    if not price.is_finite() or price <= 0:
        raise ValidationFailed("unit_price", "must be positive")
    return price.quantize(Decimal("0.01"))


def _check_text(field: str, value: Optional[str]) -> str:
    if value is None or not value.strip():
        raise ValidationFailed(field, "must not be empty")
    return value.strip()


def create_listing(
    db: Session,
    seller_id: int,
    title: str,
    category: str,
    unit: str,
    unit_price,
    available_quantity: int,
    description: Optional[str] = None,
) -> Listing:
    """Create an active listing owned by `seller_id`."""
    if isinstance(available_quantity, bool) or not isinstance(available_quantity, int) or available_quantity < 1:
        raise ValidationFailed("available_quantity", "must be at least 1")

    listing = Listing(
        seller_id=seller_id,
        title=_check_text("title", title),
        category=_check_text("category", category),
        unit=_check_text("unit", unit),
        unit_price=_check_price(unit_price),
        available_quantity=available_quantity,
        description=description,
        status="active",
    )
    db.add(listing)
    db.commit()
    db.refresh(listing)
    logger.info("Listing %s created by seller %s", listing.id, seller_id)
    return listing


def get_listing(db: Session, listing_id: int) -> Optional[Listing]:
    return db.query(Listing).filter(Listing.id == listing_id).first()


def get_many(db: Session, listing_ids: list[int]) -> list[Listing]:
    """Batched lookup by id. Missing ids are simply absent from the result."""
    if not listing_ids:
        return []
    return db.query(Listing).filter(Listing.id.in_(set(listing_ids))).all()


def list_active(
    db: Session,
    category: Optional[str] = None,
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
) -> list[Listing]:
    """Browsable listings: active with stock left, newest first."""
    query = db.query(Listing).filter(Listing.status == "active", Listing.available_quantity > 0)
    if category:
        query = query.filter(Listing.category == category)
    if min_price is not None:
        query = query.filter(Listing.unit_price >= min_price)
    if max_price is not None:
        query = query.filter(Listing.unit_price <= max_price)
    return query.order_by(Listing.created_at.desc(), Listing.id.desc()).all()


def _load_owned(db: Session, listing_id: int, actor_id: int, actor_role: str) -> Listing:
    if actor_role not in ("farmer", "admin"):
        raise Forbidden("Only the seller or an admin can modify a listing")
    listing = get_listing(db, listing_id)
    if not listing:
        raise NotFound("listing", listing_id)
    if actor_role == "farmer" and listing.seller_id != actor_id:
        raise Forbidden("Not the owner of this listing")
    return listing


def update_listing(
    db: Session,
    listing_id: int,
    actor_id: int,
    actor_role: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    unit_price=None,
    available_quantity: Optional[int] = None,
    status: Optional[str] = None,
) -> Listing:
    """Apply seller edits.

    The write is conditioned on the stock we read, so an edit racing a
    reservation fails with ListingEditConflict instead of clobbering the decrement.
    """
    listing = _load_owned(db, listing_id, actor_id, actor_role)
    observed_quantity = listing.available_quantity
    observed_status = listing.status

    values: dict = {}
    if title is not None:
        values["title"] = _check_text("title", title)
    if description is not None:
        values["description"] = description
    if unit_price is not None:
        values["unit_price"] = _check_price(unit_price)
    if available_quantity is not None:
        if isinstance(available_quantity, bool) or not isinstance(available_quantity, int) or available_quantity < 0:
            raise ValidationFailed("available_quantity", "must be a non-negative integer")
        values["available_quantity"] = available_quantity
    if status is not None:
        if status not in SELLER_SETTABLE_STATUSES:
            raise ValidationFailed("status", f"must be one of {', '.join(SELLER_SETTABLE_STATUSES)}")
        values["status"] = status

    # Restocking a sold-out listing puts it back on sale
    new_quantity = values.get("available_quantity", observed_quantity)
    if observed_status == "sold" and "status" not in values and new_quantity > 0:
        values["status"] = "active"

    if not values:
        return listing

    values["updated_at"] = datetime.now(timezone.utc)
    try:
        result = db.execute(
            update(Listing)
            .where(
                Listing.id == listing_id,
                Listing.available_quantity == observed_quantity,
                Listing.status == observed_status,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ListingEditConflict(listing_id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(listing)
    logger.info("Listing %s updated by user %s: %s", listing_id, actor_id, sorted(values))
    return listing


def deactivate_listing(db: Session, listing_id: int, actor_id: int, actor_role: str) -> Listing:
    """Soft delete: listings referenced by orders must survive, so we only hide them."""
    listing = _load_owned(db, listing_id, actor_id, actor_role)
    if listing.status == "inactive":
        return listing
    listing.status = "inactive"
    listing.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(listing)
    logger.info("Listing %s deactivated by user %s", listing_id, actor_id)
    return listing
