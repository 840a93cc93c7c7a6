"""Listings router — browsing, batched lookup, and seller edits."""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.errors import MarketplaceError, ValidationFailed, to_http_exception
from app.middleware.auth import Actor, require_farmer, require_seller_or_admin
from app.models.listing import Listing
from app.schemas.listing import ListingCreate, ListingUpdate, ListingResponse
from app.services import listing_service

router = APIRouter(prefix="/api/listings", tags=["listings"])


def _listing_to_response(listing: Listing) -> ListingResponse:
    return ListingResponse(
        id=listing.id,
        seller_id=listing.seller_id,
        title=listing.title,
        description=listing.description,
        category=listing.category,
        unit=listing.unit,
        unit_price=listing.unit_price,
        available_quantity=listing.available_quantity,
        status=listing.status,
        created_at=listing.created_at.isoformat() if listing.created_at else "",
        updated_at=listing.updated_at.isoformat() if listing.updated_at else "",
    )


def _parse_ids(raw: str) -> list[int]:
    ids = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            raise ValidationFailed("ids", f"'{part}' is not an integer id")
    if len(ids) > settings.BULK_LOOKUP_MAX_IDS:
        raise ValidationFailed("ids", f"at most {settings.BULK_LOOKUP_MAX_IDS} ids per request")
    return ids


@router.post("", response_model=ListingResponse, status_code=201)
def create_listing(
    req: ListingCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_farmer),
):
    """Create a listing (farmer only)."""
    try:
        listing = listing_service.create_listing(
            db,
            seller_id=actor.id,
            title=req.title,
            category=req.category,
            unit=req.unit,
            unit_price=req.unit_price,
            available_quantity=req.available_quantity,
            description=req.description,
        )
    except MarketplaceError as e:
        raise to_http_exception(e)
    return _listing_to_response(listing)


@router.get("", response_model=list[ListingResponse])
def list_listings(
    category: Optional[str] = Query(None),
    min_price: Optional[Decimal] = Query(None),
    max_price: Optional[Decimal] = Query(None),
    db: Session = Depends(get_db),
):
    """Browse active listings that still have stock."""
    listings = listing_service.list_active(db, category=category, min_price=min_price, max_price=max_price)
    return [_listing_to_response(l) for l in listings]


@router.get("/bulk", response_model=list[ListingResponse])
def bulk_listings(
    ids: str = Query("", description="Comma-separated listing ids"),
    db: Session = Depends(get_db),
):
    """Fetch many listings in one call, whatever their status. Unknown ids are omitted."""
    try:
        listing_ids = _parse_ids(ids)
    except MarketplaceError as e:
        raise to_http_exception(e)
    return [_listing_to_response(l) for l in listing_service.get_many(db, listing_ids)]


@router.get("/{listing_id}", response_model=ListingResponse)
def get_listing(listing_id: int, db: Session = Depends(get_db)):
    listing = listing_service.get_listing(db, listing_id)
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")
    return _listing_to_response(listing)


@router.patch("/{listing_id}", response_model=ListingResponse)
def update_listing(
    listing_id: int,
    req: ListingUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_seller_or_admin),
):
    """Edit a listing (owning farmer or admin)."""
    try:
        listing = listing_service.update_listing(
            db,
            listing_id,
            actor.id,
            actor.role,
            title=req.title,
            description=req.description,
            unit_price=req.unit_price,
            available_quantity=req.available_quantity,
            status=req.status,
        )
    except MarketplaceError as e:
        raise to_http_exception(e)
    return _listing_to_response(listing)


@router.delete("/{listing_id}", response_model=ListingResponse)
def deactivate_listing(
    listing_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_seller_or_admin),
):
    """Hide a listing. Listings are never hard-deleted."""
    try:
        listing = listing_service.deactivate_listing(db, listing_id, actor.id, actor.role)
    except MarketplaceError as e:
        raise to_http_exception(e)
    return _listing_to_response(listing)
