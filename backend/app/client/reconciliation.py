"""Cart reconciliation — revalidate cached cart lines against live listings.

Three inputs meet here: what the cart assumed (cached price and quantity),
what the server says now (live listing), and what the user decides about
price changes (apply_all / keep_all). The result is advisory; the order
endpoint re-checks stock authoritatively at submission.

Per line, in cart order:
  listing gone               -> removed (deleted)
  listing not active         -> removed (inactive)
  no stock left              -> removed (out_of_stock)
  cart quantity > available  -> quantity clamped
  live price != cached price -> price adjustment (pending unless applied)
A line can be both clamped and repriced; each is reported once.
"""

import logging
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

import httpx
from pydantic import BaseModel, Field

from app.client.listing_client import ListingClient, ListingSnapshot

logger = logging.getLogger(__name__)


class CartLine(BaseModel):
    listing_id: int
    price: Decimal
    quantity: int
    title: Optional[str] = None
    unit: Optional[str] = None


class RemovedAdjustment(BaseModel):
    type: Literal["removed"] = "removed"
    listing_id: int
    code: Literal["deleted", "inactive", "out_of_stock"]
    reason: str


class QuantityAdjustment(BaseModel):
    type: Literal["quantity"] = "quantity"
    listing_id: int
    code: Literal["quantity_clamp"] = "quantity_clamp"
    old_quantity: int
    new_quantity: int
    reason: str = "Clamped to stock"


class PriceAdjustment(BaseModel):
    type: Literal["price"] = "price"
    listing_id: int
    code: Literal["price_change"] = "price_change"
    old_price: Decimal
    new_price: Decimal


Adjustment = Annotated[
    Union[RemovedAdjustment, QuantityAdjustment, PriceAdjustment],
    Field(discriminator="type"),
]

_REMOVAL_REASONS = {
    "deleted": "No longer available",
    "inactive": "Listing inactive",
    "out_of_stock": "Out of stock",
}


class RemovedLine(BaseModel):
    line: CartLine
    code: Literal["deleted", "inactive", "out_of_stock"]


def line_total(lines: list[CartLine]) -> Decimal:
    return sum((line.price * line.quantity for line in lines), Decimal("0"))


class Reconciliation(BaseModel):
    adjustments: list[Adjustment] = []
    lines: list[CartLine] = []
    removed: list[RemovedLine] = []
    total: Decimal = Decimal("0")
    # Price changes still waiting for the user to apply or dismiss
    price_conflicts: list[PriceAdjustment] = []
    # Listings we could not reach; their lines were carried through untouched
    unverified_ids: list[int] = []

    @property
    def has_conflicts(self) -> bool:
        return bool(self.price_conflicts)

    def apply_all(self) -> "Reconciliation":
        """Adopt every live price and clear the conflicts. No server calls."""
        live = {c.listing_id: c.new_price for c in self.price_conflicts}
        lines = [
            line.model_copy(update={"price": live[line.listing_id]}) if line.listing_id in live else line
            for line in self.lines
        ]
        return self.model_copy(update={"lines": lines, "total": line_total(lines), "price_conflicts": []})

    def keep_all(self) -> "Reconciliation":
        """Dismiss the conflicts and keep the cached prices."""
        return self.model_copy(update={"price_conflicts": []})


def _fetch_live(client: ListingClient, listing_ids: list[int]) -> tuple[dict[int, ListingSnapshot], set[int]]:
    """Batched lookup, falling back to per-listing fetches if the batch fails.

    Returns (snapshots by id, ids that could not be reached).
    """
    try:
        return {s.id: s for s in client.fetch_many(listing_ids)}, set()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Bulk listing fetch failed (%s); falling back to per-listing fetches", e)

    live: dict[int, ListingSnapshot] = {}
    unreachable: set[int] = set()
    for listing_id in listing_ids:
        try:
            snapshot = client.fetch_one(listing_id)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Could not revalidate listing %s: %s", listing_id, e)
            unreachable.add(listing_id)
            continue
        if snapshot is not None:
            live[listing_id] = snapshot
    return live, unreachable


def reconcile(
    lines: list[CartLine],
    client: ListingClient,
    apply_price_updates: bool = False,
) -> Reconciliation:
    """Revalidate `lines` against the server and return the adjusted cart."""
    if not lines:
        return Reconciliation()

    listing_ids = list(dict.fromkeys(line.listing_id for line in lines))
    live, unreachable = _fetch_live(client, listing_ids)

    result = Reconciliation(unverified_ids=sorted(unreachable))
    for line in lines:
        if line.listing_id in unreachable:
            # A stale line is better than a wrongly removed one
            result.lines.append(line)
            continue

        fresh = live.get(line.listing_id)
        if fresh is None:
            code = "deleted"
        elif fresh.status != "active":
            code = "inactive"
        elif fresh.available_quantity <= 0:
            code = "out_of_stock"
        else:
            code = None

        if code is not None:
            result.adjustments.append(
                RemovedAdjustment(listing_id=line.listing_id, code=code, reason=_REMOVAL_REASONS[code])
            )
            result.removed.append(RemovedLine(line=line, code=code))
            continue

        quantity = line.quantity
        if quantity > fresh.available_quantity:
            quantity = fresh.available_quantity
            result.adjustments.append(
                QuantityAdjustment(listing_id=line.listing_id, old_quantity=line.quantity, new_quantity=quantity)
            )

        price = line.price
        if fresh.unit_price != line.price:
            change = PriceAdjustment(listing_id=line.listing_id, old_price=line.price, new_price=fresh.unit_price)
            result.adjustments.append(change)
            if apply_price_updates:
                price = fresh.unit_price
            else:
                result.price_conflicts.append(change)

        if quantity == line.quantity and price == line.price:
            result.lines.append(line)
        else:
            result.lines.append(line.model_copy(update={"quantity": quantity, "price": price}))

    result.total = line_total(result.lines)
    return result
