"""Local shopping cart: a cache of purchase intent, revalidated before checkout."""

from decimal import Decimal
from typing import Optional

from app.client.listing_client import ListingClient
from app.client.reconciliation import CartLine, Reconciliation, line_total, reconcile


class Cart:
    def __init__(self, lines: Optional[list[CartLine]] = None):
        self.lines: list[CartLine] = list(lines or [])

    def _find(self, listing_id: int) -> Optional[int]:
        for i, line in enumerate(self.lines):
            if line.listing_id == listing_id:
                return i
        return None

    def add_item(
        self,
        listing_id: int,
        price: Decimal,
        quantity: int = 1,
        title: Optional[str] = None,
        unit: Optional[str] = None,
    ) -> None:
        """Add a listing, merging quantities if it is already in the cart."""
        if quantity <= 0:
            raise ValueError("quantity must be positive")
        idx = self._find(listing_id)
        if idx is not None:
            line = self.lines[idx]
            self.lines[idx] = line.model_copy(update={"quantity": line.quantity + quantity})
            return
        self.lines.append(
            CartLine(listing_id=listing_id, price=Decimal(price), quantity=quantity, title=title, unit=unit)
        )

    def remove_item(self, listing_id: int) -> None:
        self.lines = [line for line in self.lines if line.listing_id != listing_id]

    def update_quantity(self, listing_id: int, quantity: int) -> None:
        """Set a line's quantity; zero or less removes the line."""
        if quantity <= 0:
            self.remove_item(listing_id)
            return
        idx = self._find(listing_id)
        if idx is not None:
            self.lines[idx] = self.lines[idx].model_copy(update={"quantity": quantity})

    def clear(self) -> None:
        self.lines = []

    def total_price(self) -> Decimal:
        return line_total(self.lines)

    def total_items(self) -> int:
        return sum(line.quantity for line in self.lines)

    def reconcile(self, client: ListingClient, apply_price_updates: bool = False) -> Reconciliation:
        """Revalidate against the server and keep only the surviving lines."""
        result = reconcile(self.lines, client, apply_price_updates=apply_price_updates)
        self.lines = list(result.lines)
        return result

    def resolve_prices(self, result: Reconciliation, apply: bool) -> Reconciliation:
        """Settle pending price conflicts: apply=True adopts live prices, False keeps cached ones."""
        resolved = result.apply_all() if apply else result.keep_all()
        self.lines = list(resolved.lines)
        return resolved
