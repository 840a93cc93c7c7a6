"""HTTP client for the listing read endpoints the cart revalidates against."""

import logging
from decimal import Decimal
from typing import Iterable, Optional

import httpx
from pydantic import BaseModel

from app.config import settings

logger = logging.getLogger(__name__)


class ListingSnapshot(BaseModel):
    """Live listing state as the server reports it."""

    id: int
    status: str
    available_quantity: int
    unit_price: Decimal
    title: Optional[str] = None
    unit: Optional[str] = None


class ListingClient:
    """Thin wrapper over httpx for /api/listings.

    Pass `client` to reuse an existing httpx.Client (or a FastAPI TestClient);
    otherwise one is created from settings and closed with this object.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
        batch_size: Optional[int] = None,
    ):
        self._owns_client = client is None
        # Must not exceed the server's bulk lookup cap
        self.batch_size = batch_size or settings.BULK_LOOKUP_MAX_IDS
        self.client = client or httpx.Client(
            base_url=base_url or settings.LISTING_API_BASE_URL,
            timeout=timeout or settings.LISTING_API_TIMEOUT,
        )

    def fetch_many(self, listing_ids: Iterable[int]) -> list[ListingSnapshot]:
        """Batched lookup, one request per `batch_size` ids.

        Listings that no longer exist are absent from the result.
        """
        ids = list(listing_ids)
        snapshots: list[ListingSnapshot] = []
        for start in range(0, len(ids), self.batch_size):
            chunk = ids[start:start + self.batch_size]
            response = self.client.get(
                "/api/listings/bulk",
                params={"ids": ",".join(str(i) for i in chunk)},
            )
            response.raise_for_status()
            snapshots.extend(ListingSnapshot.model_validate(item) for item in response.json())
        return snapshots

    def fetch_one(self, listing_id: int) -> Optional[ListingSnapshot]:
        """Point lookup; None when the listing does not exist."""
        response = self.client.get(f"/api/listings/{listing_id}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return ListingSnapshot.model_validate(response.json())

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
