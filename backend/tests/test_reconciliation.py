"""Tests for cart reconciliation against a mocked listing API."""

from decimal import Decimal

import httpx
import pytest

from app.client.listing_client import ListingClient
from app.client.reconciliation import (
    CartLine,
    PriceAdjustment,
    QuantityAdjustment,
    RemovedAdjustment,
    reconcile,
)


class FakeListingAPI:
    """In-memory stand-in for /api/listings served through httpx.MockTransport."""

    def __init__(self, listings=None, bulk_fails=False, unreachable=()):
        self.listings = dict(listings or {})
        self.bulk_fails = bulk_fails
        self.unreachable = set(unreachable)
        self.max_ids = 100
        self.requests: list[httpx.Request] = []

    def add(self, listing_id, price="100.00", quantity=5, status="active"):
        self.listings[listing_id] = {
            "id": listing_id,
            "status": status,
            "available_quantity": quantity,
            "unit_price": price,
            "title": f"Listing {listing_id}",
            "unit": "kg",
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/api/listings/bulk":
            if self.bulk_fails:
                return httpx.Response(503, json={"detail": "unavailable"})
            ids = [int(i) for i in request.url.params["ids"].split(",")]
            if len(ids) > self.max_ids:
                return httpx.Response(400, json={"detail": {"error": "validation_error", "field": "ids"}})
            return httpx.Response(200, json=[self.listings[i] for i in ids if i in self.listings])

        listing_id = int(path.rsplit("/", 1)[-1])
        if listing_id in self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        if listing_id not in self.listings:
            return httpx.Response(404, json={"detail": "Listing not found"})
        return httpx.Response(200, json=self.listings[listing_id])

    def client(self) -> ListingClient:
        transport = httpx.MockTransport(self.handler)
        return ListingClient(client=httpx.Client(transport=transport, base_url="http://market.test"))


@pytest.fixture
def api():
    return FakeListingAPI()


def _line(listing_id, price="100.00", quantity=1):
    return CartLine(listing_id=listing_id, price=Decimal(price), quantity=quantity)


class TestRemovals:
    def test_unchanged_cart(self, api):
        api.add(1, price="10.00", quantity=5)
        result = reconcile([_line(1, "10.00", 2)], api.client())

        assert result.adjustments == []
        assert result.lines == [_line(1, "10.00", 2)]
        assert result.total == Decimal("20.00")
        assert not result.has_conflicts

    def test_deleted_listing(self, api):
        result = reconcile([_line(1)], api.client())
        assert result.lines == []
        assert result.adjustments == [
            RemovedAdjustment(listing_id=1, code="deleted", reason="No longer available")
        ]
        assert result.removed[0].code == "deleted"

    @pytest.mark.parametrize("status", ["inactive", "sold", "expired"])
    def test_inactive_listing(self, api, status):
        api.add(1, status=status)
        result = reconcile([_line(1)], api.client())
        assert result.lines == []
        assert result.adjustments[0].code == "inactive"

    def test_out_of_stock(self, api):
        api.add(1, quantity=0)
        result = reconcile([_line(1)], api.client())
        assert result.lines == []
        assert result.adjustments[0].code == "out_of_stock"
        assert result.total == Decimal("0")


class TestQuantityClamp:
    def test_clamped_to_stock(self, api):
        api.add(1, price="4.00", quantity=2)
        result = reconcile([_line(1, "4.00", 5)], api.client())

        assert result.adjustments == [QuantityAdjustment(listing_id=1, old_quantity=5, new_quantity=2)]
        assert result.lines[0].quantity == 2
        assert result.total == Decimal("8.00")

    def test_exact_stock_is_kept(self, api):
        api.add(1, quantity=3)
        assert reconcile([_line(1, quantity=3)], api.client()).adjustments == []


class TestPriceChanges:
    def test_price_change_is_pending_by_default(self, api):
        """Cached at 100, now 120: the line keeps 100 until the user decides."""
        api.add(1, price="120.00")
        result = reconcile([_line(1, "100.00", 1)], api.client())

        change = PriceAdjustment(listing_id=1, old_price=Decimal("100.00"), new_price=Decimal("120.00"))
        assert result.adjustments == [change]
        assert result.price_conflicts == [change]
        assert result.has_conflicts
        assert result.lines[0].price == Decimal("100.00")
        assert result.total == Decimal("100.00")

    def test_apply_price_updates(self, api):
        api.add(1, price="120.00")
        result = reconcile([_line(1, "100.00", 1)], api.client(), apply_price_updates=True)

        assert result.adjustments[0].type == "price"
        assert result.price_conflicts == []
        assert result.lines[0].price == Decimal("120.00")
        assert result.total == Decimal("120.00")

    def test_apply_all_after_the_fact(self, api):
        api.add(1, price="120.00")
        api.add(2, price="5.00")
        pending = reconcile([_line(1, "100.00", 2), _line(2, "5.00", 1)], api.client())
        calls = len(api.requests)

        applied = pending.apply_all()
        assert len(api.requests) == calls
        assert applied.price_conflicts == []
        assert [l.price for l in applied.lines] == [Decimal("120.00"), Decimal("5.00")]
        assert applied.total == Decimal("245.00")
        # The original result is left as it was
        assert pending.has_conflicts

    def test_keep_all(self, api):
        api.add(1, price="120.00")
        kept = reconcile([_line(1, "100.00", 1)], api.client()).keep_all()
        assert kept.price_conflicts == []
        assert kept.lines[0].price == Decimal("100.00")
        assert kept.total == Decimal("100.00")

    def test_price_drop_is_reported_too(self, api):
        api.add(1, price="80.00")
        result = reconcile([_line(1, "100.00", 1)], api.client())
        assert result.price_conflicts[0].new_price == Decimal("80.00")

    def test_clamp_and_price_change_on_one_line(self, api):
        api.add(1, price="12.00", quantity=1)
        result = reconcile([_line(1, "10.00", 3)], api.client(), apply_price_updates=True)

        assert [a.type for a in result.adjustments] == ["quantity", "price"]
        assert result.lines == [_line(1, "12.00", 1)]


class TestIdempotence:
    def test_second_pass_is_quiet(self, api):
        api.add(1, price="12.00", quantity=1)
        api.add(2, status="inactive")
        api.add(3, price="7.50", quantity=10)
        lines = [_line(1, "10.00", 3), _line(2), _line(3, "7.50", 2), _line(4)]

        first = reconcile(lines, api.client(), apply_price_updates=True)
        second = reconcile(first.lines, api.client(), apply_price_updates=True)

        assert second.adjustments == []
        assert second.lines == first.lines
        assert second.total == first.total

    def test_second_pass_after_apply_all(self, api):
        api.add(1, price="12.00", quantity=1)
        settled = reconcile([_line(1, "10.00", 3)], api.client()).apply_all()
        assert reconcile(settled.lines, api.client()).adjustments == []


class TestFetching:
    def test_single_batched_request(self, api):
        for i in (1, 2, 3):
            api.add(i)
        reconcile([_line(1), _line(2), _line(3), _line(1)], api.client())

        assert len(api.requests) == 1
        assert api.requests[0].url.path == "/api/listings/bulk"
        assert api.requests[0].url.params["ids"] == "1,2,3"

    def test_large_cart_is_split_into_capped_batches(self, api):
        for i in range(1, 251):
            api.add(i, price="1.00")
        lines = [_line(i, "1.00") for i in range(1, 251)]
        result = reconcile(lines, api.client())

        assert [r.url.path for r in api.requests] == ["/api/listings/bulk"] * 3
        sizes = [len(r.url.params["ids"].split(",")) for r in api.requests]
        assert sizes == [100, 100, 50]
        assert result.adjustments == []
        assert len(result.lines) == 250

    def test_empty_cart_makes_no_calls(self, api):
        result = reconcile([], api.client())
        assert result.lines == [] and result.adjustments == []
        assert api.requests == []

    def test_cart_order_preserved(self, api):
        for i in (5, 3, 9):
            api.add(i)
        result = reconcile([_line(9), _line(3), _line(5)], api.client())
        assert [l.listing_id for l in result.lines] == [9, 3, 5]

    def test_falls_back_to_per_listing_fetches(self):
        api = FakeListingAPI(bulk_fails=True)
        api.add(1, price="10.00", quantity=1)
        result = reconcile([_line(1, "10.00", 2), _line(2)], api.client())

        paths = [r.url.path for r in api.requests]
        assert paths == ["/api/listings/bulk", "/api/listings/1", "/api/listings/2"]
        assert [a.type for a in result.adjustments] == ["quantity", "removed"]
        assert result.adjustments[1].code == "deleted"

    def test_unreachable_lines_are_carried_through(self):
        api = FakeListingAPI(bulk_fails=True, unreachable={2})
        api.add(1, price="10.00")
        lines = [_line(1, "10.00", 1), _line(2, "3.00", 4)]
        result = reconcile(lines, api.client())

        assert result.lines == lines
        assert result.unverified_ids == [2]
        assert result.adjustments == []
        assert result.total == Decimal("22.00")
