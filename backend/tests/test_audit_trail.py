"""Tests for the append-only order history."""

from datetime import datetime, timedelta, timezone

from app.models.order_status_history import OrderStatusHistory
from app.services import audit_trail, order_service


def _entry(id, from_status, to_status, created_at, actor=1, order_id=1):
    return OrderStatusHistory(
        id=id,
        order_id=order_id,
        from_status=from_status,
        to_status=to_status,
        changed_by_user_id=actor,
        created_at=created_at,
    )


T0 = datetime(2026, 3, 1, 9, 0, 0)


class TestAppend:
    def test_append_commits_with_caller(self, db, make_listing):
        listing = make_listing(seller_id=10)
        placed = order_service.create_order(db, 20, listing.id, 1, "3 Barn Court")
        order_id = placed.order.id

        audit_trail.append(db, order_id, "pending", "accepted", 10)
        # Discarded along with the caller's transaction
        db.rollback()
        assert len(audit_trail.list_for(db, order_id)) == 1

        audit_trail.append(db, order_id, "pending", "accepted", 10)
        db.commit()
        entries = audit_trail.list_for(db, order_id)
        assert len(entries) == 2
        assert audit_trail.status_path(entries) == [None, "pending", "accepted"]

    def test_list_for_is_scoped_to_order(self, db, make_listing):
        listing = make_listing(seller_id=10, quantity=5)
        first = order_service.create_order(db, 20, listing.id, 1, "3 Barn Court").order
        second = order_service.create_order(db, 21, listing.id, 1, "4 Barn Court").order

        assert [e.order_id for e in audit_trail.list_for(db, first.id)] == [first.id]
        assert [e.changed_by_user_id for e in audit_trail.list_for(db, second.id)] == [21]


class TestOrdering:
    def test_sorted_by_timestamp(self):
        entries = [
            _entry(3, "accepted", "shipped", T0 + timedelta(minutes=2)),
            _entry(1, None, "pending", T0),
            _entry(2, "pending", "accepted", T0 + timedelta(minutes=1)),
        ]
        assert [e.id for e in audit_trail.chronological(entries)] == [1, 2, 3]

    def test_equal_timestamps_fall_back_to_id(self):
        entries = [
            _entry(7, "pending", "accepted", T0),
            _entry(5, None, "pending", T0),
        ]
        assert [e.id for e in audit_trail.chronological(entries)] == [5, 7]

    def test_mixed_naive_and_aware_timestamps(self):
        entries = [
            _entry(2, "pending", "accepted", (T0 + timedelta(seconds=1)).replace(tzinfo=timezone.utc)),
            _entry(1, None, "pending", T0),
        ]
        assert [e.id for e in audit_trail.chronological(entries)] == [1, 2]


class TestReplay:
    def test_replay_reaches_last_status(self):
        entries = [
            _entry(1, None, "pending", T0),
            _entry(2, "pending", "accepted", T0 + timedelta(seconds=1)),
            _entry(3, "accepted", "cancelled", T0 + timedelta(seconds=2)),
        ]
        assert audit_trail.replay(entries) == "cancelled"

    def test_broken_chain(self):
        entries = [
            _entry(1, None, "pending", T0),
            _entry(2, "accepted", "shipped", T0 + timedelta(seconds=1)),
        ]
        assert audit_trail.replay(entries) is None

    def test_chain_must_start_from_nothing(self):
        assert audit_trail.replay([_entry(1, "pending", "accepted", T0)]) is None

    def test_empty_history(self):
        assert audit_trail.replay([]) is None
        assert audit_trail.status_path([]) == []
