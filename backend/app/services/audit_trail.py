"""Order audit trail — append-only history of order status changes."""

from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.models.order_status_history import OrderStatusHistory


def append(
    db: Session,
    order_id: int,
    from_status: Optional[str],
    to_status: str,
    actor_id: int,
) -> OrderStatusHistory:
    """Insert a history entry. The caller commits it with the status change."""
    entry = OrderStatusHistory(
        order_id=order_id,
        from_status=from_status,
        to_status=to_status,
        changed_by_user_id=actor_id,
    )
    db.add(entry)
    return entry


def list_for(db: Session, order_id: int) -> list[OrderStatusHistory]:
    """All entries for an order, in no particular order."""
    return db.query(OrderStatusHistory).filter(OrderStatusHistory.order_id == order_id).all()


def _sort_key(entry: OrderStatusHistory):
    created = entry.created_at
    # SQLite hands back naive datetimes; fresh entries may still be tz-aware
    if created is not None and created.tzinfo is not None:
        created = created.replace(tzinfo=None)
    return (created, entry.id or 0)


def chronological(entries: Iterable[OrderStatusHistory]) -> list[OrderStatusHistory]:
    """Oldest first; ties on timestamp fall back to insertion id."""
    return sorted(entries, key=_sort_key)


def replay(entries: Iterable[OrderStatusHistory]) -> Optional[str]:
    """Fold the entries in creation order and return the status they lead to.

    Returns None when the chain is broken: the first entry must come from
    nothing and every later entry must start where the previous one ended.
    """
    current = None
    for entry in chronological(entries):
        if entry.from_status != current:
            return None
        current = entry.to_status
    return current


def status_path(entries: Iterable[OrderStatusHistory]) -> list[Optional[str]]:
    """[None, 'pending', 'accepted', ...] for display and checks."""
    ordered = chronological(entries)
    if not ordered:
        return []
    return [ordered[0].from_status] + [e.to_status for e in ordered]
