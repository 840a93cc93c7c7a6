"""Listing model — a farmer's sellable stock."""

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text, CheckConstraint

from app.database import Base

LISTING_STATUSES = ("active", "sold", "inactive", "expired")
# Statuses a seller may set directly; "sold" is only entered by the stock ledger.
SELLER_SETTABLE_STATUSES = ("active", "inactive", "expired")


class Listing(Base):
    __tablename__ = "listings"
    __table_args__ = (
        CheckConstraint("available_quantity >= 0", name="ck_listing_quantity_non_negative"),
        CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in LISTING_STATUSES) + ")",
            name="ck_listing_status_known",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Identity lives with the external provider; no users table here.
    seller_id = Column(Integer, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=False)
    unit = Column(String(50), nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    available_quantity = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="active")  # active | sold | inactive | expired
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
