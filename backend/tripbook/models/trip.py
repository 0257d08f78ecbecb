"""
Trip model with seat inventory tracking.

Key design decisions:
- `available_seats` is the single source of truth for availability. It is only
  changed through the inventory ledger (tripbook.services.inventory), which uses
  one conditional UPDATE per change.
- CHECK constraints keep `0 <= available_seats <= capacity` at the DB level.
- Refund policy lives on the trip; bookings snapshot the price, not the policy.
"""

from sqlalchemy import Column, Integer, String, Numeric, Index, CheckConstraint
from sqlalchemy.orm import relationship

from tripbook.db.base import Base, TimestampMixin, UTCDateTime

TRIP_STATUS_DRAFT = "draft"
TRIP_STATUS_PUBLISHED = "published"
TRIP_STATUSES = (TRIP_STATUS_DRAFT, TRIP_STATUS_PUBLISHED)


class Trip(Base, TimestampMixin):
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    destination = Column(String(255), nullable=False)
    departs_at = Column(UTCDateTime, nullable=False)
    returns_at = Column(UTCDateTime, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    capacity = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=TRIP_STATUS_DRAFT)
    refundable_until_days_before = Column(Integer, nullable=False, default=0)
    cancellation_fee_percent = Column(Integer, nullable=False, default=0)

    bookings = relationship("Booking", back_populates="trip", lazy="raise")

    __table_args__ = (
        CheckConstraint("capacity > 0", name="check_trip_capacity_positive"),
        CheckConstraint("available_seats >= 0", name="check_available_seats_non_negative"),
        CheckConstraint("available_seats <= capacity", name="check_available_lte_capacity"),
        CheckConstraint("price > 0", name="check_trip_price_positive"),
        CheckConstraint("refundable_until_days_before >= 0", name="check_refund_cutoff_non_negative"),
        CheckConstraint(
            "cancellation_fee_percent BETWEEN 0 AND 100", name="check_cancellation_fee_range"
        ),
        CheckConstraint("status IN ('draft', 'published')", name="check_trip_status"),
        # Listing query: published trips ordered by departure
        Index("ix_trips_status_departs_at", "status", "departs_at"),
    )

    @property
    def is_published(self) -> bool:
        return self.status == TRIP_STATUS_PUBLISHED

    def __repr__(self) -> str:
        return f"<Trip(id={self.id}, title={self.title}, available={self.available_seats}/{self.capacity})>"
