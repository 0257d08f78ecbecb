"""
Booking model representing one purchase attempt and its lifecycle state.

Key design decisions:
- `state` only changes through tripbook.domain.state_machine.transition
- `price_charged` is a snapshot taken at creation; later trip price changes
  never touch it
- `idempotency_key` is unique among non-null values, so a payment outcome
  can be attached to at most one booking
- Composite index on (state, expires_at) serves the expiry sweep query
"""

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from tripbook.db.base import Base, TimestampMixin, UTCDateTime
from tripbook.domain.state_machine import BookingState


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    requester_id = Column(String(64), nullable=False, index=True)
    seat_count = Column(Integer, nullable=False)
    state = Column(String(20), nullable=False, default=BookingState.PENDING_PAYMENT.value)
    price_charged = Column(Numeric(10, 2), nullable=False)
    expires_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    refund_amount = Column(Numeric(10, 2), nullable=True)
    # Nullable uniqueness: many NULLs allowed, non-null keys must be distinct
    idempotency_key = Column(String(255), nullable=True, unique=True)

    trip = relationship("Trip", back_populates="bookings", lazy="raise")

    __table_args__ = (
        CheckConstraint("seat_count > 0", name="check_booking_seat_count_positive"),
        CheckConstraint(
            "state IN ('pending_payment', 'confirmed', 'cancelled', 'expired')",
            name="check_booking_state",
        ),
        Index("ix_bookings_state_expires_at", "state", "expires_at"),
    )

    @property
    def current_state(self) -> BookingState:
        return BookingState(self.state)

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, trip={self.trip_id}, seats={self.seat_count}, state={self.state})>"
