"""
Booking service: seat admission at creation and cancellation with refund.

ADMISSION MODEL: Single-Phase Decrement
=======================================

Seats leave the inventory the moment a booking is created in
pending_payment, and come back only when the booking moves to a state that
frees them:

  create                      available_seats -= n     (pending_payment)
  payment succeeded           no change                (confirmed)
  payment failed / timed out  available_seats += n     (expired)
  cancel before cutoff        available_seats += n     (cancelled)
  cancel after cutoff         no change                (cancelled)

Seats of a confirmed booking cancelled after the refund cutoff stay taken:
the trip is too close to departure to resell them.

Every operation here is one TransactionCoordinator.run() unit. The booking is
re-read with FOR UPDATE inside the unit before it is changed; state decisions
go through tripbook.domain.state_machine.
"""

import time
from datetime import timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tripbook.core.config import get_settings
from tripbook.core.exceptions import (
    BookingValidationError,
    ConflictError,
    IllegalTransitionError,
    NotFoundError,
)
from tripbook.core.logging import get_logger
from tripbook.core.metrics import booking_latency, record_booking_attempt, record_cancellation
from tripbook.db.base import utcnow
from tripbook.db.transaction import TransactionCoordinator
from tripbook.domain import refunds
from tripbook.domain.state_machine import BookingEvent, BookingState, is_terminal, transition
from tripbook.models.booking import Booking
from tripbook.models.trip import Trip
from tripbook.services import inventory

logger = get_logger(__name__)


async def _load_booking_for_update(db: AsyncSession, booking_id: int) -> Optional[Booking]:
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _load_trip(db: AsyncSession, trip_id: int, for_update: bool = False) -> Optional[Trip]:
    query = select(Trip).where(Trip.id == trip_id).execution_options(populate_existing=True)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


def _apply(booking: Booking, event: BookingEvent) -> BookingState:
    """Move the booking through the state machine, surfacing illegal moves as Conflict."""
    try:
        next_state = transition(booking.current_state, event)
    except IllegalTransitionError as exc:
        raise ConflictError(exc.detail) from exc
    booking.state = next_state.value
    return next_state


async def create_booking(
    tx: TransactionCoordinator,
    trip_id: int,
    requester_id: str,
    seat_count: int,
) -> Booking:
    """
    Reserve `seat_count` seats on a published trip and open a booking in
    pending_payment with a payment hold of BOOKING_HOLD_MINUTES.

    Raises:
        BookingValidationError: non-positive seat count or empty requester.
        NotFoundError: trip missing or not published.
        ConflictError: not enough seats left.
    """
    if not isinstance(seat_count, int) or isinstance(seat_count, bool) or seat_count <= 0:
        record_booking_attempt("invalid")
        raise BookingValidationError("seat_count must be a positive integer")
    if not requester_id or not requester_id.strip():
        record_booking_attempt("invalid")
        raise BookingValidationError("requester_id is required")

    hold = timedelta(minutes=get_settings().BOOKING_HOLD_MINUTES)

    async def _create(db: AsyncSession) -> Booking:
        trip = await _load_trip(db, trip_id)
        if not trip or not trip.is_published:
            raise NotFoundError(f"Trip {trip_id} not found or not open for booking")

        price_charged = refunds.round2(trip.price * seat_count)

        if not await inventory.try_reserve(db, trip_id, seat_count):
            logger.warning(
                "booking_failed_no_seats",
                trip_id=trip_id,
                requested=seat_count,
            )
            raise ConflictError("insufficient seats")

        now = utcnow()
        booking = Booking(
            trip_id=trip_id,
            requester_id=requester_id,
            seat_count=seat_count,
            state=BookingState.PENDING_PAYMENT.value,
            price_charged=price_charged,
            created_at=now,
            updated_at=now,
            expires_at=now + hold,
        )
        db.add(booking)
        await db.flush()
        return booking

    started = time.perf_counter()
    try:
        booking = await tx.run(_create, name="create_booking")
    except ConflictError:
        record_booking_attempt("conflict")
        raise
    except NotFoundError:
        record_booking_attempt("not_found")
        raise
    finally:
        booking_latency.observe(time.perf_counter() - started)

    record_booking_attempt("success")
    logger.info(
        "booking_created",
        booking_id=booking.id,
        requester_id=requester_id,
        trip_id=trip_id,
        seats=seat_count,
        price_charged=str(booking.price_charged),
        expires_at=booking.expires_at.isoformat(),
    )
    return booking


async def cancel_booking(tx: TransactionCoordinator, booking_id: int) -> Booking:
    """
    Cancel a booking and compute its refund under the trip's policy.

    Seats go back to the trip only when the cancellation is refundable.

    Raises:
        NotFoundError: booking missing.
        ConflictError: booking already terminal, mid-reconciliation, or a
            pending payment past the refund cutoff.
    """

    async def _cancel(db: AsyncSession) -> tuple[Booking, bool, float]:
        booking = await _load_booking_for_update(db, booking_id)
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")

        if is_terminal(booking.current_state):
            raise ConflictError(f"Booking is already {booking.state}")

        if booking.current_state is BookingState.PENDING_PAYMENT and booking.idempotency_key:
            raise ConflictError("Payment outcome for this booking is already being applied")

        trip = await _load_trip(db, booking.trip_id)
        now = utcnow()
        days_left = refunds.days_until(trip.departs_at, now)
        refundable = refunds.is_refundable(days_left, trip.refundable_until_days_before)

        if booking.current_state is BookingState.PENDING_PAYMENT and not refundable:
            raise ConflictError("Cannot cancel a pending payment after the refund cutoff")

        event = (
            BookingEvent.CANCELLED_BEFORE_CUTOFF if refundable
            else BookingEvent.CANCELLED_AFTER_CUTOFF
        )
        _apply(booking, event)
        booking.refund_amount = refunds.calculate_refund(
            booking.price_charged, trip.cancellation_fee_percent, refundable
        )
        booking.cancelled_at = now
        booking.updated_at = now

        if refundable:
            await inventory.release(db, booking.trip_id, booking.seat_count)

        await db.flush()
        return booking, refundable, days_left

    booking, refundable, days_left = await tx.run(_cancel, name="cancel_booking")

    record_cancellation(refundable)
    logger.info(
        "booking_cancelled",
        booking_id=booking.id,
        trip_id=booking.trip_id,
        refundable=refundable,
        refund_amount=str(booking.refund_amount),
        days_until_departure=round(days_left, 2),
        seats_restored=booking.seat_count if refundable else 0,
    )
    return booking


async def get_booking(tx: TransactionCoordinator, booking_id: int) -> Booking:
    """Get a single booking by ID."""

    async def _get(db: AsyncSession) -> Optional[Booking]:
        result = await db.execute(select(Booking).where(Booking.id == booking_id))
        return result.scalar_one_or_none()

    booking = await tx.read(_get)
    if not booking:
        raise NotFoundError(f"Booking {booking_id} not found")
    return booking


async def list_bookings_for_requester(tx: TransactionCoordinator, requester_id: str) -> list[Booking]:
    """Get all bookings for a requester, newest first."""

    async def _list(db: AsyncSession) -> list[Booking]:
        result = await db.execute(
            select(Booking)
            .where(Booking.requester_id == requester_id)
            .order_by(Booking.created_at.desc(), Booking.id.desc())
        )
        return list(result.scalars().all())

    return await tx.read(_list)
