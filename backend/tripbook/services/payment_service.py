"""
Payment webhook reconciliation.

The payment provider may deliver the same outcome any number of times, late,
or concurrently with an expiry or a cancellation. apply_payment_outcome makes
every delivery safe to repeat:

  1. key already stored on another booking  -> DUPLICATE_KEY, nothing changes
  2. booking missing                         -> NOT_FOUND, nothing changes
  3. key already stored on this booking      -> DUPLICATE_DELIVERY, unchanged
  4. booking no longer pending_payment       -> STALE, unchanged
  5. otherwise apply the outcome             -> APPLIED

The key is stored on the booking in the same transaction as the state change,
and the unique constraint on bookings.idempotency_key rejects a concurrent
second use of one key. When that constraint fires the key is looked up again,
and only a key held by another booking becomes DUPLICATE_KEY. Nothing here
raises NotFound or Conflict: the caller acknowledges every delivery so the
provider stops retrying.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tripbook.core.exceptions import BookingValidationError
from tripbook.core.logging import get_logger
from tripbook.core.metrics import record_webhook_result
from tripbook.db.base import utcnow
from tripbook.db.transaction import TransactionCoordinator
from tripbook.domain.state_machine import BookingEvent, BookingState, transition
from tripbook.models.booking import Booking
from tripbook.services import inventory

logger = get_logger(__name__)


class PaymentOutcome(str, Enum):
    SUCCEEDED = "success"
    FAILED = "failed"


class ReconcileResult(str, Enum):
    APPLIED = "applied"
    DUPLICATE_DELIVERY = "duplicate_delivery"
    STALE = "stale"
    NOT_FOUND = "not_found"
    DUPLICATE_KEY = "duplicate_key"


_OUTCOME_EVENTS = {
    PaymentOutcome.SUCCEEDED: BookingEvent.PAYMENT_SUCCEEDED,
    PaymentOutcome.FAILED: BookingEvent.PAYMENT_FAILED,
}


async def _key_owner(db: AsyncSession, idempotency_key: str) -> Optional[int]:
    """Booking that already stored `idempotency_key`, if any."""
    result = await db.execute(
        select(Booking.id).where(Booking.idempotency_key == idempotency_key)
    )
    return result.scalar_one_or_none()


@dataclass(frozen=True)
class WebhookResult:
    result: ReconcileResult
    booking_id: int
    booking: Optional[Booking] = None

    @property
    def mutated(self) -> bool:
        return self.result is ReconcileResult.APPLIED


async def apply_payment_outcome(
    tx: TransactionCoordinator,
    booking_id: int,
    outcome: PaymentOutcome,
    idempotency_key: str,
) -> WebhookResult:
    """
    Apply an already-decided payment outcome to a booking at most once.

    Raises:
        BookingValidationError: missing idempotency key or unknown outcome,
            before any transaction opens.
    """
    if not idempotency_key or not idempotency_key.strip():
        raise BookingValidationError("idempotency_key is required")
    try:
        outcome = PaymentOutcome(outcome)
    except ValueError:
        raise BookingValidationError(f"Unknown payment outcome: {outcome!r}") from None

    async def _reconcile(db: AsyncSession) -> WebhookResult:
        owner_id = await _key_owner(db, idempotency_key)
        if owner_id is not None and owner_id != booking_id:
            logger.warning(
                "webhook_duplicate_key",
                idempotency_key=idempotency_key,
                existing_booking_id=owner_id,
                requested_booking_id=booking_id,
            )
            return WebhookResult(ReconcileResult.DUPLICATE_KEY, booking_id)

        result = await db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if not booking:
            logger.warning("webhook_booking_not_found", booking_id=booking_id)
            return WebhookResult(ReconcileResult.NOT_FOUND, booking_id)

        if booking.idempotency_key == idempotency_key:
            logger.info(
                "webhook_duplicate_delivery",
                booking_id=booking_id,
                idempotency_key=idempotency_key,
                state=booking.state,
            )
            return WebhookResult(ReconcileResult.DUPLICATE_DELIVERY, booking_id, booking)

        if booking.current_state is not BookingState.PENDING_PAYMENT:
            logger.info(
                "webhook_stale_outcome",
                booking_id=booking_id,
                state=booking.state,
                outcome=outcome.value,
                idempotency_key=idempotency_key,
            )
            return WebhookResult(ReconcileResult.STALE, booking_id, booking)

        next_state = transition(booking.current_state, _OUTCOME_EVENTS[outcome])
        booking.state = next_state.value
        booking.idempotency_key = idempotency_key
        booking.updated_at = utcnow()

        if outcome is PaymentOutcome.FAILED:
            # Seats were taken at creation; a failed payment gives them back
            await inventory.release(db, booking.trip_id, booking.seat_count)

        await db.flush()
        logger.info(
            "payment_outcome_applied",
            booking_id=booking_id,
            trip_id=booking.trip_id,
            outcome=outcome.value,
            new_state=booking.state,
            seats_released=booking.seat_count if outcome is PaymentOutcome.FAILED else 0,
            idempotency_key=idempotency_key,
        )
        return WebhookResult(ReconcileResult.APPLIED, booking_id, booking)

    try:
        reconciled = await tx.run(_reconcile, name="apply_payment_outcome")
    except IntegrityError:
        # Only a key committed on another booking since step 1 is a duplicate;
        # any other constraint failure propagates
        owner_id = await tx.read(lambda db: _key_owner(db, idempotency_key))
        if owner_id is None or owner_id == booking_id:
            raise
        logger.warning(
            "webhook_duplicate_key_race",
            idempotency_key=idempotency_key,
            existing_booking_id=owner_id,
            requested_booking_id=booking_id,
        )
        reconciled = WebhookResult(ReconcileResult.DUPLICATE_KEY, booking_id)

    record_webhook_result(reconciled.result.value)
    return reconciled
