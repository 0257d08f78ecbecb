"""
Expiry sweeper: returns seats held by pending_payment bookings whose payment
hold ran out.

Each sweep takes a snapshot of candidates (state = pending_payment and
expires_at < now) outside any write transaction, then expires every
candidate in its own transaction. Inside that transaction the booking is
re-read; if a webhook or a cancellation got to it first it is skipped. One
candidate failing is logged and counted, and the sweep moves on.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tripbook.core.logging import get_logger
from tripbook.core.metrics import expiry_sweep_latency, record_expired, record_sweep_failure
from tripbook.db.base import utcnow
from tripbook.db.transaction import TransactionCoordinator
from tripbook.domain.state_machine import BookingEvent, BookingState, transition
from tripbook.models.booking import Booking
from tripbook.services import inventory
from tripbook.services.cache_service import invalidate_trip_availability

logger = get_logger(__name__)


@dataclass
class SweepReport:
    candidates: int = 0
    expired: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    released_trip_ids: set[int] = field(default_factory=set)


class ExpirySweeper:
    """Periodic expiry of abandoned pending payments."""

    def __init__(self, tx: TransactionCoordinator, interval_seconds: float = 60.0):
        self.tx = tx
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    async def find_candidates(self, now: datetime) -> list[int]:
        async def _query(db: AsyncSession) -> list[int]:
            result = await db.execute(
                select(Booking.id)
                .where(
                    Booking.state == BookingState.PENDING_PAYMENT.value,
                    Booking.expires_at.is_not(None),
                    Booking.expires_at < now,
                )
                .order_by(Booking.expires_at.asc())
            )
            return list(result.scalars().all())

        return await self.tx.read(_query)

    async def expire_one(self, booking_id: int, now: datetime) -> Optional[int]:
        """Expire one booking. Returns the trip whose seats came back, or None if
        the booking was no longer pending."""

        async def _expire(db: AsyncSession) -> Optional[int]:
            result = await db.execute(
                select(Booking)
                .where(Booking.id == booking_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            booking = result.scalar_one_or_none()
            if not booking or booking.current_state is not BookingState.PENDING_PAYMENT:
                return None

            booking.state = transition(booking.current_state, BookingEvent.TIMED_OUT).value
            booking.updated_at = now
            await inventory.release(db, booking.trip_id, booking.seat_count)
            await db.flush()

            logger.info(
                "booking_expired",
                booking_id=booking.id,
                trip_id=booking.trip_id,
                seats_released=booking.seat_count,
            )
            return booking.trip_id

        return await self.tx.run(_expire, name="expire_booking")

    async def run_once(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or utcnow()
        started = time.perf_counter()
        report = SweepReport()

        candidates = await self.find_candidates(now)
        report.candidates = len(candidates)

        for booking_id in candidates:
            try:
                trip_id = await self.expire_one(booking_id, now)
                if trip_id is not None:
                    report.expired.append(booking_id)
                    report.released_trip_ids.add(trip_id)
                else:
                    report.skipped.append(booking_id)
            except Exception:
                report.failed.append(booking_id)
                record_sweep_failure()
                logger.exception("booking_expiry_failed", booking_id=booking_id)

        if report.expired:
            record_expired(len(report.expired))
        expiry_sweep_latency.observe(time.perf_counter() - started)

        if report.candidates:
            logger.info(
                "expiry_sweep_completed",
                candidates=report.candidates,
                expired=len(report.expired),
                skipped=len(report.skipped),
                failed=len(report.failed),
            )
        return report

    async def _loop(self) -> None:
        while True:
            try:
                report = await self.run_once()
                for trip_id in report.released_trip_ids:
                    await invalidate_trip_availability(trip_id)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("expiry_sweep_failed")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop(), name="expiry-sweeper")
            logger.info("expiry_sweeper_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("expiry_sweeper_stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
