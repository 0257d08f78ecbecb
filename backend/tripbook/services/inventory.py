"""
Inventory ledger: the only code that changes trips.available_seats.

CONCURRENCY STRATEGY: Atomic Conditional Update
===============================================

Problem:
  Two requests try to take the last seat simultaneously.
  Both read available_seats=1, both write 0, both succeed.
  Result: Overbooking.

Solution:
  Admission is one statement, evaluated by the database against the
  current row:

    UPDATE trips SET available_seats = available_seats - :n
    WHERE id = :trip_id AND status = 'published' AND available_seats >= :n

  rowcount == 1 means the seats were taken, 0 means they were not. The
  remaining count is never read into Python and written back, so there is no
  window between check and write. The CHECK constraint
  (available_seats >= 0) stays as the final safety net.

  Release is the mirror statement, clamped to capacity so a duplicated
  release can never push availability above the trip's size.

Both primitives refuse to run outside TransactionCoordinator.run(): the
booking row and the seat count must commit or roll back together.
"""

from sqlalchemy import case, update
from sqlalchemy.ext.asyncio import AsyncSession

from tripbook.db.base import utcnow
from tripbook.db.transaction import require_transaction
from tripbook.models.trip import Trip, TRIP_STATUS_PUBLISHED
from tripbook.core.logging import get_logger

logger = get_logger(__name__)


async def try_reserve(db: AsyncSession, trip_id: int, seats: int) -> bool:
    """
    Take `seats` from a published trip if that many are still available.

    Returns:
        True if the seats were reserved, False otherwise (sold out, trip
        missing or not published).
    """
    require_transaction(db)
    if seats <= 0:
        raise ValueError(f"seats must be positive, got {seats}")

    result = await db.execute(
        update(Trip)
        .where(
            Trip.id == trip_id,
            Trip.status == TRIP_STATUS_PUBLISHED,
            Trip.available_seats >= seats,
        )
        .values(
            available_seats=Trip.available_seats - seats,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    reserved = result.rowcount == 1

    logger.debug("seats_reserve_attempted", trip_id=trip_id, seats=seats, reserved=reserved)
    return reserved


async def release(db: AsyncSession, trip_id: int, seats: int) -> None:
    """Return `seats` to the trip, never exceeding its capacity."""
    require_transaction(db)
    if seats <= 0:
        raise ValueError(f"seats must be positive, got {seats}")

    restored = Trip.available_seats + seats
    result = await db.execute(
        update(Trip)
        .where(Trip.id == trip_id)
        .values(
            available_seats=case((restored > Trip.capacity, Trip.capacity), else_=restored),
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning("seats_release_missed", trip_id=trip_id, seats=seats)
        return

    logger.debug("seats_released", trip_id=trip_id, seats=seats)
