"""
Trip service: creation, publication and read accessors.
"""

from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from tripbook.core.exceptions import NotFoundError
from tripbook.core.logging import get_logger
from tripbook.db.transaction import TransactionCoordinator
from tripbook.models.trip import Trip, TRIP_STATUS_DRAFT, TRIP_STATUS_PUBLISHED
from tripbook.schemas.trip import TripCreate

logger = get_logger(__name__)


async def create_trip(tx: TransactionCoordinator, trip_data: TripCreate) -> Trip:
    """Create a new trip with full seat availability."""

    async def _create(db: AsyncSession) -> Trip:
        trip = Trip(
            title=trip_data.title,
            destination=trip_data.destination,
            departs_at=trip_data.departs_at,
            returns_at=trip_data.returns_at,
            price=trip_data.price,
            capacity=trip_data.capacity,
            available_seats=trip_data.capacity,  # All seats available initially
            status=trip_data.status,
            refundable_until_days_before=trip_data.refund_policy.refundable_until_days_before,
            cancellation_fee_percent=trip_data.refund_policy.cancellation_fee_percent,
        )
        db.add(trip)
        await db.flush()
        return trip

    trip = await tx.run(_create, name="create_trip")
    logger.info(
        "trip_created",
        trip_id=trip.id,
        title=trip.title,
        capacity=trip.capacity,
        status=trip.status,
    )
    return trip


async def publish_trip(tx: TransactionCoordinator, trip_id: int) -> Trip:
    """Open a draft trip for booking. Publishing a published trip is a no-op."""

    async def _publish(db: AsyncSession) -> Trip:
        result = await db.execute(select(Trip).where(Trip.id == trip_id).with_for_update())
        trip = result.scalar_one_or_none()
        if not trip:
            raise NotFoundError(f"Trip {trip_id} not found")
        if trip.status == TRIP_STATUS_DRAFT:
            trip.status = TRIP_STATUS_PUBLISHED
            await db.flush()
            logger.info("trip_published", trip_id=trip.id)
        return trip

    return await tx.run(_publish, name="publish_trip")


async def get_trip(tx: TransactionCoordinator, trip_id: int) -> Trip:
    """Get a single trip by ID, with its live seat count."""

    async def _get(db: AsyncSession) -> Optional[Trip]:
        result = await db.execute(select(Trip).where(Trip.id == trip_id))
        return result.scalar_one_or_none()

    trip = await tx.read(_get)
    if not trip:
        raise NotFoundError(f"Trip {trip_id} not found")
    return trip


async def list_trips(
    tx: TransactionCoordinator,
    page: int = 1,
    page_size: int = 20,
    destination: Optional[str] = None,
) -> tuple[list[Trip], int]:
    """
    List published trips ordered by departure.
    Uses the ix_trips_status_departs_at index.
    """

    async def _list(db: AsyncSession) -> tuple[list[Trip], int]:
        query = select(Trip).where(Trip.status == TRIP_STATUS_PUBLISHED)
        if destination:
            query = query.where(Trip.destination.ilike(f"%{destination}%"))

        count_query = select(func.count()).select_from(query.subquery())
        total = (await db.execute(count_query)).scalar()

        trips_query = (
            query
            .order_by(Trip.departs_at.asc(), Trip.id.asc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await db.execute(trips_query)
        return list(result.scalars().all()), total

    return await tx.read(_list)
