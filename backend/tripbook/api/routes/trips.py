"""
Trip endpoints with Redis caching on list operations.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from tripbook.db.session import get_transaction_coordinator
from tripbook.db.transaction import TransactionCoordinator
from tripbook.schemas.trip import TripCreate, TripResponse, TripListResponse
from tripbook.services.trip_service import create_trip, get_trip, list_trips, publish_trip
from tripbook.services.cache_service import (
    get_cached_trips,
    invalidate_trip_listings,
    set_cached_trips,
)
from tripbook.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/trips", tags=["Trips"])


@router.post("/", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
async def create_trip_endpoint(
    trip_data: TripCreate,
    tx: TransactionCoordinator = Depends(get_transaction_coordinator),
):
    """Create a new trip. Trips start as drafts unless `status` says otherwise."""
    trip = await create_trip(tx, trip_data)
    if trip.is_published:
        await invalidate_trip_listings()
    return trip


@router.get("/", response_model=TripListResponse)
async def list_trips_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    destination: Optional[str] = Query(None, max_length=255),
    tx: TransactionCoordinator = Depends(get_transaction_coordinator),
):
    """
    List published trips with pagination.
    Results are cached in Redis. Seat movement on a trip drops the pages that
    show it; a newly published trip retires every page.
    """
    cached = await get_cached_trips(page, page_size, destination)
    if cached:
        logger.info("trips_list_cache_hit", page=page)
        cached["cached"] = True
        return TripListResponse(**cached)

    trips, total = await list_trips(tx, page, page_size, destination)

    response_data = {
        "trips": [TripResponse.model_validate(t).model_dump(mode="json") for t in trips],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }

    await set_cached_trips(page, page_size, destination, response_data)

    return TripListResponse(**response_data)


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip_endpoint(
    trip_id: int,
    tx: TransactionCoordinator = Depends(get_transaction_coordinator),
):
    """Get a single trip by ID. Not cached (needs real-time seat counts)."""
    return await get_trip(tx, trip_id)


@router.post("/{trip_id}/publish", response_model=TripResponse)
async def publish_trip_endpoint(
    trip_id: int,
    tx: TransactionCoordinator = Depends(get_transaction_coordinator),
):
    """Open a draft trip for booking."""
    trip = await publish_trip(tx, trip_id)
    await invalidate_trip_listings()
    return trip
