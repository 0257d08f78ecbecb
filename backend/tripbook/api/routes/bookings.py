"""
Booking endpoints: concurrency-safe seat reservation and cancellation.
"""

from fastapi import APIRouter, Depends, Query, status

from tripbook.core.config import get_settings
from tripbook.db.session import get_transaction_coordinator
from tripbook.db.transaction import TransactionCoordinator
from tripbook.schemas.booking import BookingCreate, BookingResponse, BookingCreatedResponse
from tripbook.services.booking_service import (
    cancel_booking,
    create_booking,
    get_booking,
    list_bookings_for_requester,
)
from tripbook.services.cache_service import invalidate_trip_availability

router = APIRouter(tags=["Bookings"])


@router.post(
    "/trips/{trip_id}/bookings",
    response_model=BookingCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_booking_endpoint(
    trip_id: int,
    booking_data: BookingCreate,
    tx: TransactionCoordinator = Depends(get_transaction_coordinator),
):
    """
    Book seats on a published trip.

    Seats are taken immediately and held for the payment window. Returns 409
    when the trip cannot cover the requested seats.
    """
    booking = await create_booking(tx, trip_id, booking_data.requester_id, booking_data.seat_count)
    await invalidate_trip_availability(trip_id)
    payment_url = get_settings().PAYMENT_URL_TEMPLATE.format(booking_id=booking.id)
    return BookingCreatedResponse(
        booking=BookingResponse.model_validate(booking),
        payment_url=payment_url,
    )


@router.get("/bookings/", response_model=list[BookingResponse])
async def list_bookings_endpoint(
    requester_id: str = Query(..., min_length=1, max_length=64),
    tx: TransactionCoordinator = Depends(get_transaction_coordinator),
):
    """Get all bookings made by a requester, newest first."""
    return await list_bookings_for_requester(tx, requester_id)


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(
    booking_id: int,
    tx: TransactionCoordinator = Depends(get_transaction_coordinator),
):
    return await get_booking(tx, booking_id)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking_endpoint(
    booking_id: int,
    tx: TransactionCoordinator = Depends(get_transaction_coordinator),
):
    """
    Cancel a booking.

    Refund rules:
    - Before cutoff: refund = price_charged x (1 - cancellation_fee_percent/100),
      seats go back on sale
    - After cutoff: refund = 0, seats stay taken
    """
    booking = await cancel_booking(tx, booking_id)
    await invalidate_trip_availability(booking.trip_id)
    return booking
