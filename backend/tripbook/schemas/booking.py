"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field


class BookingCreate(BaseModel):
    requester_id: str = Field(..., min_length=1, max_length=64)
    seat_count: int = Field(default=1, gt=0)


class BookingResponse(BaseModel):
    id: int
    trip_id: int
    requester_id: str
    seat_count: int
    state: str
    price_charged: Decimal
    created_at: datetime
    updated_at: datetime
    expires_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    refund_amount: Optional[Decimal]

    model_config = {"from_attributes": True}


class BookingCreatedResponse(BaseModel):
    booking: BookingResponse
    payment_url: str
