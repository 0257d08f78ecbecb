"""
Pydantic schemas for trip-related request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal
from pydantic import BaseModel, Field, model_validator


class RefundPolicy(BaseModel):
    refundable_until_days_before: int = Field(0, ge=0)
    cancellation_fee_percent: int = Field(0, ge=0, le=100)


class TripCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    destination: str = Field(..., min_length=1, max_length=255)
    departs_at: datetime
    returns_at: datetime
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    capacity: int = Field(..., gt=0, le=100000)
    refund_policy: RefundPolicy = Field(default_factory=RefundPolicy)
    status: Literal["draft", "published"] = "draft"

    @model_validator(mode="after")
    def _check_dates(self):
        if self.departs_at.tzinfo is None or self.returns_at.tzinfo is None:
            raise ValueError("departs_at and returns_at must include a timezone offset")
        if self.returns_at <= self.departs_at:
            raise ValueError("returns_at must be after departs_at")
        return self


class TripResponse(BaseModel):
    id: int
    title: str
    destination: str
    departs_at: datetime
    returns_at: datetime
    price: Decimal
    capacity: int
    available_seats: int
    status: str
    refundable_until_days_before: int
    cancellation_fee_percent: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TripListResponse(BaseModel):
    trips: list[TripResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False

