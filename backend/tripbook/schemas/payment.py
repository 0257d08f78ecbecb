"""
Pydantic schemas for the payment webhook.

The webhook always answers 200, so a payload that fails validation is
reported in the acknowledgment body instead of a 422.
"""

from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator

from tripbook.schemas.booking import BookingResponse


class PaymentWebhook(BaseModel):
    booking_id: int
    status: Literal["success", "failed"]
    idempotency_key: str = Field(..., min_length=1, max_length=255)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value):
        return value.lower() if isinstance(value, str) else value

    @field_validator("idempotency_key")
    @classmethod
    def _key_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("idempotency_key must not be blank")
        return value


class WebhookAck(BaseModel):
    received: bool = True
    result: Optional[str] = None
    booking: Optional[BookingResponse] = None
    error: Optional[str] = None
    detail: Optional[str] = None
