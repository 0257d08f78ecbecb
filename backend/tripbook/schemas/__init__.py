from tripbook.schemas.trip import TripCreate, TripResponse, TripListResponse, RefundPolicy
from tripbook.schemas.booking import BookingCreate, BookingResponse, BookingCreatedResponse
from tripbook.schemas.payment import PaymentWebhook, WebhookAck

__all__ = [
    "TripCreate", "TripResponse", "TripListResponse", "RefundPolicy",
    "BookingCreate", "BookingResponse", "BookingCreatedResponse",
    "PaymentWebhook", "WebhookAck",
]
