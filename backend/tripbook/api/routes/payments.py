"""
Payment provider webhook.

Always answers 200 OK, including for malformed payloads and processing
errors. The body carries what actually happened; a non-2xx answer would only
make the provider retry a delivery that reconciliation already made safe.
"""

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from tripbook.core.exceptions import BookingCoreError
from tripbook.core.logging import get_logger
from tripbook.db.session import get_transaction_coordinator
from tripbook.db.transaction import TransactionCoordinator
from tripbook.schemas.booking import BookingResponse
from tripbook.schemas.payment import PaymentWebhook, WebhookAck
from tripbook.services.cache_service import invalidate_trip_availability
from tripbook.services.payment_service import PaymentOutcome, apply_payment_outcome

logger = get_logger(__name__)
router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/webhook", response_model=WebhookAck, response_model_exclude_none=True)
async def payment_webhook(
    request: Request,
    tx: TransactionCoordinator = Depends(get_transaction_coordinator),
):
    try:
        body = await request.json()
        payload = PaymentWebhook.model_validate(body)
    except ValidationError as e:
        logger.warning("webhook_invalid_payload", errors=e.errors(include_url=False))
        return WebhookAck(error="Invalid webhook payload", detail=str(e))
    except ValueError as e:
        logger.warning("webhook_unparseable_body", error=str(e))
        return WebhookAck(error="Invalid webhook payload", detail="body must be JSON")

    logger.info(
        "webhook_received",
        booking_id=payload.booking_id,
        status=payload.status,
        idempotency_key=payload.idempotency_key,
    )

    try:
        reconciled = await apply_payment_outcome(
            tx, payload.booking_id, PaymentOutcome(payload.status), payload.idempotency_key
        )
    except BookingCoreError as e:
        logger.warning("webhook_rejected", booking_id=payload.booking_id, detail=e.detail)
        return WebhookAck(error="Rejected", detail=e.detail)
    except Exception as e:
        logger.exception("webhook_processing_error", booking_id=payload.booking_id)
        return WebhookAck(error="Processing error", detail=type(e).__name__)

    if reconciled.mutated and reconciled.booking is not None:
        await invalidate_trip_availability(reconciled.booking.trip_id)

    booking = BookingResponse.model_validate(reconciled.booking) if reconciled.booking else None
    return WebhookAck(result=reconciled.result.value, booking=booking)
