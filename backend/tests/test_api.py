"""
Tests for the HTTP surface: status codes, response shapes and the webhook ack.
"""

from datetime import datetime, timezone, timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient

from tripbook.models.trip import Trip

from conftest import seats_left


def _trip_body(**overrides) -> dict:
    departs_at = datetime.now(timezone.utc) + timedelta(days=30)
    body = {
        "title": "Fjord Kayaking",
        "destination": "Bergen",
        "departs_at": departs_at.isoformat(),
        "returns_at": (departs_at + timedelta(days=4)).isoformat(),
        "price": "450.00",
        "capacity": 12,
        "refund_policy": {"refundable_until_days_before": 14, "cancellation_fee_percent": 20},
    }
    body.update(overrides)
    return body


async def _book(client: AsyncClient, trip_id: int, seats: int = 1, requester: str = "alice"):
    return await client.post(
        f"/api/v1/trips/{trip_id}/bookings",
        json={"requester_id": requester, "seat_count": seats},
    )


# --- trips ---


@pytest.mark.asyncio
async def test_create_trip_starts_as_draft(client: AsyncClient):
    response = await client.post("/api/v1/trips/", json=_trip_body())

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "draft"
    assert data["available_seats"] == 12
    assert data["cancellation_fee_percent"] == 20
    assert Decimal(str(data["price"])) == Decimal("450.00")


@pytest.mark.asyncio
async def test_create_trip_validation(client: AsyncClient):
    departs_at = datetime.now(timezone.utc) + timedelta(days=10)
    response = await client.post(
        "/api/v1/trips/",
        json=_trip_body(
            departs_at=departs_at.isoformat(),
            returns_at=(departs_at - timedelta(days=1)).isoformat(),
        ),
    )
    assert response.status_code == 422

    response = await client.post("/api/v1/trips/", json=_trip_body(capacity=0))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_publish_then_list(client: AsyncClient):
    created = (await client.post("/api/v1/trips/", json=_trip_body())).json()

    listing = (await client.get("/api/v1/trips/")).json()
    assert listing["total"] == 0

    response = await client.post(f"/api/v1/trips/{created['id']}/publish")
    assert response.status_code == 200
    assert response.json()["status"] == "published"

    listing = (await client.get("/api/v1/trips/?destination=berg")).json()
    assert listing["total"] == 1
    assert listing["cached"] is False
    assert listing["trips"][0]["id"] == created["id"]


@pytest.mark.asyncio
async def test_get_unknown_trip(client: AsyncClient):
    response = await client.get("/api/v1/trips/999999")
    assert response.status_code == 404
    assert "detail" in response.json()


@pytest.mark.asyncio
async def test_publish_unknown_trip(client: AsyncClient):
    response = await client.post("/api/v1/trips/999999/publish")
    assert response.status_code == 404


# --- bookings ---


@pytest.mark.asyncio
async def test_book_seats(client: AsyncClient, tx, test_trip: Trip):
    response = await _book(client, test_trip.id, seats=2)

    assert response.status_code == 201
    data = response.json()
    booking = data["booking"]
    assert booking["trip_id"] == test_trip.id
    assert booking["seat_count"] == 2
    assert booking["state"] == "pending_payment"
    assert Decimal(str(booking["price_charged"])) == Decimal("200.00")
    assert data["payment_url"].endswith(f"/pay/{booking['id']}")

    trip = (await client.get(f"/api/v1/trips/{test_trip.id}")).json()
    assert trip["available_seats"] == 98


@pytest.mark.asyncio
async def test_book_sold_out_returns_409(client: AsyncClient, single_seat_trip: Trip):
    assert (await _book(client, single_seat_trip.id)).status_code == 201

    response = await _book(client, single_seat_trip.id, requester="bob")
    assert response.status_code == 409
    assert response.json()["detail"] == "insufficient seats"


@pytest.mark.asyncio
async def test_large_booking_fits_remaining_seats(client: AsyncClient, tx, test_trip: Trip):
    """There is no per-booking seat cap; only the trip's remaining seats limit it."""
    response = await _book(client, test_trip.id, seats=60)

    assert response.status_code == 201
    assert await seats_left(tx, test_trip.id) == 40


@pytest.mark.asyncio
async def test_booking_more_than_available_returns_409(client: AsyncClient, tx, test_trip: Trip):
    response = await _book(client, test_trip.id, seats=101)

    assert response.status_code == 409
    assert response.json()["detail"] == "insufficient seats"
    assert await seats_left(tx, test_trip.id) == 100


@pytest.mark.asyncio
async def test_book_unknown_or_draft_trip_returns_404(client: AsyncClient, draft_trip: Trip):
    assert (await _book(client, 999999)).status_code == 404
    assert (await _book(client, draft_trip.id)).status_code == 404


@pytest.mark.asyncio
@pytest.mark.parametrize("seats", [0, -3])
async def test_book_invalid_seat_count(client: AsyncClient, test_trip: Trip, seats):
    response = await _book(client, test_trip.id, seats=seats)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_get_and_list_bookings(client: AsyncClient, test_trip: Trip):
    created = (await _book(client, test_trip.id)).json()["booking"]

    response = await client.get(f"/api/v1/bookings/{created['id']}")
    assert response.status_code == 200
    assert response.json()["requester_id"] == "alice"

    response = await client.get("/api/v1/bookings/", params={"requester_id": "alice"})
    assert [b["id"] for b in response.json()] == [created["id"]]

    assert (await client.get("/api/v1/bookings/4242")).status_code == 404


@pytest.mark.asyncio
async def test_cancel_booking_endpoint(client: AsyncClient, test_trip: Trip):
    created = (await _book(client, test_trip.id, seats=3)).json()["booking"]

    response = await client.post(f"/api/v1/bookings/{created['id']}/cancel")

    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "cancelled"
    assert Decimal(str(data["refund_amount"])) == Decimal("270.00")
    assert data["cancelled_at"] is not None

    again = await client.post(f"/api/v1/bookings/{created['id']}/cancel")
    assert again.status_code == 409

    trip = (await client.get(f"/api/v1/trips/{test_trip.id}")).json()
    assert trip["available_seats"] == 100


@pytest.mark.asyncio
async def test_cancel_pending_after_cutoff_returns_409(client: AsyncClient, imminent_trip: Trip):
    created = (await _book(client, imminent_trip.id)).json()["booking"]

    response = await client.post(f"/api/v1/bookings/{created['id']}/cancel")
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_cancel_unknown_booking_returns_404(client: AsyncClient):
    response = await client.post("/api/v1/bookings/777/cancel")
    assert response.status_code == 404


# --- payment webhook ---


@pytest.mark.asyncio
async def test_webhook_confirms_booking(client: AsyncClient, test_trip: Trip):
    created = (await _book(client, test_trip.id)).json()["booking"]

    response = await client.post(
        "/api/v1/payments/webhook",
        json={"booking_id": created["id"], "status": "SUCCESS", "idempotency_key": "evt-1"},
    )

    assert response.status_code == 200
    ack = response.json()
    assert ack["received"] is True
    assert ack["result"] == "applied"
    assert ack["booking"]["state"] == "confirmed"
    assert "error" not in ack


@pytest.mark.asyncio
async def test_webhook_duplicate_returns_200(client: AsyncClient, tx, test_trip: Trip):
    created = (await _book(client, test_trip.id, seats=2)).json()["booking"]
    payload = {"booking_id": created["id"], "status": "failed", "idempotency_key": "evt-1"}

    first = await client.post("/api/v1/payments/webhook", json=payload)
    second = await client.post("/api/v1/payments/webhook", json=payload)

    assert first.status_code == second.status_code == 200
    assert first.json()["result"] == "applied"
    assert second.json()["result"] == "duplicate_delivery"
    assert await seats_left(tx, test_trip.id) == 100


@pytest.mark.asyncio
async def test_webhook_unknown_booking_returns_200(client: AsyncClient):
    response = await client.post(
        "/api/v1/payments/webhook",
        json={"booking_id": 31337, "status": "success", "idempotency_key": "evt-9"},
    )

    assert response.status_code == 200
    assert response.json()["result"] == "not_found"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"booking_id": 1, "status": "refunded", "idempotency_key": "evt-1"},
        {"booking_id": 1, "status": "success", "idempotency_key": "  "},
        {"booking_id": "abc", "status": "success", "idempotency_key": "evt-1"},
        {"status": "success"},
        [1, 2, 3],
    ],
)
async def test_webhook_invalid_payload_returns_200(client: AsyncClient, payload):
    response = await client.post("/api/v1/payments/webhook", json=payload)

    assert response.status_code == 200
    ack = response.json()
    assert ack["received"] is True
    assert ack["error"] == "Invalid webhook payload"
    assert "result" not in ack


@pytest.mark.asyncio
async def test_webhook_non_json_body_returns_200(client: AsyncClient):
    response = await client.post(
        "/api/v1/payments/webhook",
        content=b"not json at all",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json()["error"] == "Invalid webhook payload"


# --- health ---


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["cache"] == {"status": "disabled"}


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


@pytest.mark.asyncio
async def test_metrics_exposed(client: AsyncClient, test_trip: Trip):
    await _book(client, test_trip.id)

    response = await client.get("/metrics")

    assert response.status_code == 200
    assert "booking_attempts_total" in response.text
