"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test overbooking
  locust -f locustfile.py --tags webhook      # Test duplicate payment deliveries
  locust -f locustfile.py --tags throughput   # Test cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import random
import uuid
from datetime import datetime, timezone, timedelta

from locust import HttpUser, task, between, tag, events

# Shared state
TRIP_IDS = []
CONCURRENCY_TRIP_ID = None


def random_requester():
    return f"load-{uuid.uuid4().hex[:10]}"


def trip_body(title, capacity, departs_in_days=30):
    departs_at = datetime.now(timezone.utc) + timedelta(days=departs_in_days)
    return {
        "title": title,
        "destination": random.choice(["Lisbon", "Reykjavik", "Kyoto", "Cusco"]),
        "departs_at": departs_at.isoformat(),
        "returns_at": (departs_at + timedelta(days=5)).isoformat(),
        "price": f"{random.randint(100, 2000)}.00",
        "capacity": capacity,
        "refund_policy": {"refundable_until_days_before": 7, "cancellation_fee_percent": 10},
        "status": "published",
    }


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print("SETUP: concurrency trip is created by the first ConcurrencyUser")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 requesters -> 10 seats

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT SUM(seat_count) FROM bookings
      WHERE trip_id = X AND state IN ('pending_payment', 'confirmed');
    Should be <= 10
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.requester_id = random_requester()
        if not CONCURRENCY_TRIP_ID:
            resp = self.client.post("/api/v1/trips/", json=trip_body("Concurrency Test Trip", 10))
            if resp.status_code == 201:
                globals()["CONCURRENCY_TRIP_ID"] = resp.json()["id"]
                print(f"\n✓ Created trip {CONCURRENCY_TRIP_ID} with 10 seats\n")

    @tag("concurrency")
    @task
    def book_limited_seats(self):
        """All requesters fight for the same 10 seats."""
        if not CONCURRENCY_TRIP_ID:
            return

        with self.client.post(
            f"/api/v1/trips/{CONCURRENCY_TRIP_ID}/bookings",
            json={"requester_id": self.requester_id, "seat_count": 1},
            name="/api/v1/trips/{id}/bookings [race]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: sold out
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class WebhookStormUser(HttpUser):
    """
    TEST 2: Duplicate webhooks - the provider retries every outcome

    Run: locust -f locustfile.py --tags webhook -u 50 -r 10 --run-time 30s

    Each booking gets one outcome delivered several times in a row.
    Exactly one delivery per key may answer "applied"; every answer is 200.
    """
    wait_time = between(0, 0.2)

    def on_start(self):
        resp = self.client.post("/api/v1/trips/", json=trip_body("Webhook Storm Trip", 5000))
        self.trip_id = resp.json()["id"] if resp.status_code == 201 else None

    @tag("webhook")
    @task
    def pay_with_retries(self):
        if not self.trip_id:
            return

        resp = self.client.post(
            f"/api/v1/trips/{self.trip_id}/bookings",
            json={"requester_id": random_requester(), "seat_count": 1},
            name="/api/v1/trips/{id}/bookings",
        )
        if resp.status_code != 201:
            return

        booking_id = resp.json()["booking"]["id"]
        payload = {
            "booking_id": booking_id,
            "status": random.choice(["success", "failed"]),
            "idempotency_key": f"evt-{uuid.uuid4().hex}",
        }
        applied = 0
        for _ in range(random.randint(2, 5)):
            with self.client.post(
                "/api/v1/payments/webhook",
                json=payload,
                catch_response=True,
            ) as ack:
                if ack.status_code != 200:
                    ack.failure(f"Webhook must always answer 200, got {ack.status_code}")
                    continue
                if ack.json().get("result") == "applied":
                    applied += 1
                if applied > 1:
                    ack.failure(f"Outcome applied twice for booking {booking_id}")
                else:
                    ack.success()


class ThroughputUser(HttpUser):
    """
    TEST 3: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: Stop Redis, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_trips_cached(self):
        """Hammer the cached endpoint."""
        page = random.randint(1, 5)
        self.client.get(f"/api/v1/trips/?page={page}&page_size=20",
            name="/api/v1/trips/ [cached]")

    @tag("throughput", "read")
    @task(3)
    def get_trip_detail(self):
        """Read individual trips."""
        if TRIP_IDS:
            trip_id = random.choice(TRIP_IDS)
            self.client.get(f"/api/v1/trips/{trip_id}",
                name="/api/v1/trips/{id}")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 4: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_trip_id(self):
        """Book non-existent trip."""
        with self.client.post("/api/v1/trips/999999/bookings",
            json={"requester_id": "edge", "seat_count": 1},
            name="/api/v1/trips/{id}/bookings [missing]",
            catch_response=True
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def non_positive_seats(self):
        """Try to book zero or negative seats."""
        with self.client.post("/api/v1/trips/1/bookings",
            json={"requester_id": "edge", "seat_count": random.choice([0, -5])},
            name="/api/v1/trips/{id}/bookings [bad seats]",
            catch_response=True
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def huge_seats(self):
        """Try to book absurd number of seats."""
        with self.client.post("/api/v1/trips/1/bookings",
            json={"requester_id": "edge", "seat_count": 999999},
            name="/api/v1/trips/{id}/bookings [huge]",
            catch_response=True
        ) as resp:
            self._expect(resp, [400, 404, 409, 422])

    @tag("edge")
    @task
    def malformed_json(self):
        """Send garbage data."""
        with self.client.post("/api/v1/trips/1/bookings",
            data="not json at all",
            headers={"Content-Type": "application/json"},
            name="/api/v1/trips/{id}/bookings [garbage]",
            catch_response=True
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def garbage_webhook(self):
        """The webhook acknowledges even garbage with 200."""
        with self.client.post("/api/v1/payments/webhook",
            data="{{{",
            headers={"Content-Type": "application/json"},
            name="/api/v1/payments/webhook [garbage]",
            catch_response=True
        ) as resp:
            self._expect(resp, [200])

    @tag("edge")
    @task
    def cancel_missing_booking(self):
        with self.client.post("/api/v1/bookings/999999/cancel",
            name="/api/v1/bookings/{id}/cancel [missing]",
            catch_response=True
        ) as resp:
            self._expect(resp, [404])


class RealisticUser(HttpUser):
    """
    TEST 5: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly browsing
      - Some bookings, most of them paid, some abandoned
      - Occasional cancellations
      - Rare trip creation
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.requester_id = random_requester()
        self.my_bookings = []

    @task(50)
    def browse_trips(self):
        resp = self.client.get("/api/v1/trips/?page=1&page_size=20")
        if resp.status_code == 200:
            for trip in resp.json().get("trips", []):
                if trip["id"] not in TRIP_IDS:
                    TRIP_IDS.append(trip["id"])

    @task(20)
    def view_trip(self):
        if TRIP_IDS:
            self.client.get(f"/api/v1/trips/{random.choice(TRIP_IDS)}",
                name="/api/v1/trips/{id}")

    @task(10)
    def book_and_pay(self):
        if not TRIP_IDS:
            return
        resp = self.client.post(
            f"/api/v1/trips/{random.choice(TRIP_IDS)}/bookings",
            json={"requester_id": self.requester_id, "seat_count": random.randint(1, 3)},
            name="/api/v1/trips/{id}/bookings",
        )
        if resp.status_code != 201:
            return
        booking_id = resp.json()["booking"]["id"]
        if random.random() < 0.2:
            # Abandoned: left for the expiry sweeper
            return
        self.client.post("/api/v1/payments/webhook", json={
            "booking_id": booking_id,
            "status": "success" if random.random() < 0.9 else "failed",
            "idempotency_key": f"evt-{uuid.uuid4().hex}",
        })
        self.my_bookings.append(booking_id)

    @task(3)
    def cancel_booking(self):
        if self.my_bookings:
            booking_id = self.my_bookings.pop()
            self.client.post(f"/api/v1/bookings/{booking_id}/cancel",
                name="/api/v1/bookings/{id}/cancel")

    @task(2)
    def my_history(self):
        self.client.get("/api/v1/bookings/", params={"requester_id": self.requester_id},
            name="/api/v1/bookings/?requester_id")

    @task(3)
    def create_trip(self):
        resp = self.client.post("/api/v1/trips/",
            json=trip_body(f"Trip {random.randint(1, 10000)}", random.randint(10, 500),
                           departs_in_days=random.randint(1, 90)))
        if resp.status_code == 201:
            TRIP_IDS.append(resp.json()["id"])
