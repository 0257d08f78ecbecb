"""
Tests for the trip listing cache, using an in-memory stand-in for the Redis client.
"""

from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from httpx import AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from tripbook.models.trip import Trip
from tripbook.services import cache_service
from tripbook.services.trip_service import create_trip

from conftest import trip_payload


class _RedisStub:
    """Just enough of redis.asyncio.Redis (decode_responses=True) for the cache."""

    def __init__(self, error=None) -> None:
        self._error = error
        self.values: dict[str, str] = {}
        self.sets: dict[str, set[str]] = {}
        self.ttls: dict[str, int] = {}
        self.aclose_called = False

    def _check(self):
        if self._error:
            raise self._error

    async def ping(self):
        self._check()
        return True

    async def aclose(self):
        self.aclose_called = True

    async def get(self, key):
        self._check()
        return self.values.get(key)

    async def setex(self, key, ttl, value):
        self._check()
        self.values[key] = value
        self.ttls[key] = ttl

    async def sadd(self, key, *members):
        self._check()
        self.sets.setdefault(key, set()).update(members)

    async def smembers(self, key):
        self._check()
        return set(self.sets.get(key, set()))

    async def expire(self, key, ttl):
        self._check()
        self.ttls[key] = ttl

    async def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self.values.pop(key, None) is not None or self.sets.pop(key, None) is not None:
                removed += 1
        return removed

    async def incr(self, key):
        self._check()
        value = int(self.values.get(key, 0)) + 1
        self.values[key] = str(value)
        return value


@pytest.fixture
def redis_stub(monkeypatch) -> _RedisStub:
    stub = _RedisStub()

    async def _get_redis():
        return stub

    monkeypatch.setattr(cache_service, "get_redis", _get_redis)
    return stub


def _page(*trip_ids: int) -> dict:
    return {
        "trips": [{"id": trip_id, "available_seats": 10} for trip_id in trip_ids],
        "total": len(trip_ids),
        "page": 1,
        "page_size": 20,
        "cached": False,
    }


@pytest.mark.asyncio
async def test_page_round_trip(redis_stub: _RedisStub):
    await cache_service.set_cached_trips(1, 20, "Lisbon", _page(1, 2))

    cached = await cache_service.get_cached_trips(1, 20, " lisbon ")
    assert [t["id"] for t in cached["trips"]] == [1, 2]
    assert await cache_service.get_cached_trips(2, 20, "lisbon") is None
    assert await cache_service.get_cached_trips(1, 20, None) is None


@pytest.mark.asyncio
async def test_page_is_indexed_under_each_trip_with_ttl(redis_stub: _RedisStub):
    await cache_service.set_cached_trips(1, 20, None, _page(7, 8))

    page_key = cache_service._page_key(0, 1, 20, None)
    assert redis_stub.sets["trips:pages:7"] == {page_key}
    assert redis_stub.sets["trips:pages:8"] == {page_key}
    assert redis_stub.ttls["trips:pages:7"] == cache_service.settings.REDIS_CACHE_TTL


@pytest.mark.asyncio
async def test_seat_movement_drops_only_pages_showing_the_trip(redis_stub: _RedisStub):
    await cache_service.set_cached_trips(1, 2, None, _page(1, 2))
    await cache_service.set_cached_trips(2, 2, None, _page(3, 4))
    await cache_service.set_cached_trips(1, 20, "kyoto", _page(2))

    await cache_service.invalidate_trip_availability(2)

    assert await cache_service.get_cached_trips(1, 2, None) is None
    assert await cache_service.get_cached_trips(1, 20, "kyoto") is None
    assert await cache_service.get_cached_trips(2, 2, None) is not None
    assert "trips:pages:2" not in redis_stub.sets


@pytest.mark.asyncio
async def test_new_listing_generation_hides_every_page(redis_stub: _RedisStub):
    await cache_service.set_cached_trips(1, 20, None, _page(1))
    await cache_service.set_cached_trips(2, 20, None, _page(2))

    await cache_service.invalidate_trip_listings()

    assert await cache_service.get_cached_trips(1, 20, None) is None
    assert await cache_service.get_cached_trips(2, 20, None) is None
    assert await cache_service.get_cache_stats() == {"status": "connected", "listing_generation": 1}

    # Pages written after the bump are served again
    await cache_service.set_cached_trips(1, 20, None, _page(1, 2))
    assert len((await cache_service.get_cached_trips(1, 20, None))["trips"]) == 2


@pytest.mark.asyncio
async def test_redis_errors_fall_through(monkeypatch):
    stub = _RedisStub(error=RedisConnectionError("connection reset"))

    async def _get_redis():
        return stub

    monkeypatch.setattr(cache_service, "get_redis", _get_redis)

    assert await cache_service.get_cached_trips(1, 20, None) is None
    await cache_service.set_cached_trips(1, 20, None, _page(1))
    await cache_service.invalidate_trip_availability(1)
    await cache_service.invalidate_trip_listings()
    assert (await cache_service.get_cache_stats())["status"] == "error"


@pytest.mark.asyncio
async def test_get_redis_returns_none_when_ping_fails(monkeypatch):
    stub = _RedisStub(error=RedisConnectionError("refused"))
    from_url = Mock(return_value=stub)
    monkeypatch.setattr(cache_service.redis, "from_url", from_url)
    monkeypatch.setattr(cache_service, "_redis_client", None)
    monkeypatch.setattr(
        cache_service,
        "settings",
        SimpleNamespace(REDIS_ENABLED=True, REDIS_URL="redis://example", REDIS_CACHE_TTL=60),
    )

    assert await cache_service.get_redis() is None
    assert stub.aclose_called is True
    assert cache_service._redis_client is None


@pytest.mark.asyncio
async def test_get_redis_disabled(monkeypatch):
    from_url = Mock()
    monkeypatch.setattr(cache_service.redis, "from_url", from_url)
    monkeypatch.setattr(cache_service, "settings", SimpleNamespace(REDIS_ENABLED=False))

    assert await cache_service.get_redis() is None
    from_url.assert_not_called()


# --- through the HTTP surface ---


@pytest.mark.asyncio
async def test_booking_refreshes_cached_listing(
    client: AsyncClient, test_trip: Trip, redis_stub: _RedisStub
):
    first = (await client.get("/api/v1/trips/")).json()
    assert first["cached"] is False

    second = (await client.get("/api/v1/trips/")).json()
    assert second["cached"] is True
    assert second["trips"][0]["available_seats"] == 100

    response = await client.post(
        f"/api/v1/trips/{test_trip.id}/bookings",
        json={"requester_id": "alice", "seat_count": 3},
    )
    assert response.status_code == 201

    third = (await client.get("/api/v1/trips/")).json()
    assert third["cached"] is False
    assert third["trips"][0]["available_seats"] == 97


@pytest.mark.asyncio
async def test_booking_keeps_pages_of_other_trips(
    client: AsyncClient, tx, test_trip: Trip, redis_stub: _RedisStub
):
    other = await create_trip(tx, trip_payload(title="Kyoto Temples", destination="Kyoto"))

    await client.get("/api/v1/trips/?destination=kyoto")
    await client.get("/api/v1/trips/?destination=chamonix")

    await client.post(
        f"/api/v1/trips/{test_trip.id}/bookings",
        json={"requester_id": "alice", "seat_count": 1},
    )

    kyoto = (await client.get("/api/v1/trips/?destination=kyoto")).json()
    chamonix = (await client.get("/api/v1/trips/?destination=chamonix")).json()
    assert kyoto["cached"] is True
    assert kyoto["trips"][0]["id"] == other.id
    assert chamonix["cached"] is False
    assert chamonix["trips"][0]["available_seats"] == 99


@pytest.mark.asyncio
async def test_publishing_a_trip_retires_cached_pages(
    client: AsyncClient, tx, test_trip: Trip, redis_stub: _RedisStub
):
    await client.get("/api/v1/trips/")
    draft = await create_trip(tx, trip_payload(status="draft", title="Glacier Hike"))

    response = await client.post(f"/api/v1/trips/{draft.id}/publish")
    assert response.status_code == 200

    listing = (await client.get("/api/v1/trips/")).json()
    assert listing["cached"] is False
    assert listing["total"] == 2
