"""
Redis cache for the published trip listing.

A cached page is keyed by listing generation, page, page size and destination
filter. Two kinds of change make pages stale:

  Seat movement on one trip (booking, cancellation, payment outcome, expiry)
    Only pages that show that trip are affected. Every cached page registers
    its key in a per-trip index set (trips:pages:{trip_id}); invalidating the
    trip deletes exactly those pages.

  A trip entering the listing (created as published, or published later)
    Pagination shifts for every page, so the listing generation counter is
    bumped. Pages of older generations are never read again and age out with
    REDIS_CACHE_TTL.

Seat counts never change which trips a page lists, so the per-trip index is
enough for availability changes.

Trip detail and every booking decision read the database, never this cache.
Redis is advisory: a RedisError is logged and the caller falls through to the
database.
"""

import json
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from tripbook.core.config import get_settings
from tripbook.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

LISTING_GENERATION_KEY = "trips:list:generation"
LISTING_PAGE_PREFIX = "trips:list:page:"
TRIP_PAGES_PREFIX = "trips:pages:"

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Shared client, or None when caching is disabled or Redis is unreachable."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None
    if _redis_client is not None:
        return _redis_client

    client = redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )
    try:
        await client.ping()
    except RedisError as e:
        logger.warning("redis_unavailable", url=settings.REDIS_URL, error=str(e))
        await client.aclose()
        return None

    _redis_client = client
    logger.info("redis_connected", url=settings.REDIS_URL)
    return client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


def _page_key(generation: int, page: int, page_size: int, destination: Optional[str]) -> str:
    dest = (destination or "").strip().lower()
    return f"{LISTING_PAGE_PREFIX}g{generation}:p{page}:s{page_size}:d{dest}"


def _trip_pages_key(trip_id: int) -> str:
    return f"{TRIP_PAGES_PREFIX}{trip_id}"


async def _generation(client: redis.Redis) -> int:
    value = await client.get(LISTING_GENERATION_KEY)
    return int(value) if value else 0


async def get_cached_trips(page: int, page_size: int, destination: Optional[str]) -> Optional[dict]:
    """Cached listing page for the current generation, or None."""
    client = await get_redis()
    if client is None:
        return None

    try:
        key = _page_key(await _generation(client), page, page_size, destination)
        data = await client.get(key)
    except RedisError as e:
        logger.warning("trip_listing_cache_read_failed", error=str(e))
        return None

    if data is None:
        return None
    logger.debug("trip_listing_cache_hit", key=key)
    return json.loads(data)


async def set_cached_trips(
    page: int,
    page_size: int,
    destination: Optional[str],
    data: dict,
) -> None:
    """Store a listing page and index it under every trip it shows."""
    client = await get_redis()
    if client is None:
        return

    ttl = settings.REDIS_CACHE_TTL
    try:
        key = _page_key(await _generation(client), page, page_size, destination)
        await client.setex(key, ttl, json.dumps(data, default=str))
        for trip in data["trips"]:
            index_key = _trip_pages_key(trip["id"])
            await client.sadd(index_key, key)
            await client.expire(index_key, ttl)
    except RedisError as e:
        logger.warning("trip_listing_cache_write_failed", error=str(e))


async def invalidate_trip_availability(trip_id: int) -> None:
    """Drop the cached pages that show `trip_id` after its seat count moved."""
    client = await get_redis()
    if client is None:
        return

    index_key = _trip_pages_key(trip_id)
    try:
        page_keys = await client.smembers(index_key)
        await client.delete(index_key, *page_keys)
    except RedisError as e:
        logger.warning("trip_listing_invalidation_failed", trip_id=trip_id, error=str(e))
        return

    logger.debug("trip_listing_pages_invalidated", trip_id=trip_id, pages=len(page_keys))


async def invalidate_trip_listings() -> None:
    """Retire every cached page: the set of listed trips changed."""
    client = await get_redis()
    if client is None:
        return

    try:
        generation = await client.incr(LISTING_GENERATION_KEY)
    except RedisError as e:
        logger.warning("trip_listing_generation_bump_failed", error=str(e))
        return

    logger.info("trip_listing_generation_bumped", generation=generation)


async def get_cache_stats() -> dict:
    """Cache status for the health endpoint."""
    client = await get_redis()
    if client is None:
        return {"status": "disabled"}

    try:
        generation = await _generation(client)
    except RedisError as e:
        return {"status": "error", "error": str(e)}
    return {"status": "connected", "listing_generation": generation}
