"""
Pytest fixtures for test database, transaction coordinator, client and trips.

Every test gets its own SQLite database file, so concurrent transactions in a
test really contend for the database write lock the way they would against a
shared server.
"""

import os

# Must be set before tripbook settings are first read
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("EXPIRY_SWEEP_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import AsyncGenerator

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncEngine

from tripbook.main import app
from tripbook.db.base import Base
from tripbook.db.session import create_engine, create_session_factory, get_transaction_coordinator
from tripbook.db.transaction import TransactionCoordinator
from tripbook.models.trip import Trip
from tripbook.schemas.trip import RefundPolicy, TripCreate
from tripbook.services.trip_service import create_trip, get_trip


def trip_payload(
    *,
    departs_in_days: float = 30,
    capacity: int = 100,
    price: str = "100.00",
    refundable_until_days_before: int = 7,
    cancellation_fee_percent: int = 10,
    status: str = "published",
    title: str = "Alpine Weekend",
    destination: str = "Chamonix",
) -> TripCreate:
    departs_at = datetime.now(timezone.utc) + timedelta(days=departs_in_days)
    return TripCreate(
        title=title,
        destination=destination,
        departs_at=departs_at,
        returns_at=departs_at + timedelta(days=3),
        price=Decimal(price),
        capacity=capacity,
        refund_policy=RefundPolicy(
            refundable_until_days_before=refundable_until_days_before,
            cancellation_fee_percent=cancellation_fee_percent,
        ),
        status=status,
    )


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh file-backed database with all tables created."""
    test_engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def tx(engine: AsyncEngine) -> TransactionCoordinator:
    return TransactionCoordinator(create_session_factory(engine))


@pytest_asyncio.fixture(scope="function")
async def client(tx: TransactionCoordinator) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose routes run against the per-test database."""
    app.dependency_overrides[get_transaction_coordinator] = lambda: tx

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def test_trip(tx: TransactionCoordinator) -> Trip:
    """Published trip, 100 seats at 100.00, 7-day cutoff with a 10% fee."""
    return await create_trip(tx, trip_payload())


@pytest_asyncio.fixture
async def draft_trip(tx: TransactionCoordinator) -> Trip:
    return await create_trip(tx, trip_payload(status="draft", title="Unpublished Tour"))


@pytest_asyncio.fixture
async def imminent_trip(tx: TransactionCoordinator) -> Trip:
    """Published trip departing in 2 days, already inside its 7-day cutoff."""
    return await create_trip(tx, trip_payload(departs_in_days=2, title="Last Minute Escape"))


@pytest_asyncio.fixture
async def single_seat_trip(tx: TransactionCoordinator) -> Trip:
    return await create_trip(tx, trip_payload(capacity=1, title="Private Sailing"))


async def seats_left(tx: TransactionCoordinator, trip_id: int) -> int:
    return (await get_trip(tx, trip_id)).available_seats
