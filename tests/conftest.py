"""
Shared test fixtures.

Each test gets its own file-backed SQLite database (via aiosqlite) so tests
run without Docker / PostgreSQL / Redis.  A file rather than ``:memory:``
gives every session its own connection, which the concurrency tests rely
on: two racing transactions really are two transactions.
"""

import itertools
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from trip_dispatch.domain.entities import Driver, Vehicle
from trip_dispatch.domain.enums import DriverStatus, VehicleStatus
from trip_dispatch.infrastructure import models  # noqa: F401  (registers tables)
from trip_dispatch.infrastructure.database import Base, make_session_factory
from trip_dispatch.infrastructure.repositories import (
    DriverRepository,
    VehicleRepository,
)
from trip_dispatch.services.dispatcher import TripDispatcher
from trip_dispatch.services.references import SequenceAllocator

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock the tests can move."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables in a fresh SQLite file, yield a session factory, dispose."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'dispatch.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield make_session_factory(engine)

    await engine.dispose()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def dispatcher(session_factory, clock) -> TripDispatcher:
    return TripDispatcher(session_factory, SequenceAllocator(session_factory), clock=clock)


@pytest.fixture
def make_vehicle(session_factory):
    """Async factory: ``await make_vehicle(max_capacity=500)``."""
    plates = itertools.count(1)

    async def _make(**overrides) -> Vehicle:
        fields = {
            "name": "Van",
            "license_plate": f"TST-{next(plates):04d}",
            "max_capacity": 500.0,
            "odometer": 12000.0,
            "status": VehicleStatus.AVAILABLE,
        }
        fields.update(overrides)
        async with session_factory() as session:
            vehicle = await VehicleRepository(session).add(Vehicle(**fields))
            await session.commit()
        return vehicle

    return _make


@pytest.fixture
def make_driver(session_factory):
    """Async factory: ``await make_driver(status=DriverStatus.OFF_DUTY)``."""
    licenses = itertools.count(1)

    async def _make(**overrides) -> Driver:
        fields = {
            "name": "Driver",
            "license_number": f"LIC-{next(licenses):04d}",
            "license_expiry": NOW + timedelta(days=365),
            "status": DriverStatus.ON_DUTY,
        }
        fields.update(overrides)
        async with session_factory() as session:
            driver = await DriverRepository(session).add(Driver(**fields))
            await session.commit()
        return driver

    return _make


@pytest.fixture
def read_vehicle(session_factory):
    async def _read(vehicle_id: int) -> Vehicle:
        async with session_factory() as session:
            return await VehicleRepository(session).get_by_id(vehicle_id)

    return _read


@pytest.fixture
def read_driver(session_factory):
    async def _read(driver_id: int) -> Driver:
        async with session_factory() as session:
            return await DriverRepository(session).get_by_id(driver_id)

    return _read
