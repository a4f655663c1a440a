"""
Concurrency safety tests.

Demonstrates:
1. Two dispatches racing for one vehicle: exactly one wins.
2. Two trips racing for one driver: exactly one wins.
3. Concurrent creations never share a reference, even with more
   concurrent creations than the connection pool holds.
4. A retried create with the same idempotency key yields one trip.

Each racing operation runs on its own SQLite connection, so the races go
through the same conditional UPDATEs as production.
"""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

from trip_dispatch.domain.entities import DispatchOutcome
from trip_dispatch.domain.enums import DriverStatus, TripStatus, VehicleStatus
from trip_dispatch.domain.errors import EligibilityFailed, ResourceConflict
from trip_dispatch.infrastructure.database import make_session_factory
from trip_dispatch.infrastructure.repositories import TripRepository
from trip_dispatch.services.dispatcher import TripDispatcher, run_with_retry
from trip_dispatch.services.references import SequenceAllocator


def _split(results):
    wins = [r for r in results if isinstance(r, DispatchOutcome)]
    losses = [r for r in results if isinstance(r, BaseException)]
    return wins, losses


class TestVehicleRace:
    @pytest.mark.asyncio
    async def test_one_vehicle_two_drafts(
        self, dispatcher, make_vehicle, make_driver, read_vehicle
    ):
        vehicle = await make_vehicle()
        d1, d2 = await make_driver(), await make_driver()
        t1 = await dispatcher.create_trip(vehicle.id, d1.id, 100, "A", "B")
        t2 = await dispatcher.create_trip(vehicle.id, d2.id, 100, "A", "C")

        results = await asyncio.gather(
            dispatcher.dispatch(t1.trip.id),
            dispatcher.dispatch(t2.trip.id),
            return_exceptions=True,
        )

        wins, losses = _split(results)
        assert len(wins) == 1
        assert len(losses) == 1
        assert isinstance(losses[0], (ResourceConflict, EligibilityFailed))

        winner = wins[0].trip
        stored = await read_vehicle(vehicle.id)
        assert stored.status == VehicleStatus.ON_TRIP
        assert stored.active_trip_id == winner.id

        loser_id = t2.trip.id if winner.id == t1.trip.id else t1.trip.id
        loser = await dispatcher.get_trip(loser_id)
        assert loser.trip.status == TripStatus.DRAFT
        assert loser.driver.status == DriverStatus.ON_DUTY

    @pytest.mark.asyncio
    async def test_retried_loser_sees_vehicle_taken(
        self, dispatcher, make_vehicle, make_driver
    ):
        """With retries the losing request ends as an eligibility failure."""
        vehicle = await make_vehicle()
        d1, d2 = await make_driver(), await make_driver()
        t1 = await dispatcher.create_trip(vehicle.id, d1.id, 100, "A", "B")
        t2 = await dispatcher.create_trip(vehicle.id, d2.id, 100, "A", "C")

        results = await asyncio.gather(
            run_with_retry(lambda: dispatcher.dispatch(t1.trip.id), attempts=3),
            run_with_retry(lambda: dispatcher.dispatch(t2.trip.id), attempts=3),
            return_exceptions=True,
        )

        wins, losses = _split(results)
        assert len(wins) == 1
        assert len(losses) == 1
        assert isinstance(losses[0], EligibilityFailed)

    @pytest.mark.asyncio
    async def test_many_creates_for_one_vehicle(
        self, dispatcher, make_vehicle, make_driver, session_factory
    ):
        vehicle = await make_vehicle()
        drivers = [await make_driver() for _ in range(4)]

        results = await asyncio.gather(
            *(
                dispatcher.create_trip(vehicle.id, d.id, 50, "A", "B", dispatch=True)
                for d in drivers
            ),
            return_exceptions=True,
        )

        wins, losses = _split(results)
        assert len(wins) == 1
        assert len(losses) == 3
        async with session_factory() as session:
            dispatched = await TripRepository(session).get_dispatched_for_vehicle(vehicle.id)
            # Losers rolled back their inserted trip rows too.
            assert await TripRepository(session).count() == 1
        assert [t.id for t in dispatched] == [wins[0].trip.id]


class TestDriverRace:
    @pytest.mark.asyncio
    async def test_one_driver_two_vehicles(
        self, dispatcher, make_vehicle, make_driver, read_driver, read_vehicle, session_factory
    ):
        v1, v2 = await make_vehicle(), await make_vehicle()
        driver = await make_driver()
        t1 = await dispatcher.create_trip(v1.id, driver.id, 10, "A", "B")
        t2 = await dispatcher.create_trip(v2.id, driver.id, 10, "A", "C")

        results = await asyncio.gather(
            dispatcher.dispatch(t1.trip.id),
            dispatcher.dispatch(t2.trip.id),
            return_exceptions=True,
        )

        wins, losses = _split(results)
        assert len(wins) == 1
        assert isinstance(losses[0], (ResourceConflict, EligibilityFailed))

        winner = wins[0].trip
        assert (await read_driver(driver.id)).active_trip_id == winner.id
        async with session_factory() as session:
            held = await TripRepository(session).get_dispatched_for_driver(driver.id)
        assert [t.id for t in held] == [winner.id]
        # The loser's vehicle claim, if it got that far, was rolled back.
        loser_vehicle = v2.id if winner.vehicle_id == v1.id else v1.id
        assert (await read_vehicle(loser_vehicle)).status == VehicleStatus.AVAILABLE


class TestCompleteCancelRace:
    @pytest.mark.asyncio
    async def test_complete_and_cancel_one_wins(self, dispatcher, make_vehicle, make_driver, read_driver):
        vehicle, driver = await make_vehicle(), await make_driver()
        started = await dispatcher.create_trip(vehicle.id, driver.id, 10, "A", "B", dispatch=True)

        results = await asyncio.gather(
            dispatcher.complete(started.trip.id, odometer_end=12500),
            dispatcher.cancel(started.trip.id),
            return_exceptions=True,
        )

        wins, losses = _split(results)
        assert len(wins) == 1
        assert len(losses) == 1
        final = await dispatcher.get_trip(started.trip.id)
        assert final.trip.status in (TripStatus.COMPLETED, TripStatus.CANCELLED)
        assert final.vehicle.status == VehicleStatus.AVAILABLE
        expected_completed = 1 if final.trip.status == TripStatus.COMPLETED else 0
        assert (await read_driver(driver.id)).trips_completed == expected_completed


class TestReferenceRace:
    @pytest.mark.asyncio
    async def test_concurrent_creates_get_distinct_references(
        self, dispatcher, make_vehicle, make_driver
    ):
        vehicle, driver = await make_vehicle(), await make_driver()

        outcomes = await asyncio.gather(
            *(dispatcher.create_trip(vehicle.id, driver.id, 10, "A", "B") for _ in range(6))
        )

        references = [o.trip.reference for o in outcomes]
        assert len(set(references)) == 6
        assert sorted(references) == [f"TRP-{n:04d}" for n in range(1, 7)]

    @pytest.mark.asyncio
    async def test_more_creates_than_pool_connections(
        self, session_factory, tmp_path, make_vehicle, make_driver, clock
    ):
        """Each create holds at most one pooled connection at a time."""
        vehicle, driver = await make_vehicle(), await make_driver()
        small_engine = create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'dispatch.db'}",
            poolclass=AsyncAdaptedQueuePool,
            pool_size=2,
            max_overflow=0,
            pool_timeout=10,
        )
        factory = make_session_factory(small_engine)
        dispatcher = TripDispatcher(factory, SequenceAllocator(factory), clock=clock)

        try:
            outcomes = await asyncio.gather(
                *(dispatcher.create_trip(vehicle.id, driver.id, 10, "A", "B") for _ in range(8))
            )
        finally:
            await small_engine.dispose()

        assert len({o.trip.reference for o in outcomes}) == 8
        async with session_factory() as session:
            assert await TripRepository(session).count() == 8


class TestIdempotentRetry:
    @pytest.mark.asyncio
    async def test_same_key_twice_concurrently(
        self, dispatcher, make_vehicle, make_driver, session_factory
    ):
        vehicle, driver = await make_vehicle(), await make_driver()

        def create():
            return dispatcher.create_trip(
                vehicle.id, driver.id, 10, "A", "B", idempotency_key="retry-abc"
            )

        outcomes = await asyncio.gather(
            run_with_retry(create, attempts=3),
            run_with_retry(create, attempts=3),
        )

        assert outcomes[0].trip.id == outcomes[1].trip.id
        async with session_factory() as session:
            assert await TripRepository(session).count() == 1
