"""
Trip Dispatch Engine
====================

Owns the trip lifecycle::

    (new) --create--> DRAFT --dispatch--> DISPATCHED --complete--> COMPLETED
    (new) --create(dispatch=True)-------> DISPATCHED
    DRAFT | DISPATCHED --cancel--> CANCELLED

Every public operation is one database transaction:

1. load the trip and the vehicle/driver it names,
2. validate the transition and (when a resource is acquired) run the
   eligibility rules against the *current* vehicle/driver state,
3. write the trip and the resources with version-guarded UPDATEs through
   the ``ResourceLedger``,
4. commit -- or roll back everything on any error.

Nothing is ever observable half-done: a trip is ``dispatched`` exactly when
its vehicle and driver are ``on_trip`` for it.

Concurrency safety
------------------
Two requests racing for the same vehicle both read it as ``available``; both
pass eligibility; only one conditional UPDATE matches the observed version.
The loser raises ``ResourceConflict`` and its whole transaction (including a
freshly inserted trip row) is rolled back.  ``run_with_retry`` re-runs the
operation from scratch a bounded number of times.
"""

from __future__ import annotations

import logging
import math
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from trip_dispatch.config import settings
from trip_dispatch.domain.eligibility import check_dispatch, format_quantity
from trip_dispatch.domain.entities import DispatchOutcome, Trip
from trip_dispatch.domain.enums import TripEvent, TripStatus
from trip_dispatch.domain.errors import (
    InvalidRequest,
    NotFound,
    ResourceConflict,
    StorageUnavailable,
)
from trip_dispatch.infrastructure.repositories import TripRepository
from trip_dispatch.services.ledger import ResourceLedger
from trip_dispatch.services.references import ReferenceAllocator

logger = logging.getLogger(__name__)

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_non_negative(name: str, value: Optional[float]) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not math.isfinite(value) or value < 0:
        raise InvalidRequest(
            f"{name} must be a non-negative number, got {value!r}",
            details={"field": name},
        )


def is_unique_violation(exc: IntegrityError) -> bool:
    """True for a duplicate key (PostgreSQL SQLSTATE 23505, or SQLite's UNIQUE message)."""
    if getattr(exc.orig, "sqlstate", None) == "23505":
        return True
    return "UNIQUE constraint failed" in str(exc.orig)


def _require_text(name: str, value: Optional[str]) -> str:
    if value is None or not value.strip():
        raise InvalidRequest(f"{name} is required", details={"field": name})
    return value.strip()


class TripDispatcher:
    """Public entry point for trip lifecycle operations."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        allocator: ReferenceAllocator,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.allocator = allocator
        self.clock = clock

    # ── Public API ────────────────────────────────────────────────────

    async def create_trip(
        self,
        vehicle_id: int,
        driver_id: int,
        cargo_weight: float,
        origin: str,
        destination: str,
        dispatch: bool = False,
        odometer_start: Optional[float] = None,
        idempotency_key: Optional[str] = None,
    ) -> DispatchOutcome:
        """Create a trip in DRAFT, or directly DISPATCHED when *dispatch*."""
        if cargo_weight is None:
            raise InvalidRequest("cargo_weight is required", details={"field": "cargo_weight"})
        _require_non_negative("cargo_weight", cargo_weight)
        _require_non_negative("odometer_start", odometer_start)
        origin = _require_text("origin", origin)
        destination = _require_text("destination", destination)

        # Allocated before the transaction opens so a create never holds two
        # pooled connections at once. A number burned by a later failure is a gap.
        reference = await self.allocator.next_reference()

        async with self._unit_of_work() as session:
            trips = TripRepository(session)
            ledger = ResourceLedger(session)

            # ── Idempotency guard ─────────────────────────────────────
            if idempotency_key:
                existing = await trips.get_by_idempotency_key(idempotency_key)
                if existing:
                    logger.info(
                        "Trip %s already created for idempotency key %s",
                        existing.reference,
                        idempotency_key,
                    )
                    return await self._load_outcome(session, existing)

            vehicle = await ledger.vehicles.get_by_id(vehicle_id)
            if vehicle is None:
                raise NotFound("Vehicle", vehicle_id)
            driver = await ledger.drivers.get_by_id(driver_id)
            if driver is None:
                raise NotFound("Driver", driver_id)

            now = self.clock()
            draft = Trip(
                vehicle_id=vehicle_id,
                driver_id=driver_id,
                cargo_weight=cargo_weight,
                origin=origin,
                destination=destination,
                status=TripStatus.DRAFT,
                odometer_start=odometer_start,
                idempotency_key=idempotency_key,
            )
            if dispatch:
                check_dispatch(draft, vehicle, driver, now)
                draft.status = TripStatus.DISPATCHED
                draft.start_time = now
                if draft.odometer_start is None:
                    draft.odometer_start = vehicle.odometer

            draft.reference = reference
            trip = await trips.add(draft)

            if dispatch:
                await ledger.acquire(vehicle, driver, trip.id)

            logger.info(
                "Trip %s (id=%s) created as %s: vehicle=%s driver=%s cargo=%s",
                trip.reference,
                trip.id,
                trip.status.value,
                vehicle_id,
                driver_id,
                cargo_weight,
            )
            return await self._load_outcome(session, trip)

    async def dispatch(self, trip_id: int) -> DispatchOutcome:
        """DRAFT -> DISPATCHED, reserving the trip's vehicle and driver."""
        async with self._unit_of_work() as session:
            trips = TripRepository(session)
            ledger = ResourceLedger(session)

            trip = await self._get_trip(trips, trip_id)
            target = trip.next_status(TripEvent.DISPATCH)

            vehicle = await ledger.vehicles.get_by_id(trip.vehicle_id)
            if vehicle is None:
                raise NotFound("Vehicle", trip.vehicle_id)
            driver = await ledger.drivers.get_by_id(trip.driver_id)
            if driver is None:
                raise NotFound("Driver", trip.driver_id)

            now = self.clock()
            check_dispatch(trip, vehicle, driver, now)

            odometer_start = (
                trip.odometer_start if trip.odometer_start is not None else vehicle.odometer
            )
            await self._swap_trip(
                trips, trip, status=target, start_time=now, odometer_start=odometer_start
            )
            await ledger.acquire(vehicle, driver, trip.id)

            logger.info(
                "Trip %s dispatched: vehicle=%s driver=%s",
                trip.reference,
                vehicle.id,
                driver.id,
            )
            return await self._load_outcome(session, trip)

    async def complete(self, trip_id: int, odometer_end: Optional[float]) -> DispatchOutcome:
        """DISPATCHED -> COMPLETED, releasing resources and recording mileage."""
        async with self._unit_of_work() as session:
            trips = TripRepository(session)
            ledger = ResourceLedger(session)

            trip = await self._get_trip(trips, trip_id)
            target = trip.next_status(TripEvent.COMPLETE)

            if odometer_end is None:
                raise InvalidRequest(
                    "odometer_end is required to complete a trip",
                    details={"field": "odometer_end"},
                )
            _require_non_negative("odometer_end", odometer_end)
            if trip.odometer_start is not None and odometer_end < trip.odometer_start:
                raise InvalidRequest(
                    f"odometer_end {format_quantity(odometer_end)} is below "
                    f"odometer_start {format_quantity(trip.odometer_start)}",
                    details={"field": "odometer_end"},
                )

            await self._swap_trip(
                trips,
                trip,
                status=target,
                end_time=self.clock(),
                odometer_end=odometer_end,
            )
            await ledger.release(
                trip.vehicle_id,
                trip.driver_id,
                trip.id,
                odometer=odometer_end,
                completed=True,
            )

            logger.info("Trip %s completed (odometer_end=%s)", trip.reference, odometer_end)
            return await self._load_outcome(session, trip)

    async def cancel(self, trip_id: int) -> DispatchOutcome:
        """DRAFT | DISPATCHED -> CANCELLED, releasing resources if held."""
        async with self._unit_of_work() as session:
            trips = TripRepository(session)
            ledger = ResourceLedger(session)

            trip = await self._get_trip(trips, trip_id)
            target = trip.next_status(TripEvent.CANCEL)

            await self._swap_trip(trips, trip, status=target)
            if trip.status == TripStatus.DISPATCHED:
                await ledger.release(trip.vehicle_id, trip.driver_id, trip.id)

            logger.info("Trip %s cancelled (was %s)", trip.reference, trip.status.value)
            return await self._load_outcome(session, trip)

    async def get_trip(self, trip_id: int) -> DispatchOutcome:
        async with self._unit_of_work() as session:
            trip = await self._get_trip(TripRepository(session), trip_id)
            return await self._load_outcome(session, trip)

    async def list_reservations(self) -> list[DispatchOutcome]:
        """Every DISPATCHED trip with the vehicle and driver it holds."""
        async with self._unit_of_work() as session:
            trips = await TripRepository(session).get_by_status(TripStatus.DISPATCHED)
            return [await self._load_outcome(session, trip) for trip in trips]

    # ── Internals ─────────────────────────────────────────────────────

    @asynccontextmanager
    async def _unit_of_work(self) -> AsyncIterator[AsyncSession]:
        """One transaction; commit on success, roll back on any error."""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    yield session
        except IntegrityError as exc:
            if not is_unique_violation(exc):
                logger.error("Integrity failure: %s", exc.orig)
                raise StorageUnavailable(
                    "Trip storage rejected the write",
                    details={"cause": exc.__class__.__name__},
                ) from exc
            # A concurrent writer claimed the same unique key (e.g. the
            # idempotency key) first; re-running will observe its row.
            raise ResourceConflict(
                "Concurrent write conflict", details={"cause": exc.__class__.__name__}
            ) from exc
        except (DBAPIError, PoolTimeoutError) as exc:
            logger.error("Storage failure: %s", exc.__class__.__name__)
            raise StorageUnavailable(
                "Trip storage is unavailable", details={"cause": exc.__class__.__name__}
            ) from exc

    @staticmethod
    async def _get_trip(trips: TripRepository, trip_id: int) -> Trip:
        trip = await trips.get_by_id(trip_id)
        if trip is None:
            raise NotFound("Trip", trip_id)
        return trip

    @staticmethod
    async def _swap_trip(trips: TripRepository, trip: Trip, **values) -> None:
        if not await trips.compare_and_swap(trip, **values):
            logger.warning("Trip %s was modified concurrently", trip.reference)
            raise ResourceConflict(
                f"Trip {trip.id} was modified concurrently",
                details={"resource": "trip", "id": trip.id},
            )

    @staticmethod
    async def _load_outcome(session: AsyncSession, trip: Trip) -> DispatchOutcome:
        ledger = ResourceLedger(session)
        return DispatchOutcome(
            trip=await TripRepository(session).get_by_id(trip.id),
            vehicle=await ledger.vehicles.get_by_id(trip.vehicle_id),
            driver=await ledger.drivers.get_by_id(trip.driver_id),
        )


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    attempts: Optional[int] = None,
) -> T:
    """
    Run *operation* again from scratch while it raises ``ResourceConflict``.

    Safe because a conflict is only raised before commit.  After *attempts*
    tries the last conflict propagates to the caller.
    """
    attempts = attempts or settings.conflict_retry_attempts
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except ResourceConflict as exc:
            if attempt >= attempts:
                raise
            logger.warning(
                "Retrying after resource conflict (%d/%d): %s",
                attempt,
                attempts,
                exc.message,
            )
    raise RuntimeError("run_with_retry needs at least one attempt")
