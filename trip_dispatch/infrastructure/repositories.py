"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Reads return domain entities; writes to
existing rows are compare-and-swap ``UPDATE`` statements that report
whether the row still matched what the caller observed.
"""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import DriverModel, SequenceModel, TripModel, VehicleModel
from trip_dispatch.domain.entities import Driver, Trip, Vehicle
from trip_dispatch.domain.enums import TripStatus


def _to_vehicle(row: VehicleModel) -> Vehicle:
    return Vehicle(
        id=row.id,
        name=row.name,
        license_plate=row.license_plate,
        vehicle_type=row.vehicle_type,
        max_capacity=row.max_capacity,
        odometer=row.odometer,
        status=row.status,
        active_trip_id=row.active_trip_id,
        version=row.version,
    )


def _to_driver(row: DriverModel) -> Driver:
    return Driver(
        id=row.id,
        name=row.name,
        license_number=row.license_number,
        license_expiry=row.license_expiry,
        license_category=row.license_category,
        status=row.status,
        safety_score=row.safety_score,
        trips_completed=row.trips_completed,
        active_trip_id=row.active_trip_id,
        version=row.version,
    )


def _to_trip(row: TripModel) -> Trip:
    return Trip(
        id=row.id,
        reference=row.reference,
        vehicle_id=row.vehicle_id,
        driver_id=row.driver_id,
        cargo_weight=row.cargo_weight,
        origin=row.origin,
        destination=row.destination,
        status=row.status,
        start_time=row.start_time,
        end_time=row.end_time,
        odometer_start=row.odometer_start,
        odometer_end=row.odometer_end,
        idempotency_key=row.idempotency_key,
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class _VersionedRepository:
    model: Any = None

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_row(self, entity_id: int):
        # Conditional UPDATEs bypass the identity map, so always re-read.
        return await self.session.get(self.model, entity_id, populate_existing=True)

    async def _update_where(self, *criteria, **values: Any) -> int:
        result = await self.session.execute(
            update(self.model)
            .where(*criteria)
            .values(version=self.model.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def compare_and_swap(self, entity, **values: Any) -> bool:
        """
        Write *values* only if the row still has the version and status
        observed in *entity*.  Returns ``False`` when another writer got
        there first.
        """
        matched = await self._update_where(
            self.model.id == entity.id,
            self.model.version == entity.version,
            self.model.status == entity.status,
            **values,
        )
        return matched == 1


class VehicleRepository(_VersionedRepository):
    model = VehicleModel

    async def get_by_id(self, vehicle_id: int) -> Optional[Vehicle]:
        row = await self._get_row(vehicle_id)
        return _to_vehicle(row) if row else None

    async def release_hold(self, vehicle_id: int, trip_id: int, **values: Any) -> bool:
        """Update the vehicle only while *trip_id* holds it."""
        matched = await self._update_where(
            VehicleModel.id == vehicle_id,
            VehicleModel.active_trip_id == trip_id,
            **values,
        )
        return matched == 1

    async def add(self, vehicle: Vehicle) -> Vehicle:
        row = VehicleModel(
            name=vehicle.name,
            license_plate=vehicle.license_plate,
            vehicle_type=vehicle.vehicle_type,
            max_capacity=vehicle.max_capacity,
            odometer=vehicle.odometer,
            status=vehicle.status,
        )
        self.session.add(row)
        await self.session.flush()
        await self.session.refresh(row)
        return _to_vehicle(row)


class DriverRepository(_VersionedRepository):
    model = DriverModel

    async def get_by_id(self, driver_id: int) -> Optional[Driver]:
        row = await self._get_row(driver_id)
        return _to_driver(row) if row else None

    async def release_hold(self, driver_id: int, trip_id: int, **values: Any) -> bool:
        """Update the driver only while *trip_id* holds them."""
        matched = await self._update_where(
            DriverModel.id == driver_id,
            DriverModel.active_trip_id == trip_id,
            **values,
        )
        return matched == 1

    async def add(self, driver: Driver) -> Driver:
        row = DriverModel(
            name=driver.name,
            license_number=driver.license_number,
            license_expiry=driver.license_expiry,
            license_category=driver.license_category,
            status=driver.status,
            safety_score=driver.safety_score,
        )
        self.session.add(row)
        await self.session.flush()
        await self.session.refresh(row)
        return _to_driver(row)


class TripRepository(_VersionedRepository):
    model = TripModel

    async def get_by_id(self, trip_id: int) -> Optional[Trip]:
        row = await self._get_row(trip_id)
        return _to_trip(row) if row else None

    async def get_by_idempotency_key(self, key: str) -> Optional[Trip]:
        result = await self.session.execute(
            select(TripModel).where(TripModel.idempotency_key == key)
        )
        row = result.scalar_one_or_none()
        return _to_trip(row) if row else None

    async def add(self, trip: Trip) -> Trip:
        row = TripModel(
            reference=trip.reference,
            vehicle_id=trip.vehicle_id,
            driver_id=trip.driver_id,
            cargo_weight=trip.cargo_weight,
            origin=trip.origin,
            destination=trip.destination,
            status=trip.status,
            start_time=trip.start_time,
            odometer_start=trip.odometer_start,
            idempotency_key=trip.idempotency_key,
        )
        self.session.add(row)
        await self.session.flush()
        await self.session.refresh(row)
        return _to_trip(row)

    async def get_by_status(self, status: TripStatus) -> list[Trip]:
        result = await self.session.execute(
            select(TripModel).where(TripModel.status == status).order_by(TripModel.id)
        )
        return [_to_trip(row) for row in result.scalars().all()]

    async def get_dispatched_for_vehicle(self, vehicle_id: int) -> list[Trip]:
        result = await self.session.execute(
            select(TripModel).where(
                TripModel.vehicle_id == vehicle_id,
                TripModel.status == TripStatus.DISPATCHED,
            )
        )
        return [_to_trip(row) for row in result.scalars().all()]

    async def get_dispatched_for_driver(self, driver_id: int) -> list[Trip]:
        result = await self.session.execute(
            select(TripModel).where(
                TripModel.driver_id == driver_id,
                TripModel.status == TripStatus.DISPATCHED,
            )
        )
        return [_to_trip(row) for row in result.scalars().all()]

    async def count(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(TripModel))
        return result.scalar() or 0


class SequenceRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def increment(self, name: str) -> Optional[int]:
        """Atomically bump counter *name*; ``None`` if it does not exist yet."""
        result = await self.session.execute(
            update(SequenceModel)
            .where(SequenceModel.name == name)
            .values(value=SequenceModel.value + 1)
            .returning(SequenceModel.value)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def create(self, name: str, value: int = 1) -> int:
        self.session.add(SequenceModel(name=name, value=value))
        await self.session.flush()
        return value
