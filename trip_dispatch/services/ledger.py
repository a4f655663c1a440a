"""
Resource ledger: the only code that moves vehicles and drivers in and out
of the reservation state.

* ``acquire``  -- vehicle ``available -> on_trip`` and driver
  ``on_duty -> on_trip``, each as one conditional UPDATE guarded by the
  version and status the caller observed.  A zero-row match means another
  writer changed the resource since it was read: ``ResourceConflict``.
* ``release``  -- restores ``available`` / ``on_duty`` for the resources held
  by a given trip.  Releasing something that is not held is a no-op, so a
  retried cancel/complete never fails here.

The ledger writes inside the caller's transaction.  If the driver claim
conflicts after the vehicle claim succeeded, the exception makes the caller
roll back both; a half-acquired pair is never committed.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from trip_dispatch.domain.entities import Driver, Vehicle
from trip_dispatch.domain.enums import DriverStatus, VehicleStatus
from trip_dispatch.domain.errors import ResourceConflict
from trip_dispatch.infrastructure.repositories import (
    DriverRepository,
    VehicleRepository,
)

logger = logging.getLogger(__name__)


class ResourceLedger:
    def __init__(self, session: AsyncSession):
        self.vehicles = VehicleRepository(session)
        self.drivers = DriverRepository(session)

    async def acquire(
        self, vehicle: Vehicle, driver: Driver, trip_id: int
    ) -> tuple[Vehicle, Driver]:
        """Reserve *vehicle* and *driver* for *trip_id*; return new snapshots."""
        if vehicle.status != VehicleStatus.AVAILABLE or not await self.vehicles.compare_and_swap(
            vehicle, status=VehicleStatus.ON_TRIP, active_trip_id=trip_id
        ):
            logger.warning(
                "Vehicle %s could not be reserved for trip %s",
                vehicle.id,
                trip_id,
            )
            raise ResourceConflict(
                f"Vehicle {vehicle.id} is no longer available",
                details={"resource": "vehicle", "id": vehicle.id},
            )

        if driver.status != DriverStatus.ON_DUTY or not await self.drivers.compare_and_swap(
            driver, status=DriverStatus.ON_TRIP, active_trip_id=trip_id
        ):
            logger.warning(
                "Driver %s could not be reserved for trip %s",
                driver.id,
                trip_id,
            )
            raise ResourceConflict(
                f"Driver {driver.id} is no longer available",
                details={"resource": "driver", "id": driver.id},
            )

        logger.info(
            "Reserved vehicle %s and driver %s for trip %s",
            vehicle.id,
            driver.id,
            trip_id,
        )
        return (
            replace(
                vehicle,
                status=VehicleStatus.ON_TRIP,
                active_trip_id=trip_id,
                version=vehicle.version + 1,
            ),
            replace(
                driver,
                status=DriverStatus.ON_TRIP,
                active_trip_id=trip_id,
                version=driver.version + 1,
            ),
        )

    async def release(
        self,
        vehicle_id: int,
        driver_id: int,
        trip_id: int,
        *,
        odometer: Optional[float] = None,
        completed: bool = False,
    ) -> tuple[bool, bool]:
        """
        Free the vehicle and driver held by *trip_id*.

        On completion the vehicle odometer is set to *odometer* and the
        driver's ``trips_completed`` is incremented in the same UPDATE.
        Returns whether each resource was actually released.
        """
        vehicle_values = {"status": VehicleStatus.AVAILABLE, "active_trip_id": None}
        if odometer is not None:
            vehicle_values["odometer"] = odometer
        vehicle_released = await self.vehicles.release_hold(
            vehicle_id, trip_id, **vehicle_values
        )

        driver_values = {"status": DriverStatus.ON_DUTY, "active_trip_id": None}
        if completed:
            driver_values["trips_completed"] = (
                self.drivers.model.trips_completed + 1
            )
        driver_released = await self.drivers.release_hold(
            driver_id, trip_id, **driver_values
        )

        if not vehicle_released:
            logger.debug("Vehicle %s not held by trip %s; nothing to release", vehicle_id, trip_id)
        if not driver_released:
            logger.debug("Driver %s not held by trip %s; nothing to release", driver_id, trip_id)
        if vehicle_released or driver_released:
            logger.info(
                "Released vehicle %s and driver %s from trip %s",
                vehicle_id,
                driver_id,
                trip_id,
            )
        return vehicle_released, driver_released
