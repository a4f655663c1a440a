"""
Seed script -- creates the schema and populates sample data for reviewers.

Run:
    python seed.py

Creates:
  - all tables (if missing)
  - 6 sample vehicles (vans, trucks, bikes; one in the shop)
  - 6 sample drivers (mostly on duty; one suspended, one with an expired license)
  - 2 draft trips, one of them dispatched straight away
"""

import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select

from trip_dispatch.domain.entities import Driver, Vehicle
from trip_dispatch.domain.enums import DriverStatus, VehicleStatus, VehicleType
from trip_dispatch.infrastructure.database import Base, async_session_factory, engine
from trip_dispatch.infrastructure.models import VehicleModel
from trip_dispatch.infrastructure.repositories import (
    DriverRepository,
    VehicleRepository,
)
from trip_dispatch.services.dispatcher import TripDispatcher
from trip_dispatch.services.references import SequenceAllocator

NOW = datetime.now(timezone.utc)

VEHICLES = [
    {"name": "Van-01", "license_plate": "FL-1001", "vehicle_type": VehicleType.VAN, "max_capacity": 500, "odometer": 12000},
    {"name": "Van-02", "license_plate": "FL-1002", "vehicle_type": VehicleType.VAN, "max_capacity": 500, "odometer": 8400},
    {"name": "Truck-01", "license_plate": "FL-2001", "vehicle_type": VehicleType.TRUCK, "max_capacity": 5000, "odometer": 64000},
    {"name": "Truck-02", "license_plate": "FL-2002", "vehicle_type": VehicleType.TRUCK, "max_capacity": 8000, "odometer": 91000, "status": VehicleStatus.IN_SHOP},
    {"name": "Bike-01", "license_plate": "FL-3001", "vehicle_type": VehicleType.BIKE, "max_capacity": 20, "odometer": 1500},
    {"name": "Bike-02", "license_plate": "FL-3002", "vehicle_type": VehicleType.BIKE, "max_capacity": 20, "odometer": 300},
]

DRIVERS = [
    {"name": "Alex Morgan", "license_number": "DL-0001", "expiry_days": 365, "status": DriverStatus.ON_DUTY, "category": VehicleType.VAN},
    {"name": "Sam Rivera", "license_number": "DL-0002", "expiry_days": 200, "status": DriverStatus.ON_DUTY, "category": VehicleType.TRUCK},
    {"name": "Jordan Lee", "license_number": "DL-0003", "expiry_days": 30, "status": DriverStatus.ON_DUTY, "category": VehicleType.BIKE},
    {"name": "Casey Kim", "license_number": "DL-0004", "expiry_days": 500, "status": DriverStatus.OFF_DUTY, "category": VehicleType.VAN},
    {"name": "Riley Chen", "license_number": "DL-0005", "expiry_days": 90, "status": DriverStatus.SUSPENDED, "category": VehicleType.TRUCK},
    {"name": "Taylor Diaz", "license_number": "DL-0006", "expiry_days": -10, "status": DriverStatus.ON_DUTY, "category": VehicleType.VAN},
]


async def seed():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(select(func.count()).select_from(VehicleModel))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Vehicles ──────────────────────────────────────────────────
        vehicle_repo = VehicleRepository(session)
        vehicles = []
        for v in VEHICLES:
            vehicles.append(
                await vehicle_repo.add(
                    Vehicle(
                        name=v["name"],
                        license_plate=v["license_plate"],
                        vehicle_type=v["vehicle_type"],
                        max_capacity=v["max_capacity"],
                        odometer=v["odometer"],
                        status=v.get("status", VehicleStatus.AVAILABLE),
                    )
                )
            )
        print(f"  Created {len(vehicles)} vehicles")

        # ── Drivers ───────────────────────────────────────────────────
        driver_repo = DriverRepository(session)
        drivers = []
        for d in DRIVERS:
            drivers.append(
                await driver_repo.add(
                    Driver(
                        name=d["name"],
                        license_number=d["license_number"],
                        license_expiry=NOW + timedelta(days=d["expiry_days"]),
                        license_category=d["category"],
                        status=d["status"],
                    )
                )
            )
        print(f"  Created {len(drivers)} drivers")

        await session.commit()

    # ── Trips (through the engine, so references and reservations are real)
    dispatcher = TripDispatcher(
        async_session_factory, SequenceAllocator(async_session_factory)
    )
    draft = await dispatcher.create_trip(
        vehicle_id=vehicles[2].id,
        driver_id=drivers[1].id,
        cargo_weight=3200,
        origin="Central Depot",
        destination="North Warehouse",
    )
    dispatched = await dispatcher.create_trip(
        vehicle_id=vehicles[0].id,
        driver_id=drivers[0].id,
        cargo_weight=450,
        origin="Central Depot",
        destination="Harbour Market",
        dispatch=True,
    )
    print(f"  Created trips {draft.trip.reference} (draft), {dispatched.trip.reference} (dispatched)")

    print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
