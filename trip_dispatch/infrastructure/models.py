"""
SQLAlchemy ORM models.

Tables
------
* ``vehicles``   -- fleet vehicles with cargo capacity and availability
* ``drivers``    -- drivers with license validity and duty status
* ``trips``      -- transport jobs moving through the dispatch lifecycle
* ``sequences``  -- named monotonic counters (trip reference numbers)

Every mutable row carries a ``version`` column.  All lifecycle writes are
conditional ``UPDATE ... WHERE version = :observed`` statements issued by
the repositories, so two writers that read the same row cannot both win.

Indexes
-------
* **B-Tree** on ``status`` for the three entity tables and on
  ``trips.vehicle_id`` / ``trips.driver_id`` for reservation look-ups.
* Unique on ``vehicles.license_plate``, ``drivers.license_number``,
  ``trips.reference`` and ``trips.idempotency_key``.
"""

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)

from .database import Base
from trip_dispatch.domain.enums import (
    DriverStatus,
    TripStatus,
    VehicleStatus,
    VehicleType,
)


def _values_enum(enum_cls, name: str) -> Enum:
    """Store enum *values* ("on_trip"), not member names ("ON_TRIP")."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class VehicleModel(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    license_plate = Column(String(32), unique=True, nullable=False)
    vehicle_type = Column(
        _values_enum(VehicleType, "vehicletype"), default=VehicleType.VAN
    )
    max_capacity = Column(Float, nullable=False)
    odometer = Column(Float, default=0.0, nullable=False)
    status = Column(
        _values_enum(VehicleStatus, "vehiclestatus"),
        default=VehicleStatus.AVAILABLE,
        nullable=False,
    )
    active_trip_id = Column(Integer, nullable=True)
    version = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (Index("idx_vehicles_status", "status"),)


class DriverModel(Base):
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    license_number = Column(String(64), unique=True, nullable=False)
    license_expiry = Column(DateTime(timezone=True), nullable=False)
    license_category = Column(
        _values_enum(VehicleType, "licensecategory"), default=VehicleType.VAN
    )
    status = Column(
        _values_enum(DriverStatus, "driverstatus"),
        default=DriverStatus.OFF_DUTY,
        nullable=False,
    )
    safety_score = Column(Float, default=100.0, nullable=False)
    trips_completed = Column(Integer, default=0, nullable=False)
    active_trip_id = Column(Integer, nullable=True)
    version = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (Index("idx_drivers_status", "status"),)


class TripModel(Base):
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reference = Column(String(32), unique=True, nullable=False)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=False)
    cargo_weight = Column(Float, nullable=False)
    origin = Column(String(255), nullable=False)
    destination = Column(String(255), nullable=False)
    status = Column(
        _values_enum(TripStatus, "tripstatus"),
        default=TripStatus.DRAFT,
        nullable=False,
    )
    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    odometer_start = Column(Float, nullable=True)
    odometer_end = Column(Float, nullable=True)
    idempotency_key = Column(String(64), unique=True, nullable=True)
    version = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_trips_status", "status"),
        Index("idx_trips_vehicle", "vehicle_id"),
        Index("idx_trips_driver", "driver_id"),
    )


class SequenceModel(Base):
    __tablename__ = "sequences"

    name = Column(String(64), primary_key=True)
    value = Column(Integer, default=0, nullable=False)
