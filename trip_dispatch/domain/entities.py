"""
Domain entities.

Patterns used
-------------
- **State Pattern** on ``Trip``: ``next_status`` enforces the lifecycle
  (DRAFT -> DISPATCHED -> COMPLETED | CANCELLED, DRAFT -> CANCELLED).
- Entities are plain snapshots of a stored row.  ``version`` is the
  optimistic-concurrency token observed when the row was read; the
  repositories only write back when it still matches.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .enums import (
    DriverStatus,
    TERMINAL_TRIP_STATUSES,
    TRIP_TRANSITIONS,
    TripEvent,
    TripStatus,
    VehicleStatus,
    VehicleType,
)
from .errors import InvalidTransition


@dataclass
class Vehicle:
    id: Optional[int] = None
    name: str = ""
    license_plate: str = ""
    vehicle_type: VehicleType = VehicleType.VAN
    max_capacity: float = 0.0
    odometer: float = 0.0
    status: VehicleStatus = VehicleStatus.AVAILABLE
    active_trip_id: Optional[int] = None
    version: int = 1


@dataclass
class Driver:
    id: Optional[int] = None
    name: str = ""
    license_number: str = ""
    license_expiry: Optional[datetime] = None
    license_category: VehicleType = VehicleType.VAN
    status: DriverStatus = DriverStatus.OFF_DUTY
    safety_score: float = 100.0
    trips_completed: int = 0
    active_trip_id: Optional[int] = None
    version: int = 1


@dataclass
class Trip:
    id: Optional[int] = None
    reference: Optional[str] = None
    vehicle_id: int = 0
    driver_id: int = 0
    cargo_weight: float = 0.0
    origin: str = ""
    destination: str = ""
    status: TripStatus = TripStatus.DRAFT
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    odometer_start: Optional[float] = None
    odometer_end: Optional[float] = None
    idempotency_key: Optional[str] = None
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TRIP_STATUSES

    def next_status(self, event: TripEvent) -> TripStatus:
        """Return the status *event* leads to, or raise ``InvalidTransition``."""
        target = TRIP_TRANSITIONS.get(self.status, {}).get(event)
        if target is None:
            raise InvalidTransition(self.status.value, event.value)
        return target


@dataclass(frozen=True)
class DispatchOutcome:
    """A trip together with the current state of the resources it names."""

    trip: Trip
    vehicle: Optional[Vehicle] = None
    driver: Optional[Driver] = None
