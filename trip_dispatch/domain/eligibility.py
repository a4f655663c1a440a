"""
Dispatch eligibility rules.

Each rule is a pure function of the trip being dispatched, the vehicle and
driver it names (``None`` when the record does not exist) and the current
instant.  A rule returns ``None`` when satisfied, otherwise a human-readable
reason.  Rules are evaluated fresh at every transition that acquires a
resource, in declaration order, and the first failure wins.

Rules
-----
1. vehicle exists
2. vehicle status is ``available``
3. ``cargo_weight <= vehicle.max_capacity``
4. driver exists
5. driver status is ``on_duty``
6. ``driver.license_expiry > now``  (strict: expiring *now* is expired)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from .entities import Driver, Trip, Vehicle
from .enums import DriverStatus, VehicleStatus
from .errors import EligibilityFailed

Rule = Callable[[Trip, Optional[Vehicle], Optional[Driver], datetime], Optional[str]]


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_quantity(value: float) -> str:
    """Render a weight or reading in full: ``500.0 -> "500"``, ``100000.5`` kept."""
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


def vehicle_exists(trip, vehicle, driver, now):
    if vehicle is None:
        return f"Vehicle {trip.vehicle_id} not found"
    return None


def vehicle_available(trip, vehicle, driver, now):
    if vehicle is not None and vehicle.status != VehicleStatus.AVAILABLE:
        return f"Vehicle {vehicle.id} is not available (status: {vehicle.status.value})"
    return None


def cargo_within_capacity(trip, vehicle, driver, now):
    if vehicle is not None and trip.cargo_weight > vehicle.max_capacity:
        return (
            f"Cargo weight {format_quantity(trip.cargo_weight)}kg exceeds vehicle "
            f"capacity {format_quantity(vehicle.max_capacity)}kg"
        )
    return None


def driver_exists(trip, vehicle, driver, now):
    if driver is None:
        return f"Driver {trip.driver_id} not found"
    return None


def driver_on_duty(trip, vehicle, driver, now):
    if driver is not None and driver.status != DriverStatus.ON_DUTY:
        return f"Driver {driver.id} is not on duty (status: {driver.status.value})"
    return None


def license_valid(trip, vehicle, driver, now):
    if driver is None:
        return None
    if driver.license_expiry is None:
        return f"Driver {driver.id} has no license expiry on record"
    if as_utc(driver.license_expiry) <= as_utc(now):
        return (
            f"Driver {driver.id} license expired on "
            f"{as_utc(driver.license_expiry).isoformat()}"
        )
    return None


DISPATCH_RULES: tuple[Rule, ...] = (
    vehicle_exists,
    vehicle_available,
    cargo_within_capacity,
    driver_exists,
    driver_on_duty,
    license_valid,
)


def violations(
    trip: Trip,
    vehicle: Optional[Vehicle],
    driver: Optional[Driver],
    now: datetime,
    rules: tuple[Rule, ...] = DISPATCH_RULES,
) -> list[tuple[str, str]]:
    """Return ``(rule_name, reason)`` for every failing rule."""
    found = []
    for rule in rules:
        reason = rule(trip, vehicle, driver, now)
        if reason is not None:
            found.append((rule.__name__, reason))
    return found


def check_dispatch(
    trip: Trip,
    vehicle: Optional[Vehicle],
    driver: Optional[Driver],
    now: datetime,
    rules: tuple[Rule, ...] = DISPATCH_RULES,
) -> None:
    """Raise ``EligibilityFailed`` for the first failing rule."""
    for rule in rules:
        reason = rule(trip, vehicle, driver, now)
        if reason is not None:
            raise EligibilityFailed(reason, rule=rule.__name__)
