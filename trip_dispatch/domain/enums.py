"""Domain enumerations and state-transition rules."""

import enum


class TripStatus(str, enum.Enum):
    DRAFT = "draft"
    DISPATCHED = "dispatched"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TripEvent(str, enum.Enum):
    DISPATCH = "dispatch"
    COMPLETE = "complete"
    CANCEL = "cancel"


# State machine: maps current status -> {event: next status}
TRIP_TRANSITIONS: dict[TripStatus, dict[TripEvent, TripStatus]] = {
    TripStatus.DRAFT: {
        TripEvent.DISPATCH: TripStatus.DISPATCHED,
        TripEvent.CANCEL: TripStatus.CANCELLED,
    },
    TripStatus.DISPATCHED: {
        TripEvent.COMPLETE: TripStatus.COMPLETED,
        TripEvent.CANCEL: TripStatus.CANCELLED,
    },
    TripStatus.COMPLETED: {},
    TripStatus.CANCELLED: {},
}

TERMINAL_TRIP_STATUSES = frozenset(
    status for status, edges in TRIP_TRANSITIONS.items() if not edges
)


class VehicleStatus(str, enum.Enum):
    AVAILABLE = "available"
    ON_TRIP = "on_trip"
    IN_SHOP = "in_shop"
    RETIRED = "retired"


class DriverStatus(str, enum.Enum):
    ON_DUTY = "on_duty"
    OFF_DUTY = "off_duty"
    SUSPENDED = "suspended"
    ON_TRIP = "on_trip"  # held by a dispatched trip


class VehicleType(str, enum.Enum):
    VAN = "van"
    TRUCK = "truck"
    BIKE = "bike"
