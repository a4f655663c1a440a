"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from trip_dispatch.domain.enums import (
    DriverStatus,
    TripStatus,
    VehicleStatus,
    VehicleType,
)


# ── Requests ──────────────────────────────────────────────────────────


class TripCreateRequest(BaseModel):
    vehicle_id: int
    driver_id: int
    cargo_weight: float = Field(..., ge=0, description="Cargo weight in kg.")
    origin: str = Field(..., min_length=1, max_length=255)
    destination: str = Field(..., min_length=1, max_length=255)
    dispatch: bool = Field(
        False, description="Dispatch immediately instead of saving a draft."
    )
    odometer_start: Optional[float] = Field(None, ge=0)
    idempotency_key: Optional[str] = Field(
        None,
        max_length=64,
        description="Client-generated UUID so a retried create returns the same trip.",
    )


class TripCompleteRequest(BaseModel):
    odometer_end: float = Field(..., ge=0, description="Vehicle odometer at arrival (km).")


# ── Responses ─────────────────────────────────────────────────────────


class VehicleResponse(BaseModel):
    id: int
    name: str
    license_plate: str
    vehicle_type: VehicleType
    max_capacity: float
    odometer: float
    status: VehicleStatus
    active_trip_id: Optional[int] = None

    model_config = {"from_attributes": True}


class DriverResponse(BaseModel):
    id: int
    name: str
    license_number: str
    license_expiry: Optional[datetime] = None
    status: DriverStatus
    safety_score: float
    trips_completed: int
    active_trip_id: Optional[int] = None

    model_config = {"from_attributes": True}


class TripResponse(BaseModel):
    id: int
    reference: str
    vehicle_id: int
    driver_id: int
    cargo_weight: float
    origin: str
    destination: str
    status: TripStatus
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    odometer_start: Optional[float] = None
    odometer_end: Optional[float] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DispatchResponse(BaseModel):
    trip: TripResponse
    vehicle: Optional[VehicleResponse] = None
    driver: Optional[DriverResponse] = None

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    error_code: str
    message: str
    details: dict[str, Any] = {}
