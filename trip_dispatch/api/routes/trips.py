"""
Trip endpoints
==============

POST  /api/v1/trips                     -- create a trip (draft, or dispatched)
GET   /api/v1/trips/{trip_id}           -- trip with its vehicle and driver
PATCH /api/v1/trips/{trip_id}/dispatch  -- reserve resources and start the trip
PATCH /api/v1/trips/{trip_id}/complete  -- finish the trip, record odometer
PATCH /api/v1/trips/{trip_id}/cancel    -- cancel, freeing resources if held

State-changing calls are retried on ``ResourceConflict`` (a lost race for a
vehicle or driver) up to ``conflict_retry_attempts`` times.
"""

from fastapi import APIRouter, Depends, Request

from trip_dispatch.api.dependencies import get_dispatcher
from trip_dispatch.api.middleware import limiter
from trip_dispatch.api.schemas import (
    DispatchResponse,
    ErrorResponse,
    TripCompleteRequest,
    TripCreateRequest,
)
from trip_dispatch.config import settings
from trip_dispatch.services.dispatcher import TripDispatcher, run_with_retry

router = APIRouter(prefix="/trips", tags=["trips"])

_ERRORS = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


@router.post(
    "",
    status_code=201,
    response_model=DispatchResponse,
    summary="Create a trip",
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def create_trip(
    request: Request,
    body: TripCreateRequest,
    dispatcher: TripDispatcher = Depends(get_dispatcher),
):
    outcome = await run_with_retry(
        lambda: dispatcher.create_trip(
            vehicle_id=body.vehicle_id,
            driver_id=body.driver_id,
            cargo_weight=body.cargo_weight,
            origin=body.origin,
            destination=body.destination,
            dispatch=body.dispatch,
            odometer_start=body.odometer_start,
            idempotency_key=body.idempotency_key,
        )
    )
    return DispatchResponse.model_validate(outcome)


@router.get(
    "/{trip_id}",
    response_model=DispatchResponse,
    summary="Get a trip with its vehicle and driver",
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def get_trip(
    request: Request,
    trip_id: int,
    dispatcher: TripDispatcher = Depends(get_dispatcher),
):
    return DispatchResponse.model_validate(await dispatcher.get_trip(trip_id))


@router.patch(
    "/{trip_id}/dispatch",
    response_model=DispatchResponse,
    summary="Dispatch a draft trip",
    description=(
        "Re-checks vehicle availability, cargo capacity, driver duty status "
        "and license validity, then reserves the vehicle and driver."
    ),
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def dispatch_trip(
    request: Request,
    trip_id: int,
    dispatcher: TripDispatcher = Depends(get_dispatcher),
):
    outcome = await run_with_retry(lambda: dispatcher.dispatch(trip_id))
    return DispatchResponse.model_validate(outcome)


@router.patch(
    "/{trip_id}/complete",
    response_model=DispatchResponse,
    summary="Complete a dispatched trip",
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def complete_trip(
    request: Request,
    trip_id: int,
    body: TripCompleteRequest,
    dispatcher: TripDispatcher = Depends(get_dispatcher),
):
    outcome = await run_with_retry(
        lambda: dispatcher.complete(trip_id, body.odometer_end)
    )
    return DispatchResponse.model_validate(outcome)


@router.patch(
    "/{trip_id}/cancel",
    response_model=DispatchResponse,
    summary="Cancel a trip",
    description=(
        "Transitions a draft or dispatched trip to cancelled. "
        "A dispatched trip's vehicle and driver are released."
    ),
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def cancel_trip(
    request: Request,
    trip_id: int,
    dispatcher: TripDispatcher = Depends(get_dispatcher),
):
    outcome = await run_with_retry(lambda: dispatcher.cancel(trip_id))
    return DispatchResponse.model_validate(outcome)
