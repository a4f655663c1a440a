"""
Admin / observability endpoints
===============================

GET /api/v1/admin/reservations -- dispatched trips with the resources they hold
GET /api/v1/admin/health       -- simple health check
"""

from fastapi import APIRouter, Depends, Request

from trip_dispatch.api.dependencies import get_dispatcher
from trip_dispatch.api.middleware import limiter
from trip_dispatch.api.schemas import DispatchResponse, HealthResponse
from trip_dispatch.config import settings
from trip_dispatch.services.dispatcher import TripDispatcher

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/reservations",
    response_model=list[DispatchResponse],
    summary="List dispatched trips with their reserved vehicle and driver",
)
@limiter.limit(settings.rate_limit)
async def get_reservations(
    request: Request,
    dispatcher: TripDispatcher = Depends(get_dispatcher),
):
    outcomes = await dispatcher.list_reservations()
    return [DispatchResponse.model_validate(o) for o in outcomes]


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
