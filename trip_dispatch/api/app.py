"""
FastAPI application factory.

* Registers routes for trips and admin.
* Maps dispatch engine errors to JSON error responses.
* Disposes the database engine on shutdown via lifespan events.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from trip_dispatch.api.errors import dispatch_error_handler
from trip_dispatch.api.middleware import limiter
from trip_dispatch.api.routes import admin, trips
from trip_dispatch.config import settings
from trip_dispatch.domain.errors import DispatchError
from trip_dispatch.infrastructure.database import engine
from trip_dispatch.infrastructure.redis_client import close_redis

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Release pooled database and Redis connections on shutdown."""
    logger.info(
        "Trip dispatch API starting (reference backend: %s)",
        settings.reference_backend,
    )
    yield
    await close_redis()
    await engine.dispose()
    logger.info("Trip dispatch API stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Trip Dispatch API",
        description=(
            "Assigns vehicles and drivers to transport trips and tracks each "
            "trip from draft to dispatched to completed or cancelled, without "
            "ever double-booking a vehicle or driver."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Engine errors -> {"error_code", "message", "details"}
    app.add_exception_handler(DispatchError, dispatch_error_handler)

    # Routers
    app.include_router(trips.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
