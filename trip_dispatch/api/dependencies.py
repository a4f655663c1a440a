"""FastAPI dependency injection helpers."""

from trip_dispatch.config import settings
from trip_dispatch.infrastructure.database import async_session_factory
from trip_dispatch.infrastructure.redis_client import get_redis
from trip_dispatch.services.dispatcher import TripDispatcher
from trip_dispatch.services.references import (
    RedisAllocator,
    ReferenceAllocator,
    SequenceAllocator,
)


async def get_allocator() -> ReferenceAllocator:
    """Pick the trip-reference backend configured in settings."""
    if settings.reference_backend == "redis":
        return RedisAllocator(await get_redis())
    return SequenceAllocator(async_session_factory)


async def get_dispatcher() -> TripDispatcher:
    """Build the dispatch engine over the process-wide session factory."""
    return TripDispatcher(async_session_factory, await get_allocator())
