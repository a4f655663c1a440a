"""
Redis connection pool for the ``redis`` trip-reference backend.

The pool is opened on first use, so a process configured with the
database backend never connects to Redis.
"""

import logging
from typing import Optional

import redis.asyncio as aioredis

from trip_dispatch.config import settings

logger = logging.getLogger(__name__)

_pool: Optional[aioredis.ConnectionPool] = None


def _get_pool() -> aioredis.ConnectionPool:
    global _pool
    if _pool is None:
        _pool = aioredis.ConnectionPool.from_url(
            settings.redis_url, decode_responses=True
        )
        logger.info("Opened Redis pool for trip references")
    return _pool


async def get_redis() -> aioredis.Redis:
    """Return a Redis client backed by the shared connection pool."""
    return aioredis.Redis(connection_pool=_get_pool())


async def close_redis() -> None:
    global _pool
    if _pool is not None:
        await _pool.disconnect()
        _pool = None
