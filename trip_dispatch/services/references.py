"""
Trip reference allocation.

References look like ``TRP-0001``.  The number comes from a dedicated
monotonic counter, never from counting existing trips, so two concurrent
creations can never be handed the same value.

Backends
--------
* :class:`SequenceAllocator` -- a ``sequences`` row bumped with a single
  ``UPDATE ... SET value = value + 1 RETURNING value``, committed in its own
  short transaction.  The row is created on first use.
* :class:`RedisAllocator` -- ``INCR`` on a Redis key.

A number handed out to a creation that later rolls back is simply skipped:
references may have gaps but are never reused.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from redis.exceptions import RedisError
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from trip_dispatch.config import settings
from trip_dispatch.domain.errors import StorageUnavailable
from trip_dispatch.infrastructure.repositories import SequenceRepository

logger = logging.getLogger(__name__)


def format_reference(
    number: int,
    prefix: str | None = None,
    width: int | None = None,
) -> str:
    prefix = settings.reference_prefix if prefix is None else prefix
    width = settings.reference_width if width is None else width
    return f"{prefix}-{number:0{width}d}"


class ReferenceAllocator(ABC):
    @abstractmethod
    async def next(self) -> int:
        """Return the next sequence number.  Strictly increasing."""

    async def next_reference(self) -> str:
        return format_reference(await self.next())


class SequenceAllocator(ReferenceAllocator):
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        name: str | None = None,
    ):
        self.session_factory = session_factory
        self.name = name or settings.reference_sequence_name

    async def next(self) -> int:
        try:
            try:
                return await self._increment()
            except IntegrityError:
                # Lost the race to create the counter row; it exists now.
                logger.debug("Sequence %s created concurrently, retrying", self.name)
                return await self._increment()
        except DBAPIError as exc:
            raise StorageUnavailable(
                f"Could not allocate trip reference: {exc.__class__.__name__}"
            ) from exc

    async def _increment(self) -> int:
        async with self.session_factory() as session:
            async with session.begin():
                repo = SequenceRepository(session)
                value = await repo.increment(self.name)
                if value is None:
                    value = await repo.create(self.name)
        return value


class RedisAllocator(ReferenceAllocator):
    def __init__(self, client, key: str | None = None):
        self.redis = client
        self.key = f"seq:{key or settings.reference_sequence_name}"

    async def next(self) -> int:
        try:
            return int(await self.redis.incr(self.key))
        except RedisError as exc:
            raise StorageUnavailable(
                f"Could not allocate trip reference: {exc.__class__.__name__}"
            ) from exc
