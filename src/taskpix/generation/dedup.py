# src/taskpix/generation/dedup.py

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_IN_FLIGHT_TTL_SECONDS = 300.0


@dataclass(slots=True)
class InFlightEntry:
    target_id: int
    task: asyncio.Future[Any]
    started_at: float


class InFlightRegistry:
    """
    At most one generation per target id.

    Registration happens synchronously before the first await, so two requests
    for the same target on one event loop can never both start work. Callers
    await the shared task through asyncio.shield: cancelling one caller leaves
    the generation running for the others.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_IN_FLIGHT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: dict[int, InFlightEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def is_in_flight(self, target_id: int) -> bool:
        entry = self._entries.get(target_id)
        return entry is not None and not entry.task.done()

    async def run_exclusive(self, target_id: int | None, factory: Callable[[], Awaitable[T]]) -> T:
        if target_id is None:
            return await factory()

        self.sweep()

        entry = self._entries.get(target_id)
        if entry is not None and not entry.task.done():
            logger.info("Generation already in flight for target %s; joining it", target_id)
            return await asyncio.shield(entry.task)

        task = asyncio.ensure_future(factory())
        entry = InFlightEntry(target_id=target_id, task=task, started_at=self._clock())
        self._entries[target_id] = entry
        task.add_done_callback(lambda _t, e=entry: self._release(e))
        logger.debug("Registered in-flight generation for target %s", target_id)
        return await asyncio.shield(task)

    def sweep(self) -> int:
        """Forget entries older than the TTL. Returns how many were dropped."""
        now = self._clock()
        stale = [tid for tid, e in self._entries.items() if now - e.started_at > self.ttl_seconds]
        for tid in stale:
            logger.warning("Dropping stale in-flight entry for target %s", tid)
            del self._entries[tid]
        return len(stale)

    def _release(self, entry: InFlightEntry) -> None:
        # A stale entry may already have been replaced by a newer request.
        if self._entries.get(entry.target_id) is entry:
            del self._entries[entry.target_id]
