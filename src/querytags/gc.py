"""Garbage collector for unobserved entries."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from querytags.duration import parse_duration
from querytags.store import EntryStore
from querytags.types import CacheEntry, CacheKey, Duration

logger = logging.getLogger(__name__)


class GarbageCollector:
    """Periodically removes entries nobody has watched for their retention window."""

    def __init__(
        self,
        store: EntryStore,
        *,
        interval: Duration = "5s",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._interval = parse_duration(interval)
        if self._interval <= 0:
            raise ValueError("GC interval must be positive")
        self._clock = clock
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def is_expired(self, entry: CacheEntry, now: float) -> bool:
        if entry.subscriber_count > 0 or entry.last_unsubscribed_at is None:
            return False
        return now - entry.last_unsubscribed_at >= entry.retention

    def sweep(self, now: float | None = None) -> list[CacheKey]:
        """Remove every expired entry. Returns the removed keys."""
        now = self._clock() if now is None else now
        removed = [
            entry.key for entry in self._store if self.is_expired(entry, now)
        ]
        for key in removed:
            self._store.remove(key)
        if removed:
            logger.debug("Collected %d entries", len(removed))
        return removed

    def collect(self, key: CacheKey) -> bool:
        """Remove ``key`` now if it is already past its retention window."""
        entry = self._store.get(key)
        if entry is None or not self.is_expired(entry, self._clock()):
            return False
        self._store.remove(key)
        return True

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.sweep()
