"""Subscription registry - who is watching which key."""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from querytags.types import CacheKey, Snapshot

logger = logging.getLogger(__name__)

Observer = Callable[[Snapshot[Any]], None]


@dataclass(frozen=True, slots=True)
class SubscriptionHandle:
    """Identifies one (key, observer) registration."""

    id: int
    key: CacheKey


class SubscriptionRegistry:
    """Observers per key, notified synchronously in subscription order."""

    def __init__(self) -> None:
        # dicts keep insertion order, which is the delivery order
        self._observers: dict[CacheKey, dict[int, Observer]] = {}
        self._ids = itertools.count(1)

    def subscribe(self, key: CacheKey, observer: Observer) -> SubscriptionHandle:
        handle = SubscriptionHandle(id=next(self._ids), key=key)
        self._observers.setdefault(key, {})[handle.id] = observer
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> bool:
        """Drop a registration. Returns False if it was already gone."""
        observers = self._observers.get(handle.key)
        if observers is None or handle.id not in observers:
            return False
        del observers[handle.id]
        if not observers:
            del self._observers[handle.key]
        return True

    def notify(self, key: CacheKey, snapshot: Snapshot[Any]) -> None:
        """Deliver ``snapshot`` to every observer of ``key``.

        Iterates over a copy taken at dispatch time, so an observer that
        unsubscribes itself or others does not disturb this round.
        """
        observers = list(self._observers.get(key, {}).values())
        for observer in observers:
            try:
                observer(snapshot)
            except Exception:
                logger.exception("Observer of %s raised", key)

    def observers(self, key: CacheKey) -> list[Observer]:
        return list(self._observers.get(key, {}).values())

    def count(self, key: CacheKey) -> int:
        return len(self._observers.get(key, {}))

    def clear(self) -> None:
        self._observers.clear()
