"""Entry store - owns every CacheEntry and all of its status transitions."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from typing import Any

from querytags.errors import InvalidTransition
from querytags.tag_index import TagIndex
from querytags.types import CacheEntry, CacheKey, QueryRequest, Snapshot, Status, Tag

logger = logging.getLogger(__name__)

TransitionListener = Callable[[CacheKey, Snapshot[Any]], None]

_MISSING: Any = object()

# Legal moves per status. loading -> loading supersedes an in-flight fetch,
# loading -> stale keeps the last good value after a failed revalidation.
_TRANSITIONS: dict[Status, frozenset[Status]] = {
    Status.UNINITIALIZED: frozenset({Status.LOADING}),
    Status.LOADING: frozenset(
        {Status.SUCCESS, Status.ERROR, Status.STALE, Status.LOADING}
    ),
    Status.SUCCESS: frozenset({Status.LOADING, Status.STALE}),
    Status.STALE: frozenset({Status.LOADING}),
    Status.ERROR: frozenset({Status.LOADING}),
}


def can_transition(current: Status, requested: Status) -> bool:
    return requested in _TRANSITIONS[current]


class EntryStore:
    """Mapping from cache key to entry, kept in step with the TagIndex.

    Every method runs to completion without suspending, so on a single event
    loop a transition and its tag-index diff are applied as one step.
    """

    def __init__(
        self,
        tag_index: TagIndex | None = None,
        *,
        on_transition: TransitionListener | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._tag_index = tag_index if tag_index is not None else TagIndex()
        self._on_transition = on_transition
        self._clock = clock

    @property
    def tag_index(self) -> TagIndex:
        return self._tag_index

    def get(self, key: CacheKey) -> CacheEntry | None:
        return self._entries.get(key)

    def get_or_create(self, key: CacheKey, request: QueryRequest) -> CacheEntry:
        """Return the entry for ``key``, creating it as uninitialized."""
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(
                key=key,
                request=request,
                last_unsubscribed_at=self._clock(),
            )
            self._entries[key] = entry
            logger.debug("Created entry %s", key)
        return entry

    def transition(
        self,
        key: CacheKey,
        status: Status,
        *,
        value: Any = _MISSING,
        tags: frozenset[Tag] | None = None,
        error: BaseException | None = None,
    ) -> CacheEntry:
        """Move an entry to ``status`` and notify its observers.

        Raises:
            KeyError: no entry for ``key``.
            InvalidTransition: ``status`` is not reachable from the current one.
        """
        entry = self._entries[key]
        previous = entry.status
        if not can_transition(previous, status):
            raise InvalidTransition(key, previous.value, status.value)

        if status is Status.SUCCESS:
            if value is _MISSING:
                raise ValueError("success transition requires a value")
            new_tags = tags if tags is not None else frozenset()
            # Tags are replaced, never accumulated
            self._tag_index.update(key, entry.tags, new_tags)
            entry.tags = new_tags
            entry.value = value
            entry.has_value = True
            entry.error = None
            entry.fetched_at = self._clock()
        elif status is Status.ERROR:
            if error is None:
                raise ValueError("error transition requires an error")
            entry.error = error
            entry.value = None
            entry.has_value = False
        elif status is Status.STALE:
            if not entry.has_value:
                raise InvalidTransition(key, previous.value, status.value)
            entry.error = None

        entry.status = status

        # Background revalidation keeps showing the last good value
        silent = status is Status.LOADING and (
            entry.has_value or previous is Status.LOADING
        )
        if not silent and self._on_transition is not None:
            self._on_transition(key, self.snapshot(entry))
        return entry

    def retain(self, key: CacheKey) -> CacheEntry:
        """Count one more subscriber for ``key``."""
        entry = self._entries[key]
        entry.subscriber_count += 1
        entry.last_unsubscribed_at = None
        return entry

    def release(self, key: CacheKey) -> CacheEntry | None:
        """Count one fewer subscriber. Returns None if already collected."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.subscriber_count <= 0:
            raise ValueError(f"Entry {key!r} has no subscribers to release")
        entry.subscriber_count -= 1
        if entry.subscriber_count == 0:
            entry.last_unsubscribed_at = self._clock()
        return entry

    def touch(self, key: CacheKey) -> None:
        """Restart the retention clock of an unobserved entry after use."""
        entry = self._entries.get(key)
        if entry is not None and entry.subscriber_count == 0:
            entry.last_unsubscribed_at = self._clock()

    def remove(self, key: CacheKey) -> CacheEntry | None:
        """Delete an entry and its tag-index references together."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.subscriber_count > 0:
            raise ValueError(
                f"Cannot remove {key!r} with {entry.subscriber_count} subscribers"
            )
        del self._entries[key]
        self._tag_index.remove(key, entry.tags)
        logger.debug("Removed entry %s", key)
        return entry

    def clear(self) -> None:
        self._entries.clear()
        self._tag_index.clear()

    def snapshot(self, entry: CacheEntry) -> Snapshot[Any]:
        return Snapshot(
            key=entry.key,
            status=entry.status,
            value=entry.value if entry.has_value else None,
            error=entry.error if entry.status is Status.ERROR else None,
        )

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CacheEntry]:
        return iter(list(self._entries.values()))
