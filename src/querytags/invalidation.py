"""Invalidation engine - tags in, stale entries and refetches out."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from querytags.coordinator import RequestCoordinator
from querytags.store import EntryStore
from querytags.tags import serialize_tag, to_tags
from querytags.types import CacheKey, Status, TagLike

logger = logging.getLogger(__name__)


class InvalidationEngine:
    """Marks entries carrying the given tags stale and revalidates the
    observed ones."""

    def __init__(self, store: EntryStore, coordinator: RequestCoordinator) -> None:
        self._store = store
        self._coordinator = coordinator

    def invalidate(
        self,
        tags: Iterable[TagLike],
        *,
        exact: bool = False,
    ) -> set[CacheKey]:
        """Invalidate every entry tagged with any of ``tags``.

        By default a tag also matches its more specific children, so
        invalidating ("Products",) hits ("Products", "42").
        With exact=True, only entries with an equal tag are affected.

        Returns the affected keys. Unknown tags are a no-op.
        """
        normalized = to_tags(tags)
        keys = self._store.tag_index.lookup(normalized, exact=exact)
        if not keys:
            return set()

        refetched = 0
        for key in sorted(keys):
            entry = self._store.get(key)
            if entry is None:
                continue
            observed = entry.subscriber_count > 0

            if entry.status is Status.LOADING:
                # The running fetch may predate the write, replace it
                self._coordinator.refetch(key)
                refetched += 1
            elif entry.status is Status.SUCCESS:
                self._store.transition(key, Status.STALE)
                if observed:
                    self._coordinator.refetch(key)
                    refetched += 1
            elif observed:
                self._coordinator.refetch(key)
                refetched += 1

        logger.info(
            "Invalidated %d entries (%d refetching) for %s",
            len(keys),
            refetched,
            ", ".join(sorted(serialize_tag(t) for t in normalized)),
        )
        return keys
