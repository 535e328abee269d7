"""Reverse index from tag to the cache keys currently carrying it."""

from collections.abc import Iterable

from querytags.tags import is_tag_prefix
from querytags.types import CacheKey, Tag


class TagIndex:
    """Tag -> set of keys. Only holds back-references owned by the EntryStore."""

    def __init__(self) -> None:
        self._keys: dict[Tag, set[CacheKey]] = {}

    def update(
        self,
        key: CacheKey,
        old_tags: frozenset[Tag],
        new_tags: frozenset[Tag],
    ) -> None:
        """Apply the diff between an entry's previous and current tag sets."""
        for tag in old_tags - new_tags:
            self._discard(tag, key)
        for tag in new_tags - old_tags:
            self._keys.setdefault(tag, set()).add(key)

    def remove(self, key: CacheKey, tags: Iterable[Tag]) -> None:
        for tag in tags:
            self._discard(tag, key)

    def lookup(self, tags: Iterable[Tag], *, exact: bool = False) -> set[CacheKey]:
        """Union of keys tagged with any of ``tags``.

        Unless ``exact``, a tag also matches every more specific tag below it,
        so ("Products",) finds keys tagged ("Products", "42").
        """
        result: set[CacheKey] = set()
        for tag in tags:
            if exact:
                result |= self._keys.get(tag, set())
                continue
            for indexed, keys in self._keys.items():
                if is_tag_prefix(tag, indexed):
                    result |= keys
        return result

    def tags_for(self, key: CacheKey) -> set[Tag]:
        return {tag for tag, keys in self._keys.items() if key in keys}

    def clear(self) -> None:
        self._keys.clear()

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, tag: object) -> bool:
        return tag in self._keys

    def _discard(self, tag: Tag, key: CacheKey) -> None:
        keys = self._keys.get(tag)
        if keys is None:
            return
        keys.discard(key)
        if not keys:
            del self._keys[tag]
