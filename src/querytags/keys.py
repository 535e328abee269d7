"""Signature codec: (endpoint, args) -> stable cache key."""

import dataclasses
import json
from collections.abc import Mapping
from typing import Any

from querytags.types import CacheKey

_TYPED_KEYS = "\x00items"


def _sort_key(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def _normalize(value: Any) -> Any:
    """Reduce args to JSON-able values with a canonical ordering."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _normalize(dataclasses.asdict(value))
    if isinstance(value, Mapping):
        if all(isinstance(k, str) for k in value):
            return {k: _normalize(v) for k, v in value.items()}
        # Non-string keys keep their JSON type
        pairs = [[_normalize(k), _normalize(v)] for k, v in value.items()]
        return {_TYPED_KEYS: sorted(pairs, key=_sort_key)}
    if isinstance(value, (set, frozenset)):
        items = [_normalize(v) for v in value]
        return sorted(items, key=_sort_key)
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value


def key_for(endpoint: str, args: Any = None) -> CacheKey:
    """Build the cache key for a request.

    Equal args give equal keys regardless of dict ordering or container
    identity. Absent args (None) render as ``endpoint(undefined)``.
    """
    if args is None:
        return CacheKey(f"{endpoint}(undefined)")
    encoded = json.dumps(
        _normalize(args),
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return CacheKey(f"{endpoint}({encoded})")
