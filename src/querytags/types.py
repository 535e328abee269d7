"""Core types for the querytags cache."""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Generic,
    NewType,
    TypeVar,
)

T = TypeVar("T")

# Branded types - compile-time enforcement only
if TYPE_CHECKING:
    Tag = NewType("Tag", tuple[str, ...])
    CacheKey = NewType("CacheKey", str)
else:
    Tag = tuple
    CacheKey = str

# Anything accepted where a tag is expected: ("Products", "42") or "Products:42"
TagLike = tuple[str, ...] | str

# Tags declared by a result: a fixed set, or computed from (value, args)
TagsDecl = Iterable[TagLike] | Callable[[Any, Any], Iterable[TagLike]]

# Duration type alias
Duration = str | int | float  # "250ms", "30s", "5m" or seconds


class Status(str, Enum):
    """Lifecycle status of a cache entry."""

    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"
    STALE = "stale"


@dataclass(frozen=True, slots=True)
class QueryRequest:
    """What to fetch for a key, kept so the entry can be refetched later."""

    endpoint: str
    args: Any
    tags: TagsDecl = ()


@dataclass(slots=True)
class CacheEntry:
    """Mutable per-key record. Owned exclusively by the EntryStore."""

    key: CacheKey
    request: QueryRequest
    status: Status = Status.UNINITIALIZED
    value: Any = None
    has_value: bool = False
    error: BaseException | None = None
    tags: frozenset[Tag] = frozenset()
    subscriber_count: int = 0
    last_unsubscribed_at: float | None = None
    fetched_at: float | None = None
    in_flight_token: int | None = None
    retention: float = 0.0
    # Shared by every caller waiting on the current fetch attempt
    pending: Any = field(default=None, repr=False)


@dataclass(frozen=True, slots=True)
class Snapshot(Generic[T]):
    """What an observer sees after a transition."""

    key: CacheKey
    status: Status
    value: T | None = None
    error: BaseException | None = None


@dataclass(frozen=True, slots=True)
class Request:
    """Arguments and body for a mutation endpoint."""

    args: Any = None
    body: Any = None
