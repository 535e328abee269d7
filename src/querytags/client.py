"""QueryClient - the owned facade over store, coordinator, invalidation and GC."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from types import TracebackType
from typing import Any

from querytags.coordinator import RequestCoordinator
from querytags.errors import TransportError
from querytags.gc import GarbageCollector
from querytags.invalidation import InvalidationEngine
from querytags.keys import key_for
from querytags.policy import DEFAULT_POLICY, QueryPolicy
from querytags.store import EntryStore
from querytags.subscriptions import Observer, SubscriptionHandle, SubscriptionRegistry
from querytags.tag_index import TagIndex
from querytags.transport import Transport
from querytags.types import (
    CacheKey,
    Duration,
    QueryRequest,
    Snapshot,
    Status,
    TagLike,
    TagsDecl,
)

logger = logging.getLogger(__name__)

InvalidatesDecl = Iterable[TagLike] | Callable[[Any, Any], Iterable[TagLike]]


class Subscription:
    """A live interest in one query. Release is guaranteed by ``with``.

    Usage:
        with client.subscribe("get_products", {"search": "shoe"}, print) as sub:
            snapshot = await sub.ready()
    """

    def __init__(
        self,
        client: QueryClient,
        handle: SubscriptionHandle,
        initial: asyncio.Task[Any],
    ) -> None:
        self._client = client
        self._handle = handle
        self._initial = initial
        self._closed = False

    @property
    def key(self) -> CacheKey:
        return self._handle.key

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def snapshot(self) -> Snapshot[Any]:
        """Current state of the watched entry."""
        return self._client.snapshot_for_key(self._handle.key)

    async def ready(self) -> Snapshot[Any]:
        """Wait for the initial query to settle. Never raises TransportError."""
        await asyncio.wait({self._initial})
        return self.snapshot

    def close(self) -> None:
        """Stop observing. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._client._release(self._handle)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"Subscription({self._handle.key!r}, {state})"


class QueryClient:
    """Tagged query cache bound to one transport.

    Usage:
        async with QueryClient(transport) as client:
            products = await client.query(
                "get_products", {"search": "shoe"}, tags=["Products:LIST"]
            )
            await client.mutate(
                "create_product", body={"name": "Shoe B"},
                invalidates=["Products:LIST"],
            )
    """

    def __init__(
        self,
        transport: Transport,
        *,
        default_policy: QueryPolicy | None = None,
        gc_interval: Duration = "5s",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._transport = transport
        self._clock = clock
        self._default_policy = default_policy or DEFAULT_POLICY
        self._registry = SubscriptionRegistry()
        self._store = EntryStore(
            TagIndex(),
            on_transition=self._registry.notify,
            clock=clock,
        )
        self._coordinator = RequestCoordinator(
            self._store,
            transport,
            default_policy=self._default_policy,
            clock=clock,
        )
        self._invalidation = InvalidationEngine(self._store, self._coordinator)
        self._gc = GarbageCollector(self._store, interval=gc_interval, clock=clock)
        self._initial_tasks: set[asyncio.Task[Any]] = set()

    @property
    def store(self) -> EntryStore:
        return self._store

    @property
    def gc(self) -> GarbageCollector:
        return self._gc

    @property
    def transport(self) -> Transport:
        return self._transport

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the garbage collector loop."""
        self._gc.start()

    async def close(self) -> None:
        """Stop background work, drop all entries and close the transport."""
        await self._gc.stop()
        for task in list(self._initial_tasks):
            task.cancel()
        if self._initial_tasks:
            await asyncio.gather(*self._initial_tasks, return_exceptions=True)
        await self._coordinator.close()
        self.clear()
        aclose = getattr(self._transport, "aclose", None)
        if aclose is not None:
            await aclose()

    async def __aenter__(self) -> QueryClient:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def clear(self) -> None:
        """Drop every entry and subscription."""
        self._registry.clear()
        self._store.clear()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def query(
        self,
        endpoint: str,
        args: Any = None,
        *,
        tags: TagsDecl = (),
        policy: QueryPolicy | None = None,
    ) -> Any:
        """Fetch through the cache.

        Args:
            endpoint: Endpoint name passed to the transport
            args: Request arguments (also part of the cache key)
            tags: Tags for the result, or a callable (value, args) -> tags
            policy: Overrides the client's default policy

        Returns:
            Cached or fresh data

        Raises:
            TransportError: the fetch failed and nothing could be served.
        """
        request = QueryRequest(endpoint=endpoint, args=args, tags=tags)
        try:
            return await self._coordinator.query(request, policy)
        finally:
            self._gc.collect(key_for(endpoint, args))

    def subscribe(
        self,
        endpoint: str,
        args: Any = None,
        observer: Observer | None = None,
        *,
        tags: TagsDecl = (),
        policy: QueryPolicy | None = None,
    ) -> Subscription:
        """Observe a query. Starts it in the background.

        ``observer`` receives a Snapshot on every visible transition of the
        entry until the subscription is closed.
        """
        request = QueryRequest(endpoint=endpoint, args=args, tags=tags)
        entry = self._coordinator.prepare(request, policy)
        self._store.retain(entry.key)
        handle = self._registry.subscribe(entry.key, observer or _ignore)

        task = asyncio.create_task(self._initial_query(request, policy))
        self._initial_tasks.add(task)
        task.add_done_callback(self._initial_tasks.discard)
        return Subscription(self, handle, task)

    async def _initial_query(
        self,
        request: QueryRequest,
        policy: QueryPolicy | None,
    ) -> None:
        try:
            await self._coordinator.query(request, policy)
        except TransportError as e:
            # Reported to observers through the entry's error status
            logger.debug("Initial query for %s failed: %s", request.endpoint, e)

    def _release(self, handle: SubscriptionHandle) -> None:
        # clear() already dropped the registration and the entry it retained;
        # a recreated entry under the same key holds no count for this handle
        if not self._registry.unsubscribe(handle):
            return
        if self._store.release(handle.key) is not None:
            self._gc.collect(handle.key)

    async def refetch(self, endpoint: str, args: Any = None) -> Any:
        """Refetch a known query in the foreground.

        Raises:
            KeyError: the query has no cache entry.
            TransportError: the fetch failed.
        """
        return await self._coordinator.refetch_now(key_for(endpoint, args))

    def snapshot(self, endpoint: str, args: Any = None) -> Snapshot[Any]:
        return self.snapshot_for_key(key_for(endpoint, args))

    def snapshot_for_key(self, key: CacheKey) -> Snapshot[Any]:
        entry = self._store.get(key)
        if entry is None:
            return Snapshot(key=key, status=Status.UNINITIALIZED)
        return self._store.snapshot(entry)

    # -------------------------------------------------------------------------
    # Mutations and invalidation
    # -------------------------------------------------------------------------

    async def mutate(
        self,
        endpoint: str,
        args: Any = None,
        body: Any = None,
        *,
        invalidates: InvalidatesDecl = (),
    ) -> Any:
        """Perform a write, then invalidate the declared tags.

        Invalidation only happens after the transport acknowledged the
        write; a failed mutation invalidates nothing.

        Raises:
            TransportError: the write failed.
        """
        try:
            result = await self._transport.mutate(endpoint, args, body)
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(str(e) or type(e).__name__, payload=e) from e
        tags = invalidates(result, args) if callable(invalidates) else invalidates
        self._invalidation.invalidate(tags)
        return result

    def invalidate(
        self,
        tags: Iterable[TagLike],
        *,
        exact: bool = False,
    ) -> set[CacheKey]:
        """Manually invalidate cache entries by tags."""
        return self._invalidation.invalidate(tags, exact=exact)


def _ignore(snapshot: Snapshot[Any]) -> None:
    pass
