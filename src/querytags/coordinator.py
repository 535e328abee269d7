"""Request coordinator - serve cached, join in-flight, or start a fetch.

At most one fetch is current per key. Every fetch attempt is stamped with a
token; a completion whose token no longer matches the entry was superseded
and its result is dropped.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections.abc import Callable
from typing import Any

from querytags.errors import StaleServedWithBackgroundError, TransportError
from querytags.keys import key_for
from querytags.policy import DEFAULT_POLICY, QueryPolicy
from querytags.store import EntryStore
from querytags.tags import to_tags
from querytags.transport import Transport
from querytags.types import CacheEntry, CacheKey, QueryRequest, Status, Tag

logger = logging.getLogger(__name__)


def resolve_tags(request: QueryRequest, value: Any) -> frozenset[Tag]:
    """Evaluate the tags a result declares."""
    if callable(request.tags):
        return to_tags(request.tags(value, request.args))
    return to_tags(request.tags)


def _consume_exception(future: asyncio.Future[Any]) -> None:
    # Nobody may be waiting; mark the exception as retrieved
    if not future.cancelled():
        future.exception()


class RequestCoordinator:
    """Decides per query whether to hit the cache, wait, or fetch."""

    def __init__(
        self,
        store: EntryStore,
        transport: Transport,
        *,
        default_policy: QueryPolicy = DEFAULT_POLICY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._transport = transport
        self._default_policy = default_policy
        self._clock = clock
        self._tokens = itertools.count(1)
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def default_policy(self) -> QueryPolicy:
        return self._default_policy

    def prepare(
        self,
        request: QueryRequest,
        policy: QueryPolicy | None = None,
    ) -> CacheEntry:
        """Get or create the entry for ``request`` and record its policy."""
        policy = policy or self._default_policy
        key = key_for(request.endpoint, request.args)
        entry = self._store.get_or_create(key, request)
        # The latest caller's tag declaration drives refetches
        entry.request = request
        entry.retention = max(entry.retention, policy.retention_seconds)
        return entry

    async def query(
        self,
        request: QueryRequest,
        policy: QueryPolicy | None = None,
    ) -> Any:
        """Return the value for ``request``, fetching only when needed.

        Raises:
            TransportError: the fetch failed and no value could be served.
        """
        policy = policy or self._default_policy
        entry = self.prepare(request, policy)
        try:
            return await self._resolve(entry, policy)
        finally:
            self._store.touch(entry.key)

    async def _resolve(self, entry: CacheEntry, policy: QueryPolicy) -> Any:
        serve_stale = entry.has_value and policy.serve_stale_on_error

        if entry.status is Status.SUCCESS and entry.fetched_at is not None:
            if self._clock() - entry.fetched_at < policy.stale_seconds:
                logger.debug("Cache hit %s", entry.key)
                return entry.value

        if entry.status is Status.LOADING:
            if serve_stale:
                return entry.value
            logger.debug("Joining in-flight fetch for %s", entry.key)
            return await asyncio.shield(entry.pending)

        if serve_stale:
            # Stale-while-revalidate
            self._start_fetch(entry, background=True)
            return entry.value

        return await asyncio.shield(self._start_fetch(entry, background=False))

    def refetch(self, key: CacheKey) -> asyncio.Future[Any] | None:
        """Start a background revalidation for ``key``, superseding any
        in-flight fetch. Returns the future callers can wait on."""
        entry = self._store.get(key)
        if entry is None:
            return None
        return self._start_fetch(entry, background=True)

    async def refetch_now(self, key: CacheKey) -> Any:
        """Foreground refetch: errors surface to the caller."""
        entry = self._store.get(key)
        if entry is None:
            raise KeyError(key)
        return await asyncio.shield(self._start_fetch(entry, background=False))

    def _start_fetch(
        self,
        entry: CacheEntry,
        *,
        background: bool,
    ) -> asyncio.Future[Any]:
        self._store.transition(entry.key, Status.LOADING)
        token = next(self._tokens)
        entry.in_flight_token = token

        # Superseding fetches share the waiters of the one they replace
        if entry.pending is None or entry.pending.done():
            entry.pending = asyncio.get_running_loop().create_future()
            entry.pending.add_done_callback(_consume_exception)
        pending: asyncio.Future[Any] = entry.pending

        task = asyncio.create_task(
            self._run_fetch(entry.key, token, entry.request, pending, background)
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return pending

    async def _run_fetch(
        self,
        key: CacheKey,
        token: int,
        request: QueryRequest,
        pending: asyncio.Future[Any],
        background: bool,
    ) -> None:
        logger.debug("Fetching %s (token %d)", key, token)
        try:
            try:
                value = await self._transport.fetch(request.endpoint, request.args)
            except asyncio.CancelledError:
                if self._is_current(key, token) and not pending.done():
                    pending.cancel()
                raise
            except TransportError as e:
                self._fail(key, token, pending, e, background)
                return
            except Exception as e:
                error = TransportError(str(e) or type(e).__name__, payload=e)
                error.__cause__ = e
                self._fail(key, token, pending, error, background)
                return
            self._succeed(key, token, request, pending, value, background)
        except Exception as e:
            # Internal failure (bad transition, tag callable): never leave
            # waiters hanging, then let the task report it
            if not pending.done():
                pending.set_exception(e)
            raise

    def _is_current(self, key: CacheKey, token: int) -> bool:
        entry = self._store.get(key)
        return entry is None or entry.in_flight_token == token

    def _succeed(
        self,
        key: CacheKey,
        token: int,
        request: QueryRequest,
        pending: asyncio.Future[Any],
        value: Any,
        background: bool,
    ) -> None:
        entry = self._store.get(key)
        if entry is None:
            logger.debug("Entry %s collected during fetch, result dropped", key)
            if not pending.done():
                pending.set_result(value)
            return
        if entry.in_flight_token != token:
            logger.debug(
                "Discarding superseded result for %s (token %d, current %s)",
                key,
                token,
                entry.in_flight_token,
            )
            # The key was collected and recreated mid-fetch: nothing else
            # will settle the waiters of this attempt
            if entry.pending is not pending and not pending.done():
                pending.set_result(value)
            return

        try:
            tags = resolve_tags(request, value)
        except Exception as e:
            logger.exception("Tag declaration for %s raised", key)
            error = TransportError(
                f"Tag declaration for {request.endpoint} failed: {e!r}", payload=e
            )
            error.__cause__ = e
            self._fail(key, token, pending, error, background)
            return
        entry.in_flight_token = None
        entry.pending = None
        self._store.transition(key, Status.SUCCESS, value=value, tags=tags)
        if not pending.done():
            pending.set_result(value)

    def _fail(
        self,
        key: CacheKey,
        token: int,
        pending: asyncio.Future[Any],
        error: TransportError,
        background: bool,
    ) -> None:
        entry = self._store.get(key)
        if entry is None:
            if not pending.done():
                pending.set_exception(error)
            return
        if entry.in_flight_token != token:
            logger.debug("Discarding superseded failure for %s: %s", key, error)
            if entry.pending is not pending and not pending.done():
                pending.set_exception(error)
            return

        entry.in_flight_token = None
        entry.pending = None
        if background and entry.has_value:
            self._store.transition(key, Status.STALE)
            logger.warning("%s", StaleServedWithBackgroundError(key, error))
        else:
            self._store.transition(key, Status.ERROR, error=error)
        if not pending.done():
            pending.set_exception(error)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Fetch task failed", exc_info=exc)

    async def close(self) -> None:
        """Cancel outstanding fetches and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
