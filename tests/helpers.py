"""Test doubles shared across test modules."""

import asyncio
from typing import Any


class FakeTransport:
    """In-memory transport.

    ``fetch_handlers`` map endpoint -> value, exception, or callable(args).
    ``mutate_handlers`` map endpoint -> value, exception, or callable(args, body).
    With ``manual = True`` every fetch parks on a future in ``waiting`` until
    the test resolves it.
    """

    def __init__(self) -> None:
        self.fetch_handlers: dict[str, Any] = {}
        self.mutate_handlers: dict[str, Any] = {}
        self.fetches: list[tuple[str, Any]] = []
        self.mutations: list[tuple[str, Any, Any]] = []
        self.manual = False
        self.waiting: list[asyncio.Future[Any]] = []

    async def fetch(self, endpoint: str, args: Any) -> Any:
        self.fetches.append((endpoint, args))
        if self.manual:
            future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
            self.waiting.append(future)
            return await future
        return _respond(self.fetch_handlers[endpoint], args)

    async def mutate(self, endpoint: str, args: Any, body: Any) -> Any:
        self.mutations.append((endpoint, args, body))
        return _respond(self.mutate_handlers[endpoint], args, body)

    def fetch_count(self, endpoint: str | None = None) -> int:
        return len([f for f in self.fetches if endpoint is None or f[0] == endpoint])


def _respond(handler: Any, *args: Any) -> Any:
    result = handler(*args) if callable(handler) else handler
    if isinstance(result, BaseException):
        raise result
    return result


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def settle(rounds: int = 10) -> None:
    """Let background tasks run until they park or finish."""
    for _ in range(rounds):
        await asyncio.sleep(0)
