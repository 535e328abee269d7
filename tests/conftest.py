"""Shared pytest fixtures."""

from collections.abc import AsyncIterator

import pytest
from helpers import FakeClock, FakeTransport

from querytags import QueryClient


@pytest.fixture
def transport() -> FakeTransport:
    """Create a fresh FakeTransport for each test."""
    return FakeTransport()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def client(transport: FakeTransport, clock: FakeClock) -> AsyncIterator[QueryClient]:
    """QueryClient over the fake transport; GC loop not started."""
    client = QueryClient(transport, clock=clock)
    yield client
    await client.close()
