"""Tests for tag-driven invalidation."""

from typing import Any

import pytest
from helpers import FakeTransport, settle

from querytags import QueryClient, Snapshot, Status, TransportError, key_for

SHOES = {"search": "shoe"}


async def subscribed(
    client: QueryClient, seen: list[Snapshot[Any]], args: Any = SHOES, tags: Any = None
) -> Any:
    sub = client.subscribe(
        "get_products",
        args,
        seen.append,
        tags=tags if tags is not None else ["Products:LIST"],
    )
    await sub.ready()
    seen.clear()
    return sub


class TestInvalidate:
    """Tests for QueryClient.invalidate / the invalidation engine."""

    async def test_observed_entry_goes_stale_then_refetches(
        self, client: QueryClient, transport: FakeTransport
    ) -> None:
        """Test that an observed entry goes stale, then refetches."""
        versions = iter(["v1", "v2"])
        transport.fetch_handlers["get_products"] = lambda args: next(versions)
        seen: list[Snapshot[Any]] = []
        await subscribed(client, seen)

        keys = client.invalidate(["Products:LIST"])
        assert keys == {key_for("get_products", SHOES)}
        await settle()

        assert [s.status for s in seen] == [Status.STALE, Status.SUCCESS]
        assert seen[0].value == "v1"
        assert seen[1].value == "v2"
        assert transport.fetch_count() == 2

    async def test_unobserved_entry_only_marked_stale(
        self, client: QueryClient, transport: FakeTransport
    ) -> None:
        """Test that an unobserved entry is marked stale without fetching."""
        transport.fetch_handlers["get_products"] = "v1"
        await client.query("get_products", SHOES, tags=["Products:LIST"])
        await settle()
        count = transport.fetch_count()

        client.invalidate(["Products:LIST"])
        await settle()

        assert client.snapshot("get_products", SHOES).status is Status.STALE
        assert transport.fetch_count() == count

    async def test_stale_unobserved_entry_refetches_on_next_query(
        self, client: QueryClient, transport: FakeTransport
    ) -> None:
        """Test that the next query of a stale entry refetches it."""
        versions = iter(["v1", "v2"])
        transport.fetch_handlers["get_products"] = lambda args: next(versions)
        await client.query("get_products", SHOES, tags=["Products:LIST"])
        client.invalidate(["Products:LIST"])

        assert await client.query("get_products", SHOES, tags=["Products:LIST"]) == "v1"
        await settle()
        assert client.snapshot("get_products", SHOES).value == "v2"

    async def test_unknown_tag_is_noop(
        self, client: QueryClient, transport: FakeTransport
    ) -> None:
        """Test that invalidating an unknown tag changes nothing."""
        transport.fetch_handlers["get_products"] = "v1"
        seen: list[Snapshot[Any]] = []
        await subscribed(client, seen)

        assert client.invalidate(["Users"]) == set()
        await settle()

        assert seen == []
        assert client.snapshot("get_products", SHOES).status is Status.SUCCESS
        assert transport.fetch_count() == 1

    async def test_key_matching_several_tags_refetched_once(
        self, client: QueryClient, transport: FakeTransport
    ) -> None:
        """Test that a key matched by several tags refetches once."""
        transport.fetch_handlers["get_products"] = "v"
        seen: list[Snapshot[Any]] = []
        await subscribed(client, seen, tags=["Products:LIST", "Products:1"])

        client.invalidate(["Products:LIST", "Products:1"])
        await settle()
        assert transport.fetch_count() == 2

    async def test_parent_tag_matches_children(
        self, client: QueryClient, transport: FakeTransport
    ) -> None:
        """Test that a parent tag invalidates its children only."""
        transport.fetch_handlers["get_products"] = "v"
        transport.fetch_handlers["get_users"] = "u"
        await client.query("get_products", SHOES, tags=["Products:LIST"])
        await client.query("get_users", tags=["Users"])

        keys = client.invalidate(["Products"])
        assert keys == {key_for("get_products", SHOES)}
        assert client.snapshot("get_users").status is Status.SUCCESS

    async def test_exact_matching(
        self, client: QueryClient, transport: FakeTransport
    ) -> None:
        """Test that exact=True skips child tags."""
        transport.fetch_handlers["get_products"] = "v"
        await client.query("get_products", SHOES, tags=["Products:LIST"])
        assert client.invalidate(["Products"], exact=True) == set()
        assert client.invalidate(["Products:LIST"], exact=True) != set()

    async def test_tuple_of_tag_strings(
        self, client: QueryClient, transport: FakeTransport
    ) -> None:
        """Test that each string in a tags tuple is its own parsed tag."""
        transport.fetch_handlers["get_products"] = "v"
        await client.query("get_products", SHOES, tags=("Products:LIST", "Users"))
        assert client.invalidate(["Products:LIST"]) == {key_for("get_products", SHOES)}
        assert client.invalidate(("Users",)) == {key_for("get_products", SHOES)}

    async def test_invalidating_loading_entry_supersedes_fetch(
        self, client: QueryClient, transport: FakeTransport
    ) -> None:
        """Test that invalidating a loading entry supersedes its fetch."""
        transport.fetch_handlers["get_products"] = "v1"
        seen: list[Snapshot[Any]] = []
        await subscribed(client, seen)

        transport.manual = True
        client.invalidate(["Products:LIST"])  # fetch A, predates the write
        await settle()
        client.invalidate(["Products:LIST"])  # fetch B
        await settle()
        assert len(transport.waiting) == 2

        transport.waiting[1].set_result("after-write")
        await settle()
        transport.waiting[0].set_result("before-write")
        await settle()

        assert client.snapshot("get_products", SHOES).value == "after-write"
        assert [s.status for s in seen] == [Status.STALE, Status.SUCCESS]

    async def test_errored_observed_entry_retried(
        self, client: QueryClient, transport: FakeTransport
    ) -> None:
        """Test that invalidation retries an observed errored entry."""
        transport.fetch_handlers["get_products"] = "v1"
        seen: list[Snapshot[Any]] = []
        await subscribed(client, seen)

        transport.fetch_handlers["get_products"] = TransportError("down")
        with pytest.raises(TransportError):
            await client.refetch("get_products", SHOES)
        assert [s.status for s in seen] == [Status.ERROR]

        seen.clear()
        transport.fetch_handlers["get_products"] = "v2"
        client.invalidate(["Products:LIST"])
        await settle()

        assert [s.status for s in seen] == [Status.LOADING, Status.SUCCESS]
        assert seen[-1].value == "v2"
