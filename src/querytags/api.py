"""ApiSlice - declarative query and mutation endpoints over a QueryClient.

Provides:
- ApiSlice: Base class for grouping endpoints
- @query_endpoint(provides=...): Decorator for cached reads
- @mutation_endpoint(invalidates=...): Decorator for writes
- .client: The QueryClient every endpoint goes through
"""

from __future__ import annotations

import inspect
from typing import Any

from querytags.client import InvalidatesDecl, QueryClient, Subscription
from querytags.policy import QueryPolicy
from querytags.subscriptions import Observer
from querytags.types import Request, TagsDecl


class EndpointDescriptor:
    """Base descriptor: the decorated method builds the request."""

    def __init__(self, fn: Any) -> None:
        if inspect.iscoroutinefunction(fn):
            raise TypeError(
                f"Endpoint {fn.__name__}: the method builds request args and "
                "must not be async"
            )
        self._fn = fn
        self._name = fn.__name__
        self.__doc__ = fn.__doc__

    def __set_name__(self, owner: type, name: str) -> None:
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def build(self, api: ApiSlice, *args: Any, **kwargs: Any) -> Any:
        return self._fn(api, *args, **kwargs)


class QueryDescriptor(EndpointDescriptor):
    def __init__(
        self,
        fn: Any,
        provides: TagsDecl,
        policy: QueryPolicy | None,
    ) -> None:
        super().__init__(fn)
        self.provides = provides
        self.policy = policy

    def __get__(self, obj: Any, owner: type) -> Any:
        if obj is None:
            return self
        return BoundQuery(self, obj)


class MutationDescriptor(EndpointDescriptor):
    def __init__(self, fn: Any, invalidates: InvalidatesDecl) -> None:
        super().__init__(fn)
        self.invalidates = invalidates

    def __get__(self, obj: Any, owner: type) -> Any:
        if obj is None:
            return self
        return BoundMutation(self, obj)


class BoundQuery:
    """A query endpoint bound to an api instance."""

    __slots__ = ("_api", "_descriptor")

    def __init__(self, descriptor: QueryDescriptor, api: ApiSlice) -> None:
        self._descriptor = descriptor
        self._api = api

    @property
    def endpoint(self) -> str:
        return self._descriptor.name

    def args(self, *args: Any, **kwargs: Any) -> Any:
        """The request args this call would send (and be cached under)."""
        return self._descriptor.build(self._api, *args, **kwargs)

    async def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return await self._api.client.query(
            self.endpoint,
            self.args(*args, **kwargs),
            tags=self._descriptor.provides,
            policy=self._descriptor.policy,
        )

    def subscribe(
        self, observer: Observer | None, *args: Any, **kwargs: Any
    ) -> Subscription:
        return self._api.client.subscribe(
            self.endpoint,
            self.args(*args, **kwargs),
            observer,
            tags=self._descriptor.provides,
            policy=self._descriptor.policy,
        )

    def snapshot(self, *args: Any, **kwargs: Any) -> Any:
        return self._api.client.snapshot(self.endpoint, self.args(*args, **kwargs))


class BoundMutation:
    """A mutation endpoint bound to an api instance."""

    __slots__ = ("_api", "_descriptor")

    def __init__(self, descriptor: MutationDescriptor, api: ApiSlice) -> None:
        self._descriptor = descriptor
        self._api = api

    @property
    def endpoint(self) -> str:
        return self._descriptor.name

    async def __call__(self, *args: Any, **kwargs: Any) -> Any:
        request = self._descriptor.build(self._api, *args, **kwargs)
        if not isinstance(request, Request):
            raise TypeError(
                f"Mutation {self.endpoint} must return Request, "
                f"got {type(request).__name__}"
            )
        return await self._api.client.mutate(
            self.endpoint,
            request.args,
            request.body,
            invalidates=self._descriptor.invalidates,
        )


def query_endpoint(
    *,
    provides: TagsDecl = (),
    policy: QueryPolicy | None = None,
) -> Any:
    """Decorator for cached read endpoints.

    Usage:
        class ShopApi(ApiSlice):
            @query_endpoint(provides=["Products:LIST"])
            def get_products(self, search: str | None = None) -> dict | None:
                return {"search": search} if search else None

    The method returns the request args; the endpoint name is the method name.
    """

    def decorator(fn: Any) -> QueryDescriptor:
        return QueryDescriptor(fn, provides, policy)

    return decorator


def mutation_endpoint(*, invalidates: InvalidatesDecl = ()) -> Any:
    """Decorator for write endpoints.

    Usage:
        class ShopApi(ApiSlice):
            @mutation_endpoint(invalidates=["Products:LIST"])
            def create_product(self, product: dict) -> Request:
                return Request(body=product)

    ``invalidates`` may be a callable receiving (result, args).
    """

    def decorator(fn: Any) -> MutationDescriptor:
        return MutationDescriptor(fn, invalidates)

    return decorator


class ApiSlice:
    """Base class for a group of endpoints sharing one QueryClient.

    Usage:
        api = ShopApi(QueryClient(transport))
        products = await api.get_products("shoe")
        await api.create_product({"name": "Shoe B"})
    """

    def __init__(self, client: QueryClient) -> None:
        self._client = client

    @property
    def client(self) -> QueryClient:
        return self._client

    @classmethod
    def endpoints(cls) -> dict[str, EndpointDescriptor]:
        """All endpoint descriptors declared on the class, by name."""
        found: dict[str, EndpointDescriptor] = {}
        for klass in reversed(cls.__mro__):
            for name, attr in vars(klass).items():
                if isinstance(attr, EndpointDescriptor):
                    found[name] = attr
        return found


__all__ = ["ApiSlice", "mutation_endpoint", "query_endpoint"]
