"""Transport collaborator: the only place the cache touches the network."""

from __future__ import annotations

import os
import string
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import httpx

from querytags.errors import TransportError

DEFAULT_BASE_URL = "http://127.0.0.1:8000"
BASE_URL_ENV_VARS = ("INVENTORY_API_URL", "API_BASE_URL")


@runtime_checkable
class Transport(Protocol):
    """Async transport interface. Calls are independent and retryable."""

    async def fetch(self, endpoint: str, args: Any) -> Any:
        """Read ``endpoint`` with ``args``. Raises TransportError on failure."""
        ...

    async def mutate(self, endpoint: str, args: Any, body: Any) -> Any:
        """Write ``body`` to ``endpoint``. Raises TransportError on failure."""
        ...


@dataclass(frozen=True, slots=True)
class Route:
    """HTTP method and path template for one endpoint."""

    method: str
    path: str

    @property
    def placeholders(self) -> tuple[str, ...]:
        return tuple(
            name
            for _, name, _, _ in string.Formatter().parse(self.path)
            if name is not None
        )


class HttpTransport:
    """JSON-over-HTTP transport on top of httpx.

    ``routes`` maps endpoint names to a Route. Path placeholders are filled
    from mapping args, any remaining non-None args become query params.
    """

    def __init__(
        self,
        base_url: str,
        routes: Mapping[str, Route],
        *,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._routes = dict(routes)
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )

    @classmethod
    def from_env(
        cls,
        routes: Mapping[str, Route],
        *,
        timeout: float = 30.0,
    ) -> HttpTransport:
        """Build a transport whose base URL comes from the environment."""
        base_url = next(
            (os.environ[name] for name in BASE_URL_ENV_VARS if os.environ.get(name)),
            DEFAULT_BASE_URL,
        )
        return cls(base_url, routes, timeout=timeout)

    def _build(self, endpoint: str, args: Any) -> tuple[Route, str, dict[str, Any]]:
        try:
            route = self._routes[endpoint]
        except KeyError:
            raise TransportError(f"Unknown endpoint: {endpoint!r}") from None

        params: dict[str, Any] = {}
        if isinstance(args, Mapping):
            params = {k: v for k, v in args.items() if v is not None}
        elif args is not None:
            # Scalar args fill a single placeholder, like /products/{id}
            names = route.placeholders
            if len(names) != 1:
                raise TransportError(
                    f"Endpoint {endpoint!r} needs mapping args, got {args!r}"
                )
            params = {names[0]: args}

        try:
            path = route.path.format(**params)
        except KeyError as e:
            raise TransportError(
                f"Missing path argument {e.args[0]!r} for {endpoint!r}"
            ) from None
        for name in route.placeholders:
            params.pop(name, None)
        return route, path, params

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method,
                path,
                params=params or None,
                json=body,
            )
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        if not response.is_success:
            try:
                payload = response.json()
            except ValueError:
                payload = response.text
            message = f"HTTP {response.status_code}"
            if isinstance(payload, dict):
                message = payload.get("error") or payload.get("message") or message
            raise TransportError(
                str(message), status=response.status_code, payload=payload
            )

        if not response.content:
            return None
        return response.json()

    async def fetch(self, endpoint: str, args: Any) -> Any:
        route, path, params = self._build(endpoint, args)
        return await self._request(route.method, path, params=params)

    async def mutate(self, endpoint: str, args: Any, body: Any) -> Any:
        route, path, params = self._build(endpoint, args)
        return await self._request(route.method, path, params=params, body=body)

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
