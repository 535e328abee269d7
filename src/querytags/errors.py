"""Exceptions raised by the querytags cache."""

from typing import Any


class QueryError(Exception):
    """Base class for cache errors."""


class TransportError(QueryError):
    """A fetch or mutation failed in the transport.

    The payload is whatever the backend sent back; the cache never
    interprets it.
    """

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload

    def __repr__(self) -> str:
        return f"TransportError({self.message!r}, status={self.status})"


class InvalidTransition(QueryError):
    """An entry was asked to move to a status it cannot reach.

    Always a coordination bug, never a user error.
    """

    def __init__(self, key: str, current: str, requested: str) -> None:
        super().__init__(
            f"Illegal transition for {key!r}: {current} -> {requested}"
        )
        self.key = key
        self.current = current
        self.requested = requested


class StaleServedWithBackgroundError(QueryError):
    """Background revalidation failed while a stale value is still served.

    Only logged, never raised to callers.
    """

    def __init__(self, key: str, cause: BaseException) -> None:
        super().__init__(f"Revalidation of {key!r} failed, serving stale: {cause}")
        self.key = key
        self.cause = cause
