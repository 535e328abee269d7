"""Per-query cache policy."""

from dataclasses import dataclass

from querytags.duration import parse_duration
from querytags.types import Duration


@dataclass(frozen=True, slots=True)
class QueryPolicy:
    """How a query treats cached data.

    Args:
        stale_time: How long a successful result is served without
            revalidation. The default of 0 revalidates on every query.
        retention_window: How long an unobserved entry survives before the
            garbage collector reclaims it.
        serve_stale_on_error: When a previous value exists, return it
            immediately and revalidate in the background. If the background
            fetch fails the old value keeps being served. When False, the
            refetch runs in the foreground and its error is surfaced.
    """

    stale_time: Duration = 0
    retention_window: Duration = "60s"
    serve_stale_on_error: bool = True

    def __post_init__(self) -> None:
        # Fail at construction rather than at first use
        parse_duration(self.stale_time)
        parse_duration(self.retention_window)

    @property
    def stale_seconds(self) -> float:
        return parse_duration(self.stale_time)

    @property
    def retention_seconds(self) -> float:
        return parse_duration(self.retention_window)


DEFAULT_POLICY = QueryPolicy()
