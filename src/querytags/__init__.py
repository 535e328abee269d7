"""querytags - tagged query cache with declarative invalidation."""

import logging

# API slices
from querytags.api import ApiSlice, mutation_endpoint, query_endpoint

# Client
from querytags.client import QueryClient, Subscription

# Errors
from querytags.errors import (
    InvalidTransition,
    QueryError,
    StaleServedWithBackgroundError,
    TransportError,
)

# Duration parsing
from querytags.duration import parse_duration
from querytags.keys import key_for
from querytags.policy import QueryPolicy
from querytags.tags import define_tags, deserialize_tag, serialize_tag

# Transport
from querytags.transport import HttpTransport, Route, Transport

# Core types
from querytags.types import (
    CacheEntry,
    CacheKey,
    Duration,
    Request,
    Snapshot,
    Status,
    Tag,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    "ApiSlice",
    "CacheEntry",
    "CacheKey",
    "Duration",
    "HttpTransport",
    "InvalidTransition",
    "QueryClient",
    "QueryError",
    "QueryPolicy",
    "Request",
    "Route",
    "Snapshot",
    "StaleServedWithBackgroundError",
    "Status",
    "Subscription",
    "Tag",
    "Transport",
    "TransportError",
    "define_tags",
    "deserialize_tag",
    "key_for",
    "mutation_endpoint",
    "parse_duration",
    "query_endpoint",
    "serialize_tag",
]
