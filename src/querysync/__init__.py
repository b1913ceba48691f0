"""querysync - Reactive query cache with deduplicated fetching for asyncio."""

from querysync.client import QueryClient

# Duration parsing
from querysync.duration import parse_duration

# Key codec
from querysync.keys import hash_query_key, is_query_key_prefix, normalize_query_key
from querysync.observer import QueryObserver

# Core types
from querysync.types import (
    Duration,
    FetchStatus,
    QueryKey,
    QueryOptions,
    QueryResult,
    QueryState,
    QueryStatus,
)

__version__ = "0.1.0"

__all__ = [
    "Duration",
    "FetchStatus",
    "QueryClient",
    "QueryKey",
    "QueryObserver",
    "QueryOptions",
    "QueryResult",
    "QueryState",
    "QueryStatus",
    "hash_query_key",
    "is_query_key_prefix",
    "normalize_query_key",
    "parse_duration",
]
