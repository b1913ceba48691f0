"""Core types for querysync."""

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, Literal, TypeVar

T = TypeVar("T")

# Ordered sequence of primitives and plain nested structures
QueryKey = Sequence[Any]

QueryStatus = Literal["idle", "pending", "success", "error"]
FetchStatus = Literal["idle", "fetching", "refetching"]

# Duration type alias
Duration = str | int | float  # "30s", "5m", "2h", "1d" or milliseconds

QueryFunction = Callable[[], Awaitable[T]]
ErrorCallback = Callable[[BaseException], None]
Listener = Callable[[], None]


@dataclass(frozen=True, slots=True)
class QueryOptions(Generic[T]):
    """Policy for a query as registered by a caller."""

    query_fn: QueryFunction[T]
    stale_time: Duration | None = None  # client default when None
    gc_time: Duration | None = None  # client default when None
    enabled: bool = True
    on_error: ErrorCallback | None = None


@dataclass(frozen=True, slots=True)
class ResolvedOptions(Generic[T]):
    """Options with client defaults applied and windows in milliseconds."""

    query_fn: QueryFunction[T]
    stale_time: float
    gc_time: float
    enabled: bool
    on_error: ErrorCallback | None


@dataclass(frozen=True, slots=True)
class QueryState(Generic[T]):
    """Read-only snapshot of a query entry."""

    key: tuple[Any, ...]
    identity: str
    data: T | None
    error: BaseException | None
    status: QueryStatus
    fetch_status: FetchStatus
    updated_at: float  # ms, 0 until first settlement
    invalidated: bool
    subscriber_count: int


@dataclass(frozen=True, slots=True)
class QueryResult(Generic[T]):
    """Derived view of a query for observers."""

    data: T | None
    error: BaseException | None
    status: QueryStatus
    is_pending: bool
    is_fetching: bool
    is_refetching: bool
