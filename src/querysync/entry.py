"""Per-key query state container."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from querysync.types import (
    FetchStatus,
    Listener,
    QueryState,
    QueryStatus,
    ResolvedOptions,
)


@dataclass(slots=True, eq=False)
class QueryEntry:
    """Mutable state for one canonical query key.

    Only the owning QueryClient writes to an entry. ``in_flight`` and
    ``gc_handle`` are internal handles and never appear in snapshots.
    """

    key: tuple[Any, ...]
    identity: str
    data: Any = None
    error: BaseException | None = None
    status: QueryStatus = "idle"
    fetch_status: FetchStatus = "idle"
    updated_at: float = 0
    in_flight: asyncio.Task[Any] | None = None
    # dict keeps insertion order for notification
    subscribers: dict[Listener, None] = field(default_factory=dict)
    options: ResolvedOptions[Any] | None = None
    invalidated: bool = False
    gc_handle: asyncio.TimerHandle | None = None

    @property
    def has_subscribers(self) -> bool:
        return bool(self.subscribers)

    def snapshot(self) -> QueryState[Any]:
        """Return an immutable view of the current state."""
        return QueryState(
            key=self.key,
            identity=self.identity,
            data=self.data,
            error=self.error,
            status=self.status,
            fetch_status=self.fetch_status,
            updated_at=self.updated_at,
            invalidated=self.invalidated,
            subscriber_count=len(self.subscribers),
        )
