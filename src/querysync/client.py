"""Query client: the registry of query entries and its only mutation surface."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar, cast

from querysync.duration import parse_duration
from querysync.entry import QueryEntry
from querysync.fetching import FetchOrchestrator
from querysync.keys import hash_query_key, is_query_key_prefix, normalize_query_key
from querysync.subscriptions import SubscriptionRegistry
from querysync.types import (
    Duration,
    Listener,
    QueryKey,
    QueryOptions,
    QueryState,
    ResolvedOptions,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_GC_TIME: Duration = "5m"


def _wall_clock() -> float:
    return time.time() * 1000


class QueryClient:
    """In-memory cache of asynchronously produced values.

    Usage:
        client = QueryClient(default_stale_time="30s")
        client.set_query_options(
            ("bookings", day), QueryOptions(query_fn=lambda: load(day))
        )
        unsubscribe = client.subscribe(("bookings", day), rerender)
        await client.fetch_if_stale(("bookings", day))
    """

    def __init__(
        self,
        *,
        default_stale_time: Duration = 0,
        default_gc_time: Duration = DEFAULT_GC_TIME,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._default_stale_time = parse_duration(default_stale_time)
        self._default_gc_time = parse_duration(default_gc_time)
        self._clock = clock or _wall_clock
        self._entries: dict[str, QueryEntry] = {}
        self._subscriptions = SubscriptionRegistry(
            self._remove, default_gc_time=self._default_gc_time
        )
        self._fetcher = FetchOrchestrator(self._subscriptions, self._clock)

    def __contains__(self, key: QueryKey) -> bool:
        return hash_query_key(key) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # -------------------------------------------------------------------------
    # Registry
    # -------------------------------------------------------------------------

    def _ensure(self, key: QueryKey, *, observed: bool = False) -> QueryEntry:
        identity = hash_query_key(key)
        entry = self._entries.get(identity)
        if entry is None:
            entry = QueryEntry(key=normalize_query_key(key), identity=identity)
            self._entries[identity] = entry
            # Unobserved entries are collected like unsubscribed ones
            if not observed:
                self._subscriptions.schedule_gc(entry)
        return entry

    def _remove(self, entry: QueryEntry) -> None:
        # Only drop the entry if it is still the registered one
        if self._entries.get(entry.identity) is entry:
            self._subscriptions.cancel_gc(entry)
            del self._entries[entry.identity]

    def _resolve(self, options: QueryOptions[T]) -> ResolvedOptions[T]:
        return ResolvedOptions(
            query_fn=options.query_fn,
            stale_time=(
                parse_duration(options.stale_time)
                if options.stale_time is not None
                else self._default_stale_time
            ),
            gc_time=(
                parse_duration(options.gc_time)
                if options.gc_time is not None
                else self._default_gc_time
            ),
            enabled=options.enabled,
            on_error=options.on_error,
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def set_query_options(self, key: QueryKey, options: QueryOptions[Any]) -> None:
        """Register or replace the policy for a key. Cached data is kept."""
        entry = self._ensure(key)
        entry.options = self._resolve(options)
        # Restart the window so a changed gc_time applies
        self._subscriptions.refresh_gc(entry)

    def get_query_state(self, key: QueryKey) -> QueryState[Any] | None:
        """Snapshot of the entry for key, or None if there is none."""
        entry = self._entries.get(hash_query_key(key))
        if entry is None:
            return None
        return entry.snapshot()

    def get_query_data(self, key: QueryKey) -> Any | None:
        entry = self._entries.get(hash_query_key(key))
        if entry is None:
            return None
        return entry.data

    def set_query_data(self, key: QueryKey, updater: T | Callable[[Any], T]) -> T:
        """Write data directly, as if a fetch had just succeeded.

        ``updater`` is either the new value or a function receiving the
        current data (None when absent) and returning the new value. Any
        callable is treated as an updater, so functions and classes cannot
        be stored directly; wrap them, e.g. ``lambda _: handler``.
        """
        entry = self._ensure(key)
        if callable(updater):
            value = cast(Callable[[Any], T], updater)(entry.data)
        else:
            value = updater

        entry.data = value
        entry.error = None
        entry.status = "success"
        if entry.in_flight is None:
            entry.fetch_status = "idle"
        entry.updated_at = self._clock()
        entry.invalidated = False
        self._subscriptions.refresh_gc(entry)
        self._subscriptions.notify(entry)
        return value

    def subscribe(self, key: QueryKey, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns an idempotent unsubscribe function."""
        entry = self._ensure(key, observed=True)
        self._subscriptions.add(entry, listener)
        active = True

        def unsubscribe() -> None:
            nonlocal active
            if not active:
                return
            active = False
            self._subscriptions.remove(entry, listener)

        return unsubscribe

    def fetch_if_stale(self, key: QueryKey) -> asyncio.Future[Any] | None:
        """Fetch unless the cached value is still fresh.

        Returns a handle on the in-flight fetch (new or already running) or
        None. Cancelling the handle does not cancel the shared fetch.
        """
        return self._fetcher.fetch(self._ensure(key), force=False)

    def force_fetch(self, key: QueryKey) -> asyncio.Future[Any] | None:
        """Fetch regardless of staleness; joins a fetch already in flight."""
        return self._fetcher.fetch(self._ensure(key), force=True)

    async def invalidate_queries(self, key: QueryKey, *, exact: bool = True) -> None:
        """Mark queries stale and refetch the ones that are being observed.

        With exact=False every registered key starting with ``key`` is
        invalidated, e.g. ``("bookings",)`` matches ``("bookings", 3)``.
        Producer errors are recorded on the entries, not raised here.
        """
        if exact:
            entries = [self._ensure(key)]
        else:
            entries = [
                entry
                for entry in list(self._entries.values())
                if is_query_key_prefix(key, entry.key)
            ]

        tasks = []
        for entry in entries:
            entry.invalidated = True
            if not entry.has_subscribers:
                continue
            task = self._fetcher.fetch(entry, force=False)
            if task is not None:
                tasks.append(task)

        if tasks:
            logger.debug("Awaiting %d refetches after invalidation", len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)

    def clear(self) -> None:
        """Drop every entry and cancel all GC timers without notifying."""
        for entry in self._entries.values():
            self._subscriptions.cancel_gc(entry)
        self._entries.clear()
