"""QueryObserver - binds one query to a change callback."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from querysync.client import QueryClient
from querysync.types import QueryKey, QueryOptions, QueryResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


class QueryObserver(Generic[T]):
    """Keeps a query registered, subscribed and fetched while mounted.

    Usage:
        observer = QueryObserver(client, ("clients",), QueryOptions(load_clients))
        with observer:
            render(observer.result)

    ``on_change`` receives the derived QueryResult every time the entry
    changes.
    """

    def __init__(
        self,
        client: QueryClient,
        key: QueryKey,
        options: QueryOptions[T],
        on_change: Callable[[QueryResult[T]], None] | None = None,
    ) -> None:
        self._client = client
        self._key = key
        self._options = options
        self._on_change = on_change
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def key(self) -> QueryKey:
        return self._key

    @property
    def is_mounted(self) -> bool:
        return self._unsubscribe is not None

    @property
    def result(self) -> QueryResult[T]:
        state = self._client.get_query_state(self._key)
        if state is None:
            return QueryResult(
                data=None,
                error=None,
                status="idle",
                is_pending=True,
                is_fetching=False,
                is_refetching=False,
            )
        return QueryResult(
            data=state.data,
            error=state.error,
            status=state.status,
            is_pending=state.status in ("idle", "pending") and state.data is None,
            is_fetching=state.fetch_status != "idle",
            is_refetching=state.fetch_status == "refetching",
        )

    def mount(self) -> None:
        """Register options, subscribe and fetch if the data is stale."""
        if self.is_mounted:
            return
        self._client.set_query_options(self._key, self._options)
        self._unsubscribe = self._client.subscribe(self._key, self._handle_change)
        if self._options.enabled:
            self._client.fetch_if_stale(self._key)

    def unmount(self) -> None:
        if self._unsubscribe is None:
            return
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        unsubscribe()

    def set_options(self, options: QueryOptions[T]) -> None:
        """Replace the options, refetching if stale when mounted."""
        self._options = options
        self._client.set_query_options(self._key, options)
        if self.is_mounted and options.enabled:
            self._client.fetch_if_stale(self._key)

    async def refetch(self) -> T | None:
        """Force a fetch and return its data.

        Returns the cached data if no fetch was started, and None if the
        fetch failed (the error is available on ``result``).
        """
        task = self._client.force_fetch(self._key)
        if task is None:
            return self._client.get_query_data(self._key)
        try:
            return await task
        except Exception:
            logger.debug("Refetch failed for %r", self._key, exc_info=True)
            return None

    def _handle_change(self) -> None:
        if self._on_change is not None:
            self._on_change(self.result)

    def __enter__(self) -> QueryObserver[T]:
        self.mount()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.unmount()
