"""Listener bookkeeping and garbage-collection timers for query entries."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from querysync.duration import is_finite_window
from querysync.entry import QueryEntry
from querysync.types import Listener

logger = logging.getLogger(__name__)


class SubscriptionRegistry:
    """Adds and removes listeners, notifies them, and runs GC timers.

    ``evict`` is called with the entry when its GC timer fires. Entries
    without registered options use ``default_gc_time``.
    """

    def __init__(
        self, evict: Callable[[QueryEntry], None], *, default_gc_time: float
    ) -> None:
        self._evict = evict
        self._default_gc_time = default_gc_time

    def add(self, entry: QueryEntry, listener: Listener) -> None:
        entry.subscribers[listener] = None
        self.cancel_gc(entry)

    def remove(self, entry: QueryEntry, listener: Listener) -> None:
        if listener not in entry.subscribers:
            return
        del entry.subscribers[listener]
        if not entry.subscribers:
            self.schedule_gc(entry)

    def notify(self, entry: QueryEntry) -> None:
        """Call every listener, isolating failures.

        Iterates over a copy so listeners may subscribe or unsubscribe
        while being notified.
        """
        for listener in list(entry.subscribers):
            try:
                listener()
            except Exception:
                logger.exception("Query listener failed for %s", entry.identity)

    def cancel_gc(self, entry: QueryEntry) -> None:
        if entry.gc_handle is not None:
            entry.gc_handle.cancel()
            entry.gc_handle = None

    def refresh_gc(self, entry: QueryEntry) -> None:
        """Cancel a pending GC; unobserved entries get a fresh window."""
        if entry.subscribers:
            self.cancel_gc(entry)
        else:
            self.schedule_gc(entry)

    def schedule_gc(self, entry: QueryEntry) -> None:
        """Start (or restart) the eviction timer for an unobserved entry."""
        self.cancel_gc(entry)
        gc_time = (
            entry.options.gc_time
            if entry.options is not None
            else self._default_gc_time
        )
        if not is_finite_window(gc_time):
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "No running event loop, %s will not be garbage collected",
                entry.identity,
            )
            return
        entry.gc_handle = loop.call_later(gc_time / 1000, self._expire, entry)
        logger.debug("Scheduled GC for %s in %sms", entry.identity, gc_time)

    def _expire(self, entry: QueryEntry) -> None:
        entry.gc_handle = None
        # Settlement of an outstanding fetch starts a new window
        if entry.subscribers or entry.in_flight is not None:
            return
        logger.debug("Evicting %s", entry.identity)
        self._evict(entry)
