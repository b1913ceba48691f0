"""Fetch orchestration: staleness decisions and in-flight deduplication."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from functools import partial
from typing import Any

from querysync.entry import QueryEntry
from querysync.subscriptions import SubscriptionRegistry
from querysync.types import ResolvedOptions

logger = logging.getLogger(__name__)


def should_fetch(entry: QueryEntry, force: bool, now: float) -> bool:
    """Decide whether a new producer invocation should start.

    ``force`` bypasses the ``enabled`` flag and the staleness check but never
    the in-flight rule: at most one fetch per entry runs at a time.
    """
    options = entry.options
    if options is None:
        return False
    if not force and not options.enabled:
        return False
    if entry.in_flight is not None:
        return False
    if force:
        return True
    if entry.status != "success":
        return True
    if entry.invalidated:
        return True
    return now - entry.updated_at >= options.stale_time


def _retrieve_exception(future: asyncio.Future[Any]) -> None:
    # Outcome is stored on the entry; mark it retrieved for
    # fire-and-forget callers
    if not future.cancelled():
        future.exception()


def _join(task: asyncio.Task[Any]) -> asyncio.Future[Any]:
    """Wrap the shared task so a cancelled caller cannot cancel it."""
    waiter = asyncio.shield(task)
    waiter.add_done_callback(_retrieve_exception)
    return waiter


class FetchOrchestrator:
    """Starts producer invocations and writes their outcome into entries."""

    def __init__(
        self,
        subscriptions: SubscriptionRegistry,
        clock: Callable[[], float],
    ) -> None:
        self._subscriptions = subscriptions
        self._clock = clock

    def fetch(self, entry: QueryEntry, force: bool) -> asyncio.Future[Any] | None:
        """Start a fetch if needed.

        Returns a shielded handle on the outstanding fetch, or None when
        nothing is in flight. Every handle resolves with the same producer
        result; cancelling one leaves the fetch running for the others.
        """
        if entry.options is None:
            logger.debug("No options registered for %s, not fetching", entry.identity)
            return None

        if not should_fetch(entry, force, self._clock()):
            if entry.in_flight is None:
                return None
            return _join(entry.in_flight)

        options = entry.options
        entry.invalidated = False
        if entry.status == "success":
            entry.fetch_status = "refetching"
        else:
            entry.fetch_status = "fetching"
            entry.status = "pending"

        task = asyncio.create_task(self._run(entry, options))
        task.add_done_callback(partial(self._finish, entry))
        entry.in_flight = task
        logger.debug("Started %s for %s", entry.fetch_status, entry.identity)
        # in_flight is set first so reentrant listeners join this task
        self._subscriptions.notify(entry)
        return _join(task)

    async def _run(self, entry: QueryEntry, options: ResolvedOptions[Any]) -> Any:
        try:
            data = await options.query_fn()
        except Exception as exc:
            self._settle_error(entry, exc)
            # options may have been re-registered while the fetch ran
            on_error = entry.options.on_error if entry.options else None
            if on_error is not None:
                try:
                    on_error(exc)
                except Exception:
                    logger.exception("on_error callback failed for %s", entry.identity)
            raise

        self._settle_success(entry, data)
        return data

    def _settle_success(self, entry: QueryEntry, data: Any) -> None:
        entry.data = data
        entry.error = None
        entry.status = "success"
        entry.fetch_status = "idle"
        entry.updated_at = self._clock()
        entry.in_flight = None
        self._subscriptions.refresh_gc(entry)
        logger.debug("Fetched %s", entry.identity)
        self._subscriptions.notify(entry)

    def _settle_error(self, entry: QueryEntry, error: BaseException) -> None:
        entry.error = error
        entry.status = "error"
        entry.fetch_status = "idle"
        entry.updated_at = self._clock()
        entry.in_flight = None
        self._subscriptions.refresh_gc(entry)
        logger.debug("Fetch failed for %s: %r", entry.identity, error)
        self._subscriptions.notify(entry)

    def _finish(self, entry: QueryEntry, task: asyncio.Task[Any]) -> None:
        if not task.cancelled():
            _retrieve_exception(task)
            return
        if entry.in_flight is task:
            entry.in_flight = None
            entry.fetch_status = "idle"
            self._subscriptions.refresh_gc(entry)
            logger.debug("Fetch cancelled for %s", entry.identity)
            self._subscriptions.notify(entry)
