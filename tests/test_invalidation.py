"""Tests for query invalidation."""

import asyncio

import pytest

from querysync import QueryClient, QueryOptions

KEY = ("cash-register", "today")


class TestInvalidateQueries:
    """Tests for invalidate_queries."""

    async def test_subscribed_entry_refetches(
        self, client: QueryClient, counter
    ) -> None:
        """Test that invalidation refetches observed entries and waits."""
        fetch = counter()
        client.set_query_options(KEY, QueryOptions(fetch, stale_time="1h"))
        client.subscribe(KEY, lambda: None)
        await client.fetch_if_stale(KEY)

        await client.invalidate_queries(KEY)

        assert fetch.calls == 2
        state = client.get_query_state(KEY)
        assert state.data == 2
        assert state.invalidated is False
        assert state.fetch_status == "idle"

    async def test_unsubscribed_entry_only_flagged(
        self, client: QueryClient, counter
    ) -> None:
        """Test that unobserved entries refetch on next access only."""
        fetch = counter()
        client.set_query_options(KEY, QueryOptions(fetch, stale_time="1h"))
        await client.fetch_if_stale(KEY)

        await client.invalidate_queries(KEY)
        assert fetch.calls == 1
        assert client.get_query_state(KEY).invalidated is True

        await client.fetch_if_stale(KEY)
        assert fetch.calls == 2
        assert client.fetch_if_stale(KEY) is None
        assert fetch.calls == 2

    async def test_unknown_key_creates_flagged_entry(
        self, client: QueryClient
    ) -> None:
        """Test invalidating a key that has never been referenced."""
        await client.invalidate_queries(KEY)
        assert client.get_query_state(KEY).invalidated is True

    async def test_errors_not_raised(self, client: QueryClient, counter) -> None:
        """Test that a failing refetch is recorded but not raised."""
        errors = []
        client.set_query_options(
            KEY,
            QueryOptions(counter(error=OSError("offline")), on_error=errors.append),
        )
        client.subscribe(KEY, lambda: None)

        await client.invalidate_queries(KEY)

        assert client.get_query_state(KEY).status == "error"
        assert len(errors) == 1

    async def test_joins_fetch_in_flight(self, client: QueryClient, counter) -> None:
        """Test that invalidation awaits an outstanding fetch instead of starting one."""
        release = asyncio.Event()
        calls = 0

        async def fetch() -> int:
            nonlocal calls
            calls += 1
            await release.wait()
            return calls

        client.set_query_options(KEY, QueryOptions(fetch, stale_time="1h"))
        client.subscribe(KEY, lambda: None)
        client.fetch_if_stale(KEY)

        invalidation = asyncio.ensure_future(client.invalidate_queries(KEY))
        await asyncio.sleep(0)
        assert not invalidation.done()

        release.set()
        await invalidation
        assert calls == 1
        # Flag survives because the joined fetch started before invalidation
        assert client.get_query_state(KEY).invalidated is True

    async def test_prefix_invalidation(self, client: QueryClient, counter) -> None:
        """Test that exact=False invalidates every key under the prefix."""
        fetches = {
            ("bookings", 1): counter(),
            ("bookings", 2): counter(),
            ("clients", 1): counter(),
        }
        for key, fetch in fetches.items():
            client.set_query_options(key, QueryOptions(fetch, stale_time="1h"))
            client.subscribe(key, lambda: None)
            await client.fetch_if_stale(key)

        await client.invalidate_queries(("bookings",), exact=False)

        assert [fetch.calls for fetch in fetches.values()] == [2, 2, 1]
        assert ("bookings",) not in client

    async def test_prefix_invalidation_mixed_subscribers(
        self, client: QueryClient, counter
    ) -> None:
        """Test that only observed entries under the prefix refetch."""
        watched, idle = counter(), counter()
        client.set_query_options(("team", "a"), QueryOptions(watched, stale_time="1h"))
        client.set_query_options(("team", "b"), QueryOptions(idle, stale_time="1h"))
        client.subscribe(("team", "a"), lambda: None)
        await client.fetch_if_stale(("team", "a"))
        await client.fetch_if_stale(("team", "b"))

        await client.invalidate_queries(("team",), exact=False)

        assert (watched.calls, idle.calls) == (2, 1)
        assert client.get_query_state(("team", "b")).invalidated is True

    async def test_timed_out_invalidation_keeps_refetch(
        self, client: QueryClient
    ) -> None:
        """Test that abandoning invalidate_queries leaves the refetch running."""
        release = asyncio.Event()

        async def fetch() -> str:
            await release.wait()
            return "totals"

        client.set_query_options(KEY, QueryOptions(fetch))
        client.subscribe(KEY, lambda: None)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(client.invalidate_queries(KEY), timeout=0.01)
        assert client.get_query_state(KEY).fetch_status == "fetching"

        release.set()
        assert await client.fetch_if_stale(KEY) == "totals"
        assert client.get_query_state(KEY).status == "success"
