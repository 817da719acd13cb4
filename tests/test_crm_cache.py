"""Unit tests for CacheSlot and CrmCache.

Uses a fake clock and counting fetchers -- no network.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeClock

from src.sidebar.crm.cache import (
    REFRESH_ON_MUTATION,
    CacheName,
    CacheSlot,
    CrmCache,
    SlotState,
)
from src.sidebar.crm.repository import CrmRepository
from src.sidebar.crm.schemas import RecordKind


class _CountingFetcher:
    """Returns a new list per call; optionally blocks until released."""

    def __init__(self, gate: asyncio.Event | None = None, fail_first: int = 0) -> None:
        self.calls = 0
        self._gate = gate
        self._fail_first = fail_first

    async def __call__(self) -> list[int]:
        self.calls += 1
        if self._gate is not None:
            await self._gate.wait()
        if self.calls <= self._fail_first:
            raise RuntimeError(f"fetch {self.calls} failed")
        return [self.calls]


def _make_slot(fetch, clock: FakeClock, ttl: float = 60.0) -> CacheSlot:
    return CacheSlot("test", fetch, ttl, clock)


class TestCacheSlot:
    """Tests for the per-collection slot state machine."""

    @pytest.mark.asyncio
    async def test_empty_slot_fetches(self, fake_clock):
        fetch = _CountingFetcher()
        slot = _make_slot(fetch, fake_clock)
        assert slot.state == SlotState.EMPTY

        assert await slot.get_or_refresh() == [1]
        assert slot.state == SlotState.FRESH
        assert slot.fetched_at == fake_clock.now

    @pytest.mark.asyncio
    async def test_fresh_returns_same_object(self, fake_clock):
        """Within the TTL the cached value is returned without a fetch."""
        fetch = _CountingFetcher()
        slot = _make_slot(fetch, fake_clock)

        first = await slot.get_or_refresh()
        fake_clock.advance(59)
        second = await slot.get_or_refresh()

        assert second is first
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_refetch_after_expiry(self, fake_clock):
        fetch = _CountingFetcher()
        slot = _make_slot(fetch, fake_clock)

        await slot.get_or_refresh()
        fake_clock.advance(60)
        assert slot.state == SlotState.STALE

        assert await slot.get_or_refresh() == [2]
        assert fetch.calls == 2

    @pytest.mark.asyncio
    async def test_single_flight(self, fake_clock):
        """Concurrent callers on an empty slot share one fetch."""
        gate = asyncio.Event()
        fetch = _CountingFetcher(gate=gate)
        slot = _make_slot(fetch, fake_clock)

        waiters = [asyncio.ensure_future(slot.get_or_refresh()) for _ in range(5)]
        await asyncio.sleep(0)
        assert slot.state == SlotState.FETCHING
        gate.set()
        results = await asyncio.gather(*waiters)

        assert fetch.calls == 1
        assert all(result is results[0] for result in results)

    @pytest.mark.asyncio
    async def test_failure_not_cached(self, fake_clock):
        """A failed fetch leaves the slot empty and the next call retries."""
        fetch = _CountingFetcher(fail_first=1)
        slot = _make_slot(fetch, fake_clock)

        with pytest.raises(RuntimeError, match="fetch 1 failed"):
            await slot.get_or_refresh()
        assert slot.state == SlotState.EMPTY
        assert slot.peek() is None

        assert await slot.get_or_refresh() == [2]

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_value(self, fake_clock):
        """A failed refresh of a stale slot keeps the old value intact."""
        fetch = _CountingFetcher()
        slot = _make_slot(fetch, fake_clock)
        await slot.get_or_refresh()
        fetched_at = slot.fetched_at

        fetch._fail_first = 2
        fake_clock.advance(120)
        with pytest.raises(RuntimeError):
            await slot.get_or_refresh()

        assert slot.peek() == [1]
        assert slot.fetched_at == fetched_at

    @pytest.mark.asyncio
    async def test_force_refetches_fresh_slot(self, fake_clock):
        fetch = _CountingFetcher()
        slot = _make_slot(fetch, fake_clock)
        await slot.get_or_refresh()

        assert await slot.get_or_refresh(force=True) == [2]
        assert fetch.calls == 2

    @pytest.mark.asyncio
    async def test_force_waits_for_inflight(self, fake_clock):
        """A forced refresh lets the in-flight fetch finish, then fetches again."""
        gate = asyncio.Event()
        fetch = _CountingFetcher(gate=gate)
        slot = _make_slot(fetch, fake_clock)

        first = asyncio.ensure_future(slot.get_or_refresh())
        await asyncio.sleep(0)
        forced = asyncio.ensure_future(slot.get_or_refresh(force=True))
        await asyncio.sleep(0)
        gate.set()

        assert await first == [1]
        assert await forced == [2]
        assert fetch.calls == 2

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_fetch(self, fake_clock):
        """Cancelling one caller leaves the shared fetch running for the others."""
        gate = asyncio.Event()
        fetch = _CountingFetcher(gate=gate)
        slot = _make_slot(fetch, fake_clock)

        cancelled = asyncio.ensure_future(slot.get_or_refresh())
        survivor = asyncio.ensure_future(slot.get_or_refresh())
        await asyncio.sleep(0)
        cancelled.cancel()
        gate.set()

        assert await survivor == [1]
        assert fetch.calls == 1


class TestCrmCache:
    """Tests for the three-slot CrmCache."""

    def _make_repository(self) -> MagicMock:
        repo = MagicMock(spec=CrmRepository)
        repo.list_companies = AsyncMock(return_value=["acme"])
        repo.list_deal_stages = AsyncMock(return_value=["lead"])
        repo.list_deals = AsyncMock(return_value=["deal"])
        return repo

    @pytest.mark.asyncio
    async def test_slots_wired_to_repository(self, settings, fake_clock):
        repo = self._make_repository()
        cache = CrmCache.from_repository(repo, settings, fake_clock)

        assert await cache.companies.get_or_refresh() == ["acme"]
        assert await cache.deal_stages.get_or_refresh() == ["lead"]
        assert await cache.deals.get_or_refresh() == ["deal"]
        assert cache.companies.ttl_seconds == settings.COMPANIES_CACHE_TTL_SECONDS
        assert cache.deals.ttl_seconds == settings.DEALS_CACHE_TTL_SECONDS

    @pytest.mark.asyncio
    async def test_force_refresh_named_slots_only(self, settings, fake_clock):
        repo = self._make_repository()
        cache = CrmCache.from_repository(repo, settings, fake_clock)
        await cache.companies.get_or_refresh()
        await cache.deals.get_or_refresh()

        await cache.force_refresh(REFRESH_ON_MUTATION[RecordKind.DEAL])

        assert repo.list_deals.await_count == 2
        assert repo.list_companies.await_count == 1

    @pytest.mark.asyncio
    async def test_force_refresh_swallows_failures(self, settings, fake_clock):
        """A failed forced refresh is logged and leaves the old value."""
        repo = self._make_repository()
        cache = CrmCache.from_repository(repo, settings, fake_clock)
        await cache.companies.get_or_refresh()
        repo.list_companies.side_effect = RuntimeError("down")

        await cache.force_refresh([CacheName.COMPANIES])

        assert cache.companies.peek() == ["acme"]

    def test_person_mutation_refreshes_nothing(self):
        assert REFRESH_ON_MUTATION[RecordKind.PERSON] == ()
