"""Time-bounded, single-flight caches for bulk CRM collections.

Each CacheSlot owns one collection and moves through:

    EMPTY -> FETCHING -> FRESH -> (after ttl) STALE -> FETCHING -> FRESH ...

- A FRESH slot answers from memory without a network call.
- An EMPTY or STALE slot issues exactly one fetch; concurrent callers
  await that same fetch (single-flight).
- A failed fetch leaves the slot as it was and the error reaches only the
  callers awaiting that fetch; the next call retries.
- Readers never see partial writes: data and timestamp are replaced
  together once a fetch completes.

The clock and the fetch function are injected, so tests can drive expiry
with a fake clock and count fetches with a fake fetcher.

CrmCache groups the three slots the sidebar needs: companies, deal
stages and deals.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable, Generic, Iterable, TypeVar

import structlog

from src.sidebar.config import Settings, get_settings
from src.sidebar.crm.repository import CrmRepository
from src.sidebar.crm.schemas import Company, Deal, RecordKind, StatusOption

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]


class SlotState(str, Enum):
    """Lifecycle state of a cache slot."""

    EMPTY = "empty"
    FETCHING = "fetching"
    FRESH = "fresh"
    STALE = "stale"


class CacheSlot(Generic[T]):
    """One cached collection with its own time-to-live.

    Args:
        name: Slot name used in log events.
        fetch: Coroutine function producing a fresh value.
        ttl_seconds: Maximum age before the value is considered stale.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[T]],
        ttl_seconds: float,
        clock: Clock = time.monotonic,
    ) -> None:
        self.name = name
        self._fetch = fetch
        self._ttl = ttl_seconds
        self._clock = clock
        self._data: T | None = None
        self._fetched_at: float | None = None
        self._inflight: asyncio.Future[T] | None = None

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @property
    def fetched_at(self) -> float | None:
        return self._fetched_at

    @property
    def state(self) -> SlotState:
        if self._inflight is not None:
            return SlotState.FETCHING
        if self._fetched_at is None:
            return SlotState.EMPTY
        if self._is_fresh():
            return SlotState.FRESH
        return SlotState.STALE

    def _is_fresh(self) -> bool:
        return self._fetched_at is not None and self._clock() - self._fetched_at < self._ttl

    def peek(self) -> T | None:
        """Return the cached value regardless of age, without fetching."""
        return self._data

    async def get_or_refresh(self, force: bool = False) -> T:
        """Return the cached value, fetching it first if needed.

        Args:
            force: Fetch even if the cached value is still fresh. A fetch
                already in flight is allowed to finish first, since it may
                have been issued before the change that prompted the
                refresh.

        Returns:
            The cached or freshly fetched value.
        """
        if force and self._inflight is not None:
            try:
                await asyncio.shield(self._inflight)
            except Exception:
                logger.debug("cache.superseded_fetch_failed", slot=self.name)

        if not force and self._inflight is None and self._is_fresh():
            return self._data  # type: ignore[return-value]

        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._run_fetch())
        return await asyncio.shield(self._inflight)

    async def _run_fetch(self) -> T:
        logger.debug("cache.fetch_started", slot=self.name)
        try:
            data = await self._fetch()
        except Exception as exc:
            logger.warning("cache.fetch_failed", slot=self.name, error=str(exc))
            raise
        else:
            self._data = data
            self._fetched_at = self._clock()
            logger.debug("cache.fetch_completed", slot=self.name)
            return data
        finally:
            self._inflight = None


class CacheName(str, Enum):
    """Names of the CrmCache slots."""

    COMPANIES = "companies"
    DEAL_STAGES = "deal_stages"
    DEALS = "deals"


# Slots to force-refresh after a successful mutation of each record kind
REFRESH_ON_MUTATION: dict[RecordKind, tuple[CacheName, ...]] = {
    RecordKind.PERSON: (),
    RecordKind.COMPANY: (CacheName.COMPANIES,),
    RecordKind.DEAL: (CacheName.DEALS,),
}


class CrmCache:
    """Process-wide caches for the expensive CRM collections.

    Company list and deal-stage definitions change rarely and use long
    TTLs; the full deal set uses a short TTL so edits show up promptly.
    """

    def __init__(
        self,
        companies: CacheSlot[list[Company]],
        deal_stages: CacheSlot[list[StatusOption]],
        deals: CacheSlot[list[Deal]],
    ) -> None:
        self.companies = companies
        self.deal_stages = deal_stages
        self.deals = deals

    @classmethod
    def from_repository(
        cls,
        repository: CrmRepository,
        settings: Settings | None = None,
        clock: Clock = time.monotonic,
    ) -> CrmCache:
        settings = settings or get_settings()
        return cls(
            companies=CacheSlot(
                CacheName.COMPANIES.value,
                repository.list_companies,
                settings.COMPANIES_CACHE_TTL_SECONDS,
                clock,
            ),
            deal_stages=CacheSlot(
                CacheName.DEAL_STAGES.value,
                repository.list_deal_stages,
                settings.DEAL_STAGES_CACHE_TTL_SECONDS,
                clock,
            ),
            deals=CacheSlot(
                CacheName.DEALS.value,
                repository.list_deals,
                settings.DEALS_CACHE_TTL_SECONDS,
                clock,
            ),
        )

    def slot(self, name: CacheName) -> CacheSlot:
        return {
            CacheName.COMPANIES: self.companies,
            CacheName.DEAL_STAGES: self.deal_stages,
            CacheName.DEALS: self.deals,
        }[name]

    async def force_refresh(self, names: Iterable[CacheName]) -> None:
        """Refetch the named slots regardless of TTL.

        Failures are logged and leave the slot untouched; the next read
        retries.
        """
        names = list(names)
        results = await asyncio.gather(
            *(self.slot(name).get_or_refresh(force=True) for name in names),
            return_exceptions=True,
        )
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.warning("cache.force_refresh_failed", slot=name.value, error=str(result))
