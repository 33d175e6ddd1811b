"""TTL cache of last-known-good result sets with stale-while-revalidate."""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

import structlog

from ..framework.config import CacheConfig
from ..framework.metrics import SyncMetrics
from ..schemas.models import CacheEntry
from ..storage.kv_store import KeyValueStore, InMemoryKeyValueStore
from ..utils.errors import FetchError
from .notifications import NotificationCenter

Loader = Callable[[], Awaitable[Any]]
RefreshCallback = Callable[[CacheEntry], None]


@dataclass
class CacheResult:
    """Outcome of a cache-aware fetch."""
    payload: Any
    stale: bool
    age: float
    source: str
    warning: Optional[str] = None
    refreshing: bool = False


def format_age(seconds: float) -> str:
    """Human readable age, e.g. ``"3 minutes"``."""
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds} second{'s' if seconds != 1 else ''}"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    hours = minutes // 60
    return f"{hours} hour{'s' if hours != 1 else ''}"


class CacheLayer:
    """
    Keyed storage of result-set snapshots with staleness detection.

    At most one entry exists per key and it is only ever replaced wholesale.
    Entries are never evicted by the layer itself; the backing store decides
    physical retention.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        store: Optional[KeyValueStore] = None,
        clock: Callable[[], float] = time.time,
        notifications: Optional[NotificationCenter] = None,
        metrics: Optional[SyncMetrics] = None,
    ):
        self.config = config or CacheConfig()
        self.clock = clock
        self.store = store if store is not None else InMemoryKeyValueStore(clock=clock)
        self.notifications = notifications
        self.metrics = metrics
        self.logger = structlog.get_logger("cache-layer")
        self.running_refreshes: Dict[str, asyncio.Task] = {}
        self.cache_stats = {
            "hits": 0,
            "stale_hits": 0,
            "misses": 0,
            "puts": 0,
            "refreshes": 0,
            "refresh_failures": 0,
        }

    def _store_key(self, key: str) -> str:
        return f"{self.config.namespace}:entry:{key}"

    async def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for ``key`` regardless of age."""
        raw = await self.store.get(self._store_key(key))
        if raw is None:
            return None
        try:
            return CacheEntry.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            self.logger.warning("Ignoring unreadable cache entry", key=key, error=str(e))
            return None

    async def put(self, key: str, payload: Any, kind: Optional[str] = None) -> CacheEntry:
        """Replace the entry for ``key`` with a fresh one."""
        entry = CacheEntry(
            key=key,
            payload=payload,
            timestamp=self.clock(),
            ttl=self.config.ttl_for(kind),
            kind=kind,
        )
        await self.store.put(self._store_key(key), entry.to_dict())
        self.cache_stats["puts"] += 1
        self.logger.debug("Cache entry stored", key=key, kind=kind, ttl=entry.ttl)
        return entry

    def is_stale(self, entry: CacheEntry) -> bool:
        return self.clock() - entry.timestamp > entry.ttl

    async def fetch(
        self,
        key: str,
        loader: Loader,
        kind: Optional[str] = None,
        force: bool = False,
        on_refresh: Optional[RefreshCallback] = None,
    ) -> CacheResult:
        """
        Serve ``key`` with stale-while-revalidate semantics.

        - no entry: block on ``loader`` (its ``FetchError`` propagates)
        - fresh entry: return it
        - stale entry: return it and schedule one background refresh
        - ``force``: reload synchronously, falling back to any existing entry
        """
        entry = await self.get(key)

        if entry is None:
            self._count("misses", "miss")
            payload = await loader()
            await self.put(key, payload, kind)
            return CacheResult(payload=payload, stale=False, age=0.0, source="remote")

        age = entry.age(self.clock())

        if force:
            try:
                payload = await loader()
            except FetchError as e:
                warning = self._fallback_warning(key, entry, e)
                return CacheResult(
                    payload=entry.payload,
                    stale=True,
                    age=age,
                    source="fallback",
                    warning=warning,
                )
            await self.put(key, payload, kind)
            return CacheResult(payload=payload, stale=False, age=0.0, source="remote")

        if not self.is_stale(entry):
            self._count("hits", "hit")
            return CacheResult(payload=entry.payload, stale=False, age=age, source="cache")

        self._count("stale_hits", "stale")
        self.schedule_refresh(key, loader, kind=kind or entry.kind, on_refresh=on_refresh)
        return CacheResult(
            payload=entry.payload,
            stale=True,
            age=age,
            source="cache",
            refreshing=True,
        )

    def schedule_refresh(
        self,
        key: str,
        loader: Loader,
        kind: Optional[str] = None,
        on_refresh: Optional[RefreshCallback] = None,
    ) -> bool:
        """Start a background refresh unless one is already running for ``key``."""
        if key in self.running_refreshes:
            self.logger.debug("Refresh already running", key=key)
            return False

        async def run_refresh():
            try:
                await self._refresh_one(key, loader, kind, on_refresh)
            except Exception as e:
                self.logger.error("Background refresh crashed", key=key, error=str(e))
            finally:
                self.running_refreshes.pop(key, None)

        self.running_refreshes[key] = asyncio.create_task(run_refresh())
        return True

    async def _refresh_one(
        self,
        key: str,
        loader: Loader,
        kind: Optional[str],
        on_refresh: Optional[RefreshCallback],
    ) -> bool:
        self.cache_stats["refreshes"] += 1
        try:
            payload = await loader()
        except FetchError as e:
            self.cache_stats["refresh_failures"] += 1
            if self.metrics:
                self.metrics.record_cache_refresh("failed")
            entry = await self.get(key)
            if entry is None:
                self.logger.warning("Refresh failed with no cached entry", key=key, error=e.message)
            else:
                self._fallback_warning(key, entry, e)
            return False

        entry = await self.put(key, payload, kind)
        if self.metrics:
            self.metrics.record_cache_refresh("ok")
        if on_refresh:
            on_refresh(entry)
        return True

    async def refresh(
        self,
        keys: Iterable[str],
        loader_for_key: Callable[[str], Loader],
        kind: Optional[str] = None,
    ) -> Dict[str, bool]:
        """
        Refresh only ``keys``; entries for every other key are untouched.

        Returns per-key success. A failed key keeps its previous entry.
        """
        results: Dict[str, bool] = {}
        for key in keys:
            results[key] = await self._refresh_one(key, loader_for_key(key), kind, None)
        return results

    async def wait_for_refreshes(self) -> None:
        """Wait until every background refresh has finished."""
        while self.running_refreshes:
            await asyncio.gather(*list(self.running_refreshes.values()), return_exceptions=True)

    async def close(self) -> None:
        await self.wait_for_refreshes()

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        lookups = self.cache_stats["hits"] + self.cache_stats["stale_hits"] + self.cache_stats["misses"]
        served = self.cache_stats["hits"] + self.cache_stats["stale_hits"]
        return {
            **self.cache_stats,
            "hit_rate": (served / lookups * 100) if lookups else 0,
            "refreshing": sorted(self.running_refreshes),
        }

    def _count(self, stat: str, label: str) -> None:
        self.cache_stats[stat] += 1
        if self.metrics:
            self.metrics.record_cache_lookup(label)

    def _fallback_warning(self, key: str, entry: CacheEntry, error: FetchError) -> str:
        age = entry.age(self.clock())
        message = f"Showing data cached {format_age(age)} ago; refresh failed: {error.message}"
        if self.notifications:
            self.notifications.warning("stale_cache", message, key=key, age_seconds=round(age, 1))
        else:
            self.logger.warning(message, key=key, age_seconds=round(age, 1))
        return message
