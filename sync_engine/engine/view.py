"""
One incrementally synchronised list view.

``ViewSession`` wires the pagination controller, result-set cache, search
debouncer, scroll trigger, bulk-edit reconciler, snapshots and notifications
together for a single endpoint. Every list screen is an instance of this
class parameterised by an ``EndpointConfig`` and a record parser.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import structlog

from ..client.remote import RemoteDataClient
from ..framework.config import EndpointConfig, EngineConfig
from ..framework.metrics import SyncMetrics
from ..framework.retry import RetryPolicy
from ..schemas.models import FilterSignature, Record
from ..storage.kv_store import InMemoryKeyValueStore, KeyValueStore
from ..storage.redis import RedisKeyValueStore
from ..utils.errors import FetchError
from ..utils.logging import bind_view
from .cache_layer import CacheLayer
from .debouncer import SearchDebouncer
from .notifications import Notification, NotificationCenter
from .pagination import PaginationController, RemoteSource, Window
from .reconciler import BulkEditReconciler, PublishResult
from .scroll_trigger import ScrollGeometry, ScrollTrigger
from .snapshots import SnapshotStore
from .transition_policy import TransitionPolicy


@dataclass
class ViewState:
    """What the renderer needs to draw the list."""
    records: List[Record]
    loading: bool
    loading_more: bool
    has_more: bool
    on_load_more: Callable[[], Awaitable[bool]]
    on_refresh: Callable[[], Awaitable[Any]]
    notifications: List[Notification] = field(default_factory=list)
    stale: bool = False
    degraded: bool = False


class ViewSession:
    """Generic engine for one list view."""

    def __init__(
        self,
        config: EngineConfig,
        endpoint: EndpointConfig,
        source: Optional[RemoteSource] = None,
        record_parser: Callable[[Dict[str, Any]], Record] = Record.from_dict,
        policy: Optional[TransitionPolicy] = None,
        measure: Optional[Callable[[], Optional[ScrollGeometry]]] = None,
        cache_store: Optional[KeyValueStore] = None,
        snapshot_store: Optional[KeyValueStore] = None,
        metrics: Optional[SyncMetrics] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.endpoint = endpoint
        self.view_name = config.view_name
        self.logger = bind_view(structlog.get_logger("view-session"), self.view_name)
        self.metrics = metrics if metrics is not None else (SyncMetrics() if config.observability.metrics_enabled else None)
        self.notifications = NotificationCenter(self.view_name)

        self._owns_source = source is None
        self.source = source if source is not None else RemoteDataClient(config.remote)

        self.cache = CacheLayer(
            config=config.cache,
            store=cache_store,
            clock=clock,
            notifications=self.notifications,
            metrics=self.metrics,
        )
        self.controller = PaginationController(
            endpoint=endpoint,
            source=self.source,
            config=config.pagination,
            retry_policy=RetryPolicy.for_endpoint(config.remote, aggregate=endpoint.aggregate),
            cache=self.cache,
            notifications=self.notifications,
            metrics=self.metrics,
            record_parser=record_parser,
            view_name=self.view_name,
        )
        self.debouncer = SearchDebouncer(
            self._apply_search,
            quiet_period=config.interaction.search_quiet_period,
        )
        self.scroll: Optional[ScrollTrigger] = None
        if measure is not None:
            self.scroll = ScrollTrigger(
                self.controller,
                measure,
                margin=config.interaction.scroll_margin_px,
                debounce=config.interaction.scroll_debounce,
            )

        self.reconciler: Optional[BulkEditReconciler] = None
        if policy is not None or endpoint.publish_path:
            self.reconciler = BulkEditReconciler(
                policy=policy,
                publisher=self._publish_updates if endpoint.publish_path else None,
                refetch=self._refetch_records,
                notifications=self.notifications,
                metrics=self.metrics,
                bulk_min_selection=config.interaction.bulk_min_selection,
                view_name=self.view_name,
                clock=clock,
            )

        self.snapshots: Optional[SnapshotStore] = None
        if config.snapshots.enabled:
            if snapshot_store is None:
                snapshot_store = (
                    RedisKeyValueStore(config.snapshots.redis_url)
                    if config.snapshots.redis_url
                    else InMemoryKeyValueStore(clock=clock)
                )
            self.snapshots = SnapshotStore(snapshot_store, ttl_seconds=config.snapshots.ttl_seconds, clock=clock)

        self._pending_saves: Set[asyncio.Task] = set()
        self.controller.on_replace(self._on_window_replaced)

        self.mounted = False

    @property
    def signature(self) -> FilterSignature:
        return self.controller.window.signature

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def mount(self, signature: Optional[FilterSignature] = None) -> ViewState:
        """Show the warm-start snapshot if any, then load the first live page."""
        signature = signature or FilterSignature()
        if self._owns_source:
            await self.source.start()
        self.mounted = True
        self.debouncer.active_term = signature.search
        self.debouncer.latest_term = signature.search
        self.logger.info("Mounting view", signature=signature.to_dict())

        warm = await self._load_snapshot(signature)
        await self.controller.reset_and_fetch(signature, warm_start=warm)
        await self._after_reset()
        return self.state()

    async def unmount(self) -> None:
        """Cancel timers and drop the window; late responses are discarded."""
        self.mounted = False
        self.debouncer.cancel()
        if self.scroll:
            self.scroll.disarm()
        self.controller.dispose()
        await self.cache.close()
        if self._pending_saves:
            await asyncio.gather(*list(self._pending_saves), return_exceptions=True)
        if self._owns_source:
            await self.source.stop()
        self.logger.info("View unmounted")

    # ------------------------------------------------------------------
    # User interactions
    # ------------------------------------------------------------------

    def set_search(self, term: str) -> None:
        """Debounced; the settled term resets pagination."""
        self.debouncer.on_term_change(term)

    async def set_filters(self, filters: Dict[str, Any]) -> ViewState:
        """Filter changes reset pagination immediately."""
        signature = self.signature.with_filters(filters)
        if signature == self.signature:
            return self.state()
        await self.controller.reset_and_fetch(signature)
        await self._after_reset()
        return self.state()

    async def load_more(self) -> bool:
        merged = await self.controller.load_more()
        if merged:
            self._sync_baseline()
        return merged

    async def refresh(self) -> ViewState:
        await self.controller.refresh()
        await self._after_reset()
        return self.state()

    def on_scroll(self) -> None:
        if self.scroll and self.mounted:
            self.scroll.on_scroll()

    async def publish(self) -> PublishResult:
        if self.reconciler is None:
            raise RuntimeError(f"View {self.view_name} has no editable status")
        return await self.reconciler.publish()

    def state(self) -> ViewState:
        window = self.controller.window
        return ViewState(
            records=list(window.records),
            loading=window.loading,
            loading_more=window.loading_more,
            has_more=window.has_more,
            on_load_more=self.load_more,
            on_refresh=self.refresh,
            notifications=self.notifications.active(),
            stale=window.stale or window.warm_start,
            degraded=window.degraded,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _apply_search(self, term: str) -> None:
        await self.controller.reset_and_fetch(self.signature.with_search(term))
        await self._after_reset()

    async def _after_reset(self) -> None:
        window = self.controller.window
        self._sync_baseline()
        if window.last_error is None and window.pages_loaded and not window.disposed:
            await self._save_snapshot(window.signature, window.records)
        if self.scroll and self.mounted:
            await self.scroll.check()

    def _on_window_replaced(self, window: Window) -> None:
        self._sync_baseline()
        task = asyncio.create_task(self._save_snapshot(window.signature, list(window.records)))
        self._pending_saves.add(task)
        task.add_done_callback(self._pending_saves.discard)

    def _sync_baseline(self) -> None:
        if self.reconciler is not None:
            self.reconciler.load_baseline(self.controller.records)

    async def _load_snapshot(self, signature: FilterSignature) -> Optional[List[Record]]:
        if self.snapshots is None:
            return None
        try:
            return await self.snapshots.load(self.view_name, signature)
        except Exception as e:
            self.logger.warning("Snapshot load failed", error=str(e))
            return None

    async def _save_snapshot(self, signature: FilterSignature, records: List[Record]) -> None:
        if self.snapshots is None:
            return
        try:
            await self.snapshots.save(self.view_name, signature, records)
        except Exception as e:
            self.logger.warning("Snapshot save failed", error=str(e))

    async def _publish_updates(self, updates: List[Dict[str, Any]]) -> Dict[str, Any]:
        return await self.source.publish(self.endpoint, updates)

    async def _refetch_records(self) -> List[Record]:
        window = await self.controller.refresh()
        if window.last_error is not None:
            raise window.last_error
        if window.from_cache:
            raise FetchError("Server could not be reached; showing cached records", endpoint=self.endpoint.name)
        await self._save_snapshot(window.signature, window.records)
        return list(window.records)
