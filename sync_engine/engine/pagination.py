"""
Incremental pagination over a remote record collection.

One ``PaginationController`` owns the ``Window`` of a view. It requests
pages by offset until the API's offset ceiling, then continues with the
server-issued cursor, merges pages without duplicate ids, and drops any
response whose sequence token belongs to a window that has since been
reset.
"""

import asyncio
import time
from functools import partial
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional, Protocol, Set, Tuple

import structlog

from ..framework.config import EndpointConfig, HasMorePolicy, PaginationConfig, RemoteApiConfig
from ..framework.metrics import SyncMetrics
from ..framework.retry import RetryPolicy, call_with_retry
from ..schemas.models import (
    CacheEntry,
    FetchRequest,
    FetchState,
    FilterSignature,
    PageResult,
    Position,
    Record,
)
from ..utils.errors import FetchError, RemoteError, TransportError
from .cache_layer import CacheLayer
from .notifications import NotificationCenter


class RemoteSource(Protocol):
    async def fetch_page(self, endpoint: EndpointConfig, params: Dict[str, Any]) -> Dict[str, Any]:
        ...


class Window:
    """Ordered, id-unique records materialized for one view and one signature."""

    def __init__(self, signature: FilterSignature, token: int):
        self.signature = signature
        self.token = token
        self.records: List[Record] = []
        self._ids: Set[str] = set()
        self.offset = 0
        self.cursor: Optional[str] = None
        self.cursor_mode = False
        self.has_more = True
        self.loading = False
        self.loading_more = False
        self.in_flight: Optional[FetchRequest] = None
        self.disposed = False
        self.pages_loaded = 0
        self.degraded = False
        self.warm_start = False
        self.from_cache = False
        self.stale = False
        self.total: Optional[int] = None
        self.last_error: Optional[FetchError] = None

    def __len__(self) -> int:
        return len(self.records)

    @property
    def ids(self) -> FrozenSet[str]:
        return frozenset(self._ids)

    def merge(self, records: List[Record]) -> Tuple[int, int]:
        """Append records whose id is not already present; returns (added, dropped)."""
        added = 0
        for record in records:
            if record.id in self._ids:
                continue
            self._ids.add(record.id)
            self.records.append(record)
            added += 1
        return added, len(records) - added

    def replace(self, records: List[Record]) -> None:
        self.records = []
        self._ids = set()
        self.merge(records)

    def next_position(self) -> Position:
        if self.cursor_mode:
            return Position.at_cursor(self.cursor)
        return Position.at_offset(self.offset)

    def advance(self, page: PageResult) -> None:
        """Move the continuation point past ``page``; cursor mode is never left."""
        if page.next_position is not None and page.next_position.is_cursor:
            self.cursor_mode = True
            self.cursor = page.next_position.cursor
        elif page.next_position is not None and not self.cursor_mode:
            self.offset = page.next_position.offset
        self.has_more = page.has_more
        if page.total is not None:
            self.total = page.total
        if page.degraded:
            self.degraded = True

    def dispose(self) -> None:
        self.disposed = True
        self.has_more = False


class PaginationController:
    """Owns one view's Window and every request made for it."""

    def __init__(
        self,
        endpoint: EndpointConfig,
        source: RemoteSource,
        config: Optional[PaginationConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
        cache: Optional[CacheLayer] = None,
        notifications: Optional[NotificationCenter] = None,
        metrics: Optional[SyncMetrics] = None,
        record_parser: Callable[[Dict[str, Any]], Record] = Record.from_dict,
        view_name: Optional[str] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.endpoint = endpoint
        self.source = source
        self.config = config or PaginationConfig()
        self.retry_policy = retry_policy or RetryPolicy.for_endpoint(RemoteApiConfig(), aggregate=endpoint.aggregate)
        self.cache = cache
        self.notifications = notifications or NotificationCenter(view_name or endpoint.name)
        self.metrics = metrics
        self.record_parser = record_parser
        self.view_name = view_name or endpoint.name
        self.sleep = sleep
        self.limit = endpoint.limit or self.config.page_size
        self.has_more_policy = endpoint.has_more_policy or self.config.has_more_policy
        self.logger = structlog.get_logger("pagination").bind(view=self.view_name, endpoint=endpoint.name)
        self._token = 0
        self.window = Window(FilterSignature(), self._token)
        self._reset_listeners: List[Callable[[Window], None]] = []
        self._replace_listeners: List[Callable[[Window], None]] = []

    @property
    def current_token(self) -> int:
        return self._token

    @property
    def records(self) -> List[Record]:
        return self.window.records

    @property
    def loading(self) -> bool:
        return self.window.loading

    @property
    def loading_more(self) -> bool:
        return self.window.loading_more

    @property
    def has_more(self) -> bool:
        return self.window.has_more

    @property
    def busy(self) -> bool:
        return self.window.in_flight is not None

    def on_reset(self, listener: Callable[[Window], None]) -> None:
        """Call ``listener`` with the new window after every reset."""
        self._reset_listeners.append(listener)

    def on_replace(self, listener: Callable[[Window], None]) -> None:
        """Call ``listener`` when a background refresh replaces the window's records."""
        self._replace_listeners.append(listener)

    def cache_key(self, signature: FilterSignature) -> str:
        return f"{self.endpoint.name}:{signature.key()}"

    # ------------------------------------------------------------------
    # Single page
    # ------------------------------------------------------------------

    def build_params(self, signature: FilterSignature, position: Position) -> Dict[str, Any]:
        params: Dict[str, Any] = dict(self.endpoint.params)
        params.update(signature.to_params())
        params.update(position.to_params())
        params["limit"] = self.limit
        return params

    async def load_page(
        self,
        signature: FilterSignature,
        position: Position,
        request: Optional[FetchRequest] = None,
    ) -> PageResult:
        """
        Fetch and parse one page starting at ``position``.

        Raises ``FetchError`` once retries are exhausted or the server answers
        with a structured error.
        """
        params = self.build_params(signature, position)

        def on_retry(attempt: int, error: FetchError) -> None:
            if request is not None:
                request.mark(FetchState.RETRIED)
                request.attempts = attempt + 1
            if self.metrics:
                self.metrics.record_retry(self.endpoint.name, getattr(error, "transport_code", "unknown"))

        started = time.monotonic()
        try:
            response = await call_with_retry(
                lambda: self.source.fetch_page(self.endpoint, params),
                self.retry_policy,
                operation_name=f"fetch:{self.endpoint.name}",
                on_retry=on_retry,
                sleep=self.sleep,
            )
            page = self._parse_page(response, position)
        except FetchError:
            if self.metrics:
                self.metrics.record_fetch(self.endpoint.name, "failed", time.monotonic() - started)
            raise
        if self.metrics:
            self.metrics.record_fetch(self.endpoint.name, "ok", time.monotonic() - started)
        return page

    def _parse_page(self, response: Dict[str, Any], position: Position) -> PageResult:
        if not isinstance(response, dict):
            raise RemoteError("Malformed response from remote API", endpoint=self.endpoint.name)
        if response.get("error") or response.get("success") is False:
            raise RemoteError(
                response.get("error") or "Remote API reported failure",
                endpoint=self.endpoint.name,
                details={"payload": response},
            )

        rows = response.get(self.endpoint.records_key) or []
        if not isinstance(rows, list):
            raise RemoteError(
                f"Expected a list under '{self.endpoint.records_key}'",
                endpoint=self.endpoint.name,
            )
        try:
            records = [self.record_parser(row) for row in rows]
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteError(f"Unparseable record in response: {e}", endpoint=self.endpoint.name) from e

        returned_cursor = response.get("cursor") or None
        has_more = self._compute_has_more(len(rows), response.get("hasMore"))
        degraded = False
        next_position: Optional[Position] = None

        if has_more:
            if position.is_cursor:
                if returned_cursor:
                    next_position = Position.at_cursor(returned_cursor)
                else:
                    has_more, degraded = False, True
            else:
                next_offset = position.offset + len(rows)
                if next_offset < self.config.offset_ceiling:
                    next_position = Position.at_offset(next_offset)
                elif returned_cursor:
                    next_position = Position.at_cursor(returned_cursor)
                else:
                    has_more, degraded = False, True
        elif not position.is_cursor:
            next_position = Position.at_offset(position.offset + len(rows))

        if degraded:
            self.logger.warning(
                "Offset ceiling reached without a continuation cursor",
                position=position.to_params(),
                ceiling=self.config.offset_ceiling,
            )

        return PageResult(
            records=records,
            next_position=next_position,
            has_more=has_more,
            total=response.get("total"),
            cursor=returned_cursor,
            degraded=degraded,
        )

    def _compute_has_more(self, count: int, explicit: Any) -> bool:
        if count < self.limit:
            return False
        if self.has_more_policy is HasMorePolicy.EXPLICIT_THEN_HEURISTIC and explicit is not None:
            return bool(explicit)
        return True

    # ------------------------------------------------------------------
    # Window lifecycle
    # ------------------------------------------------------------------

    def reset(self, signature: FilterSignature) -> Window:
        """Synchronously discard the current window and start an empty one."""
        self.window.dispose()
        self._token += 1
        self.window = Window(signature, self._token)
        self.logger.debug("Window reset", token=self._token, signature=signature.key())
        for listener in list(self._reset_listeners):
            listener(self.window)
        return self.window

    def dispose(self) -> None:
        """Drop the current window; any outstanding response will be discarded."""
        self.window.dispose()
        self._token += 1

    async def reset_and_fetch(
        self,
        signature: FilterSignature,
        force: bool = False,
        warm_start: Optional[List[Record]] = None,
    ) -> Window:
        """Reset to ``signature`` and load its first page."""
        window = self.reset(signature)
        if warm_start:
            window.replace(warm_start)
            window.warm_start = True
        await self._initial_load(window, force)
        return window

    async def refresh(self) -> Window:
        """Reload the current signature from the server."""
        return await self.reset_and_fetch(self.window.signature, force=True)

    async def _initial_load(self, window: Window, force: bool) -> None:
        request = self._new_request(window)
        window.loading = True

        async def loader() -> Dict[str, Any]:
            page = await self.load_page(window.signature, request.position, request)
            return self._page_snapshot(page)

        try:
            if self.cache is not None:
                result = await self.cache.fetch(
                    self.cache_key(window.signature),
                    loader,
                    kind=self.endpoint.cache_kind,
                    force=force,
                    on_refresh=partial(self._on_cache_refresh, window.token),
                )
                snapshot = result.payload
                window.from_cache = result.source != "remote"
                window.stale = result.stale
            else:
                snapshot = await loader()
        except FetchError as e:
            if self._is_superseded(request):
                return
            request.mark(FetchState.FAILED)
            window.has_more = False
            window.last_error = e
            self._notify_failure("Failed to load records", e)
            return
        finally:
            self._finish_request(window, request)
            window.loading = False

        if self._is_superseded(request):
            return
        self._apply_snapshot(window, snapshot)
        request.mark(FetchState.MERGED)

    async def load_more(self) -> bool:
        """
        Append the next page to the current window.

        A no-op when a fetch is already outstanding, the window is exhausted
        or disposed. Returns True when a page was merged.
        """
        window = self.window
        if window.disposed or window.in_flight is not None or not window.has_more:
            return False

        request = self._new_request(window)
        window.loading_more = True
        try:
            page = await self.load_page(window.signature, request.position, request)
        except FetchError as e:
            if self._is_superseded(request):
                return False
            request.mark(FetchState.FAILED)
            window.last_error = e
            self._notify_failure("Failed to load more records", e)
            return False
        finally:
            self._finish_request(window, request)
            window.loading_more = False

        if self._is_superseded(request):
            return False

        self._apply_page(window, page)
        request.mark(FetchState.MERGED)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _new_request(self, window: Window) -> FetchRequest:
        request = FetchRequest(
            token=window.token,
            signature_key=window.signature.key(),
            position=window.next_position(),
            limit=self.limit,
        )
        window.in_flight = request
        request.mark(FetchState.IN_FLIGHT)
        request.attempts = 1
        return request

    @staticmethod
    def _finish_request(window: Window, request: FetchRequest) -> None:
        if window.in_flight is request:
            window.in_flight = None

    def _is_superseded(self, request: FetchRequest) -> bool:
        if request.token == self._token:
            return False
        request.mark(FetchState.DISCARDED)
        if self.metrics:
            self.metrics.record_stale_response(self.view_name)
        self.logger.debug("Discarded stale response", token=request.token, current_token=self._token)
        return True

    def _apply_page(self, window: Window, page: PageResult) -> None:
        added, dropped = window.merge(page.records)
        window.pages_loaded += 1
        window.last_error = None
        window.advance(page)
        if dropped:
            if self.metrics:
                self.metrics.record_duplicates(self.view_name, dropped)
            self.logger.debug("Dropped duplicate records on merge", dropped=dropped)
        if page.degraded:
            self._notify_degraded()
        self.logger.debug(
            "Page merged",
            added=added,
            window_size=len(window),
            has_more=window.has_more,
            cursor_mode=window.cursor_mode,
        )

    def _page_snapshot(self, page: PageResult) -> Dict[str, Any]:
        return {
            "records": [record.to_snapshot() for record in page.records],
            "next": page.next_position.to_params() if page.next_position else None,
            "has_more": page.has_more,
            "total": page.total,
            "degraded": page.degraded,
        }

    def _apply_snapshot(self, window: Window, snapshot: Dict[str, Any]) -> None:
        records = [Record.from_snapshot(item) for item in snapshot.get("records", [])]
        next_params = snapshot.get("next")
        page = PageResult(
            records=records,
            next_position=Position(**next_params) if next_params else None,
            has_more=bool(snapshot.get("has_more")),
            total=snapshot.get("total"),
            degraded=bool(snapshot.get("degraded")),
        )
        window.replace([])
        window.warm_start = False
        window.offset = 0
        window.cursor = None
        window.cursor_mode = False
        window.pages_loaded = 0
        self._apply_page(window, page)

    def _on_cache_refresh(self, token: int, entry: CacheEntry) -> None:
        window = self.window
        if token != self._token or window.in_flight is not None or window.pages_loaded > 1:
            return
        self._apply_snapshot(window, entry.payload)
        window.stale = False
        window.from_cache = False
        self.logger.debug("Window replaced with refreshed first page", token=token)
        for listener in list(self._replace_listeners):
            listener(window)

    def _notify_failure(self, message: str, error: FetchError) -> None:
        details = {"error_code": error.error_code}
        if isinstance(error, TransportError):
            details["transport_code"] = error.transport_code
            details["attempts"] = error.attempts
        self.notifications.error("transport_failure", f"{message}: {error.message}", **details)

    def _notify_degraded(self) -> None:
        self.notifications.warning(
            "degraded_pagination",
            "Reached the maximum number of results that can be paged through; "
            "refine the search or filters to see the rest.",
            ceiling=self.config.offset_ceiling,
        )
