"""Collapse rapid search input into a single reset-and-refetch."""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog


class SearchDebouncer:
    """
    Timer-replace debouncer for search terms.

    Each keystroke cancels the pending timer and starts a new one, so only
    the term that survives ``quiet_period`` seconds of silence is fetched.
    Matching is defined by the server, so every fired term triggers a full
    pagination reset rather than filtering rows already loaded.
    """

    def __init__(
        self,
        reset_and_fetch: Callable[[str], Awaitable[object]],
        quiet_period: float = 0.5,
        initial_term: str = "",
    ):
        self.reset_and_fetch = reset_and_fetch
        self.quiet_period = quiet_period
        self.logger = structlog.get_logger("search-debouncer")
        self.active_term = initial_term.strip()
        self.latest_term = self.active_term
        self.fired_count = 0
        self._timer: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def on_term_change(self, term: str) -> None:
        """Register a keystroke; replaces any pending timer."""
        self.latest_term = (term or "").strip()
        self.cancel()
        self._timer = asyncio.create_task(self._wait_and_fire(self.latest_term))

    def cancel(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def flush(self) -> None:
        """Fire the latest term now instead of waiting for the quiet period."""
        self.cancel()
        await self._fire(self.latest_term)

    async def _wait_and_fire(self, term: str) -> None:
        await asyncio.sleep(self.quiet_period)
        self._timer = None
        await self._fire(term)

    async def _fire(self, term: str) -> None:
        if term == self.active_term:
            self.logger.debug("Search term unchanged, skipping refetch", term=term)
            return
        self.active_term = term
        self.fired_count += 1
        self.logger.debug("Search term settled", term=term)
        try:
            await self.reset_and_fetch(term)
        except Exception as e:
            self.logger.error("Search refetch failed", term=term, error=str(e))
