"""Sentinel-proximity trigger that asks the pagination controller for more rows."""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from .pagination import PaginationController, Window


@dataclass(frozen=True)
class ScrollGeometry:
    """Viewport measurement: the sentinel's top edge and the container's bottom edge."""
    sentinel_top: float
    container_bottom: float

    def distance(self) -> float:
        return self.sentinel_top - self.container_bottom


class ScrollTrigger:
    """
    Fires ``load_more`` when the sentinel comes within ``margin`` pixels of
    the visible bottom of the scroll container.

    Every guard is evaluated when the debounce timer fires, not when the
    scroll event arrives: the controller must not be loading, must have more
    rows, and must still own the window this trigger was armed for. A
    latch prevents firing twice for the same sentinel position; it clears
    once the sentinel leaves the zone or the window grows.
    """

    def __init__(
        self,
        controller: PaginationController,
        measure: Callable[[], Optional[ScrollGeometry]],
        margin: float = 200.0,
        debounce: float = 0.1,
    ):
        self.controller = controller
        self.measure = measure
        self.margin = margin
        self.debounce = debounce
        self.logger = structlog.get_logger("scroll-trigger")
        self.armed_token: Optional[int] = controller.current_token
        self.latched = False
        self._latched_size = 0
        self.fired_count = 0
        self._timer: Optional[asyncio.Task] = None
        controller.on_reset(self.arm)

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def arm(self, window: Window) -> None:
        """Re-arm for a fresh window; called on every controller reset."""
        self.cancel()
        self.armed_token = window.token
        self.latched = False
        self._latched_size = 0

    def disarm(self) -> None:
        self.cancel()
        self.armed_token = None

    def cancel(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    def on_scroll(self) -> None:
        """Register a scroll or resize event; replaces any pending check."""
        if self.armed_token is None:
            return
        self.cancel()
        self._timer = asyncio.create_task(self._wait_and_check())

    async def _wait_and_check(self) -> None:
        await asyncio.sleep(self.debounce)
        self._timer = None
        await self.check()

    def in_zone(self, geometry: ScrollGeometry) -> bool:
        return geometry.sentinel_top <= geometry.container_bottom + self.margin

    async def check(self) -> bool:
        """Evaluate all guards now; returns True when ``load_more`` was called."""
        geometry = self.measure()
        if geometry is None:
            return False

        controller = self.controller
        window = controller.window
        if self.latched and (not self.in_zone(geometry) or len(window) > self._latched_size):
            self.latched = False

        if self.armed_token is None or self.armed_token != controller.current_token:
            return False
        if controller.loading or controller.busy or not controller.has_more:
            return False
        if self.latched or not self.in_zone(geometry):
            return False

        self.latched = True
        self._latched_size = len(window)
        self.fired_count += 1
        self.logger.debug(
            "Sentinel in range, loading more",
            token=window.token,
            distance=geometry.distance(),
            window_size=len(window),
        )
        return await controller.load_more()
