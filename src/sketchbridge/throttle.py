"""Deduplicating trailing-edge throttle for canvas resize reports."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)

ResizeCallback = Callable[[int, int, "str | None"], None]


class ResizeThrottle:
    """Deliver at most one resize per window, always ending on the latest size.

    A report equal to the last delivered size or to the size already waiting
    for the trailing timer is dropped.  ``reset()`` forgets both so a re-run
    that ends at the same size is still delivered.

    The trailing timer runs on the injected loop, or on the loop running when
    the report arrives.  Without either, a held size is superseded by the next
    report that lands after the window.
    """

    def __init__(
        self,
        apply: ResizeCallback,
        window_ms: float = 150,
        *,
        clock: Callable[[], float] = time.monotonic,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        if window_ms < 0:
            raise ValueError("window_ms must be >= 0")
        self._apply = apply
        self.window = window_ms / 1000.0
        self._clock = clock
        self._loop = loop
        self.last_resize: tuple[int, int] | None = None
        self.last_resize_time: float | None = None
        self.pending_resize: tuple[int, int, str | None] | None = None
        self._timer: asyncio.TimerHandle | None = None

    @property
    def has_pending(self) -> bool:
        return self._timer is not None

    def submit(self, width: int, height: int, sketch_id: str | None = None) -> bool:
        """Offer a resize report; return False if it was dropped as a duplicate."""

        size = (width, height)
        now = self._clock()
        elapsed = None if self.last_resize_time is None else now - self.last_resize_time
        window_passed = elapsed is None or elapsed >= self.window
        if window_passed and self._timer is None:
            # held without a timer; this report is the latest value
            self.pending_resize = None

        if size == self.last_resize:
            return False
        if self.pending_resize is not None and self.pending_resize[:2] == size:
            return False

        if window_passed:
            self._cancel_timer()
            self.pending_resize = None
            self._deliver(width, height, sketch_id)
            return True

        self.pending_resize = (width, height, sketch_id)
        if self._timer is None:
            self._timer = self._schedule(self.window - elapsed)
        return True

    def reset(self) -> None:
        self._cancel_timer()
        self.last_resize = None
        self.pending_resize = None

    def cancel(self) -> None:
        self._cancel_timer()
        self.pending_resize = None

    def _schedule(self, delay: float) -> asyncio.TimerHandle | None:
        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No running event loop; holding resize until the next report")
                return None
        return loop.call_later(max(0.0, delay), self._flush)

    def _flush(self) -> None:
        self._timer = None
        pending, self.pending_resize = self.pending_resize, None
        if pending is not None:
            self._deliver(*pending)

    def _deliver(self, width: int, height: int, sketch_id: str | None) -> None:
        self.last_resize = (width, height)
        self.last_resize_time = self._clock()
        try:
            self._apply(width, height, sketch_id)
        except Exception:
            logger.exception("resize callback failed for %sx%s", width, height)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
