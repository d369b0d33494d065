"""
Engagement clock.

A single periodic tick drives all time accounting. The tick runs on a
daemon thread; a tick that overruns the interval delays the next one
(no overlap, no catch-up queue).
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from loguru import logger


@dataclass
class EngagementClock:
    """
    Fixed-interval ticker.

    Usage:
        clock = EngagementClock(on_tick=tracker.tick, interval_ms=1000)
        clock.start()
        # ... app runs ...
        clock.stop()
    """

    on_tick: Callable[[], object]
    interval_ms: int = 1000

    # Internal state
    ticks: int = 0
    _thread: threading.Thread | None = field(default=None, repr=False)
    _stop_event: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        if self.is_running:
            logger.warning("Engagement clock already running")
            return False

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop,
            name="cadence-engagement-clock",
            daemon=True,
        )
        self._thread.start()
        logger.debug(f"Engagement clock started ({self.interval_ms}ms)")
        return True

    def stop(self, timeout: float = 2.0) -> None:
        """Stop ticking and wait briefly for an in-progress tick to finish."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._thread = None

    def _loop(self) -> None:
        interval = self.interval_ms / 1000
        while not self._stop_event.wait(interval):
            started = time.monotonic()
            try:
                self.on_tick()
            except Exception as exc:
                logger.warning(f"Tick failed: {exc}")
            self.ticks += 1

            overrun = time.monotonic() - started - interval
            if overrun > 0:
                logger.debug(f"Tick overran interval by {overrun * 1000:.0f}ms")
