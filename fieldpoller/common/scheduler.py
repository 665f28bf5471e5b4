"""
Wall-Clock Trigger for Polling Ticks

Provides ScheduledLoop, the external periodic signal that drives the
polling pipeline. It fires at exact wall-clock boundaries plus a fixed
offset (e.g. second 20 of every minute, or every 30 seconds).

Each firing is dispatched as its own task and never awaited by the loop,
so a slow cycle does not delay the next trigger. Whether an overlapping
trigger is allowed to do work is decided downstream by the cycle guard.

Usage:
    async def tick():
        ...

    trigger = ScheduledLoop(60.0, tick, offset_seconds=20.0, name="kwreport")
    await trigger.start()

    # Later:
    trigger.stop()
"""

import asyncio
import time
from typing import Callable, Awaitable

from .logging_setup import get_service_logger

logger = get_service_logger("scheduler")


def next_fire_time(now: float, interval: float, offset: float = 0.0) -> float:
    """
    Next epoch time strictly after `now` of the form k * interval + offset.

    Examples (interval=60, offset=20):
        now=...:00:05 -> ...:00:20
        now=...:00:20 -> ...:01:20
    """
    base = ((now - offset) // interval + 1) * interval + offset
    if base <= now:
        base += interval
    return base


class ScheduledLoop:
    """
    Precise interval trigger aligned to wall-clock boundaries.

    Attributes:
        interval: The interval in seconds between firings
        offset: Seconds after each interval boundary at which to fire
        callback: Async function to call each interval
        fire_count: Number of dispatched firings
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
        offset_seconds: float = 0.0,
        name: str = "unnamed",
    ):
        self.interval = interval_seconds
        self.offset = offset_seconds
        self.callback = callback
        self.name = name

        self._next_run: float = 0
        self._running = False
        self._task: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()

        # Observability metrics
        self._drift_total: float = 0
        self._skipped_count: int = 0
        self._fire_count: int = 0
        self._last_drift_ms: float = 0

    async def start(self) -> None:
        """Start the trigger loop in a background task."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        """Stop firing. Callbacks already dispatched run to completion."""
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None

    async def wait_inflight(self) -> None:
        """Wait for dispatched callbacks to finish (used at shutdown)."""
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    async def _run(self) -> None:
        """Main loop that fires callback at exact boundaries."""
        self._next_run = next_fire_time(time.time(), self.interval, self.offset)

        while self._running:
            sleep_duration = self._next_run - time.time()
            if sleep_duration > 0:
                try:
                    await asyncio.sleep(sleep_duration)
                except asyncio.CancelledError:
                    break

            if not self._running:
                break

            drift = time.time() - self._next_run

            if drift > 30:
                # Clock jump (NTP sync after boot, suspend/resume)
                logger.info(
                    f"Scheduler '{self.name}' clock jump detected ({drift:.0f}s), realigning"
                )
                self._last_drift_ms = 0
            else:
                self._drift_total += max(0, drift)
                self._last_drift_ms = drift * 1000

            self._dispatch()

            # Skip missed boundaries, never queue them
            now = time.time()
            skipped = 0
            while self._next_run <= now:
                self._next_run += self.interval
                skipped += 1

            if skipped > 1:
                self._skipped_count += skipped - 1
                logger.warning(
                    f"Scheduler '{self.name}' skipped {skipped - 1} intervals"
                )

    def _dispatch(self) -> None:
        task = asyncio.create_task(self.callback())
        self._fire_count += 1
        self._inflight.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Scheduled callback '{self.name}' error: {exc}")

    @property
    def fire_count(self) -> int:
        return self._fire_count

    def get_stats(self) -> dict:
        """Get scheduler statistics for observability."""
        return {
            "name": self.name,
            "interval_s": self.interval,
            "offset_s": self.offset,
            "fire_count": self._fire_count,
            "drift_total_s": round(self._drift_total, 3),
            "drift_last_ms": round(self._last_drift_ms, 1),
            "skipped_count": self._skipped_count,
            "inflight": len(self._inflight),
        }
