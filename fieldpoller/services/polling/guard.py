"""
Tick Scheduler Guard

Two-state machine (Idle / Running) over an injected CycleState.
A tick starts a cycle only when the guard is idle and its bucket differs
from the last started one. Rejected ticks are dropped, never queued.

State is only touched between awaits on one event loop, so the
check-and-set in run() is atomic without a lock.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Hashable

from fieldpoller.common.logging_setup import get_service_logger

logger = get_service_logger("polling.guard")


@dataclass
class CycleState:
    """Last started bucket and whether a cycle is in progress"""
    last_bucket: Hashable | None = None
    running: bool = False


class CycleGuard:
    """Serializes cycles and rejects re-fires within the same bucket"""

    def __init__(self, state: CycleState | None = None):
        self.state = state if state is not None else CycleState()

        self.cycles_started = 0
        self.skipped_overlap = 0
        self.skipped_duplicate = 0

    @property
    def is_running(self) -> bool:
        return self.state.running

    async def run(
        self,
        bucket: Hashable,
        cycle: Callable[[Hashable], Awaitable[None]],
    ) -> bool:
        """
        Run `cycle(bucket)` if allowed.

        Returns:
            True if the cycle ran (even if it failed), False if the tick
            was discarded
        """
        if self.state.running:
            self.skipped_overlap += 1
            logger.warning(
                f"Tick {_label(bucket)} skipped: previous cycle still running",
                extra={"bucket": bucket},
            )
            return False

        if bucket == self.state.last_bucket:
            self.skipped_duplicate += 1
            logger.debug(f"Bucket {_label(bucket)} already processed, skipping")
            return False

        self.state.last_bucket = bucket
        self.state.running = True
        self.cycles_started += 1

        try:
            await cycle(bucket)
        except Exception as e:
            logger.error(
                f"Cycle {_label(bucket)} failed: {e.__class__.__name__}: {e}",
                exc_info=True,
            )
        finally:
            self.state.running = False

        return True

    def get_stats(self) -> dict:
        return {
            "state": "running" if self.state.running else "idle",
            "last_bucket": _label(self.state.last_bucket),
            "cycles_started": self.cycles_started,
            "skipped_overlap": self.skipped_overlap,
            "skipped_duplicate": self.skipped_duplicate,
        }


def _label(bucket: Hashable | None) -> str | None:
    if bucket is None:
        return None
    if isinstance(bucket, datetime):
        return bucket.isoformat()
    return str(bucket)
