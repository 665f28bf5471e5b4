"""
Polling Service

The tick pipeline: guard -> orchestrator -> normalizer -> sink.

tick() is what the external trigger calls. It never raises: device,
transform and persistence failures are all absorbed at their own
boundaries, and the guard always returns to idle.
"""

import time
from datetime import datetime, timezone
from typing import Callable

from aiohttp import web

from fieldpoller.common.config import PollerConfig
from fieldpoller.common.exceptions import PersistenceError
from fieldpoller.common.logging_setup import get_service_logger, log_cycle
from fieldpoller.common.timestamp import align_timestamp
from fieldpoller.services.device.reader import DeviceReader
from fieldpoller.storage.base import RowSink
from .guard import CycleGuard, CycleState
from .normalizer import Normalizer, Transform
from .orchestrator import ReadingOrchestrator

logger = get_service_logger("polling")


class PollingService:
    """
    Runs one guarded polling cycle per tick.

    Collaborators are injected so tests can swap the reader, sink and
    cycle state; defaults are built from the config.
    """

    def __init__(
        self,
        config: PollerConfig,
        sink: RowSink,
        reader: DeviceReader | None = None,
        state: CycleState | None = None,
        transforms: dict[str, Transform] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config
        self.sink = sink

        self.orchestrator = ReadingOrchestrator(
            reader or DeviceReader(),
            interval_s=config.interval_s,
            overrun_fraction=config.overrun_fraction,
        )
        self.normalizer = Normalizer.from_config(config, transforms)
        self.guard = CycleGuard(state)

        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._start_time = datetime.now(timezone.utc)

        # Observability counters
        self._rows_written = 0
        self._write_errors = 0
        self._reads_failed = 0
        self._last_cycle: dict | None = None

        self._health_runner: web.AppRunner | None = None

    async def tick(self, now: datetime | None = None) -> bool:
        """
        Handle one trigger.

        Args:
            now: Trigger time (defaults to the clock); aligned down to
                 granularity_s to form the bucket

        Returns:
            True if a cycle ran for this tick
        """
        bucket = align_timestamp(now or self._clock(), self.config.granularity_s)
        return await self.guard.run(bucket, self._run_cycle)

    async def _run_cycle(self, bucket: datetime) -> None:
        start = time.monotonic()
        logger.debug(f"Starting cycle for {bucket.isoformat()}")

        readings = await self.orchestrator.run_cycle(self.config.registers)
        failed = sum(1 for r in readings if not r.ok)
        self._reads_failed += failed

        rows = self.normalizer.normalize(bucket, readings)

        written = 0
        for row in rows:
            try:
                affected = await self.sink.upsert(row)
            except PersistenceError as e:
                self._write_errors += 1
                logger.error(f"Write failed for {row.table} @ {bucket.isoformat()}: {e.message}")
                continue
            except Exception as e:
                self._write_errors += 1
                logger.error(
                    f"Unexpected error writing {row.table} @ {bucket.isoformat()}: "
                    f"{e.__class__.__name__}: {e}"
                )
                continue

            written += 1
            if affected == 0:
                logger.info(f"No changes in {row.table} for {bucket.isoformat()}")

        self._rows_written += written
        elapsed_ms = (time.monotonic() - start) * 1000

        self._last_cycle = {
            "bucket": bucket.isoformat(),
            "reads_ok": len(readings) - failed,
            "reads_failed": failed,
            "rows_written": written,
            "rows_failed": len(rows) - written,
            "duration_ms": round(elapsed_ms, 1),
            "overrun": self.orchestrator.last_overrun,
        }

        log_cycle(
            logger,
            bucket.isoformat(),
            reads_ok=len(readings) - failed,
            reads_failed=failed,
            rows_written=written,
            execution_time_ms=elapsed_ms,
        )

    def get_stats(self) -> dict:
        return {
            "name": self.config.name,
            "uptime_s": int((datetime.now(timezone.utc) - self._start_time).total_seconds()),
            "guard": self.guard.get_stats(),
            "rows_written": self._rows_written,
            "write_errors": self._write_errors,
            "reads_failed": self._reads_failed,
            "last_cycle": self._last_cycle,
        }

    # ============================================
    # HEALTH SERVER
    # ============================================

    async def start_health_server(self, port: int, host: str = "127.0.0.1") -> None:
        """Serve /health and /stats on the given port"""
        app = web.Application()
        app.router.add_get("/health", self._health_handler)
        app.router.add_get("/stats", self._stats_handler)

        self._health_runner = web.AppRunner(app)
        await self._health_runner.setup()

        site = web.TCPSite(self._health_runner, host, port)
        await site.start()

        logger.info(f"Health server started on port {port}")

    async def stop_health_server(self) -> None:
        if self._health_runner:
            await self._health_runner.cleanup()
            self._health_runner = None

    async def _health_handler(self, request: web.Request) -> web.Response:
        uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds()
        return web.json_response({
            "status": "healthy",
            "service": self.config.name,
            "state": "running" if self.guard.is_running else "idle",
            "uptime": int(uptime),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    async def _stats_handler(self, request: web.Request) -> web.Response:
        return web.json_response(self.get_stats())
