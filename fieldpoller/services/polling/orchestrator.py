"""
Reading Orchestrator

Issues one read per RegisterSpec for a single tick. Devices are polled
concurrently; specs for the same device are read one after another since
a device accepts one connection at a time.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from fieldpoller.common.config import RegisterSpec
from fieldpoller.common.logging_setup import get_service_logger
from fieldpoller.services.device.reader import DeviceReader, ReadResult

logger = get_service_logger("polling.orchestrator")


@dataclass
class ReadingResult:
    """One read attempt of one metric within a tick"""
    metric: str
    spec: RegisterSpec
    result: ReadResult
    attempted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def ok(self) -> bool:
        return self.result.success


class ReadingOrchestrator:
    """
    Fans reads out across devices and collects exactly one ReadingResult
    per spec, in input order.

    Attributes:
        last_duration_s: Wall time of the last cycle
        last_overrun: Whether the last cycle exceeded the overrun threshold
    """

    def __init__(
        self,
        reader: DeviceReader,
        interval_s: float = 60.0,
        overrun_fraction: float = 0.8,
    ):
        self._reader = reader
        self.interval_s = interval_s
        self.overrun_fraction = overrun_fraction

        self.last_duration_s: float = 0.0
        self.last_overrun = False

    async def run_cycle(self, specs: list[RegisterSpec]) -> list[ReadingResult]:
        """
        Read every spec once.

        Args:
            specs: Registers to read this tick

        Returns:
            One ReadingResult per spec, same order as `specs`
        """
        start = time.monotonic()

        # Group indices by device, keeping per-device order
        groups: dict[tuple, list[int]] = {}
        for i, spec in enumerate(specs):
            groups.setdefault(spec.endpoint.key, []).append(i)

        results: list[ReadingResult | None] = [None] * len(specs)

        outcomes = await asyncio.gather(
            *(self._read_group([specs[i] for i in idx]) for idx in groups.values()),
            return_exceptions=True,
        )

        for idx, outcome in zip(groups.values(), outcomes):
            if isinstance(outcome, BaseException):
                # Reader never raises; this only guards against bugs in a group
                logger.error(
                    f"Read group for {specs[idx[0]].endpoint.name} crashed: {outcome}"
                )
                for i in idx:
                    results[i] = ReadingResult(
                        metric=specs[i].metric,
                        spec=specs[i],
                        result=ReadResult.failed(f"Group failure: {outcome}"),
                    )
                continue
            for i, reading in zip(idx, outcome):
                results[i] = reading

        self.last_duration_s = time.monotonic() - start
        self._check_overrun()

        return results

    async def _read_group(self, specs: list[RegisterSpec]) -> list[ReadingResult]:
        """Sequential reads against one device"""
        readings = []
        for spec in specs:
            attempted_at = datetime.now(timezone.utc)
            result = await self._reader.read(spec)
            readings.append(ReadingResult(
                metric=spec.metric,
                spec=spec,
                result=result,
                attempted_at=attempted_at,
            ))
        return readings

    def _check_overrun(self) -> None:
        threshold = self.interval_s * self.overrun_fraction
        self.last_overrun = self.last_duration_s > threshold
        if self.last_overrun:
            logger.warning(
                f"Cycle took {self.last_duration_s * 1000:.0f} ms "
                f"(threshold {threshold * 1000:.0f} ms of {self.interval_s:.0f}s interval), "
                "check network latency",
                extra={"duration_s": self.last_duration_s},
            )
