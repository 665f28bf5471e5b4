#!/usr/bin/env python3
"""
fieldpoller - Entry Point

Loads the YAML configuration, builds the sink and the polling pipeline,
and drives it from a wall-clock trigger until SIGTERM/SIGINT.

Usage:
    fieldpoller                          # Start with ./config.yaml
    fieldpoller --config my.yaml         # Use custom config file
    fieldpoller --once                   # Run a single tick and exit
    fieldpoller --run-now                # Tick immediately, then on schedule
    fieldpoller --dry-run                # Print config summary and exit
    fieldpoller --verbose                # Enable debug logging
"""

import argparse
import asyncio
import signal
import sys

from fieldpoller.common.config import PollerConfig, load_config_file
from fieldpoller.common.exceptions import FieldPollerError
from fieldpoller.common.logging_setup import get_service_logger, set_log_level
from fieldpoller.common.scheduler import ScheduledLoop
from fieldpoller.services.polling.service import PollingService
from fieldpoller.storage import create_sink

logger = get_service_logger("main")

# Default configuration path
DEFAULT_CONFIG_PATH = "config.yaml"


def print_startup_banner(config: PollerConfig) -> None:
    """Print startup information."""
    print()
    print("=" * 60)
    print(f"  fieldpoller - {config.name}")
    print("=" * 60)
    print(f"  Interval:     {config.interval_s:g}s (offset {config.offset_s:g}s)")
    print(f"  Bucket:       {config.granularity_s:g}s, {config.timezone}")
    print(f"  kW policy:    {config.active_power_policy.value}")
    print(f"  Storage:      {config.storage.type.value} ({config.storage.url or config.storage.path})")
    print(f"  Devices:      {len(config.devices)}")
    for name, endpoint in config.devices.items():
        metrics = ", ".join(r.metric for r in config.get_registers_for(name))
        print(f"    - {name} {endpoint.host}:{endpoint.port} unit={endpoint.unit_id}: {metrics}")
    if config.derived:
        print(f"  Derived:      {', '.join(d.name for d in config.derived)}")
    print("=" * 60)
    print()


async def run(config: PollerConfig, once: bool = False, run_now: bool = False) -> None:
    """Run the poller until shutdown (or for a single tick)."""
    sink = create_sink(config)
    service = PollingService(config, sink)

    if once:
        try:
            await service.tick()
        finally:
            await sink.close()
        return

    if config.health_port:
        await service.start_health_server(config.health_port)

    trigger = ScheduledLoop(
        config.interval_s,
        service.tick,
        offset_seconds=config.offset_s,
        name=config.name,
    )

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, shutdown.set)
        except NotImplementedError:
            signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(shutdown.set))

    if run_now:
        await service.tick()

    await trigger.start()
    logger.info(f"Trigger started: every {config.interval_s:g}s at +{config.offset_s:g}s")

    await shutdown.wait()

    logger.info("Shutting down")
    trigger.stop()
    await trigger.wait_inflight()
    logger.info("Trigger stopped", extra={"trigger": trigger.get_stats()})
    await service.stop_health_server()
    await sink.close()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Poll Modbus field devices into a time-series store")
    parser.add_argument("--config", "-c", default=DEFAULT_CONFIG_PATH, help="Path to YAML config")
    parser.add_argument("--once", action="store_true", help="Run a single tick and exit")
    parser.add_argument("--run-now", action="store_true", help="Tick immediately at startup")
    parser.add_argument("--dry-run", action="store_true", help="Print configuration and exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    if args.verbose:
        set_log_level("DEBUG")

    try:
        config = load_config_file(args.config)
    except FieldPollerError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    print_startup_banner(config)

    if args.dry_run:
        return 0

    try:
        asyncio.run(run(config, once=args.once, run_now=args.run_now))
    except FieldPollerError as e:
        logger.error(f"Startup failed: {e.message}")
        return 1
    except KeyboardInterrupt:
        pass

    return 0


if __name__ == "__main__":
    sys.exit(main())
