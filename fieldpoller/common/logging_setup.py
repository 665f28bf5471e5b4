"""
Structured Logging Setup

Every component logs through `get_service_logger(name)`, which returns an
adapter tagging records with the component name. Output goes to stdout,
one JSON object per line (or a plain text line for local debugging).

Environment:
    FIELDPOLLER_LOG_LEVEL   DEBUG | INFO | WARNING | ERROR (default INFO)
    FIELDPOLLER_LOG_FORMAT  json | text (default json)

Log timestamps are always UTC and are produced here only; the time buckets
carried by readings and rows are formatted by the sinks.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

LOGGER_PREFIX = "fieldpoller"

# Attributes every LogRecord carries; anything else came in through `extra`
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "service", "taskName"}

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per record, extras included as top-level keys"""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service", "unknown"),
            "logger": record.name,
            "message": record.getMessage(),
        }

        entry.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS
        )

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        # Buckets and decoded values are not always JSON-native
        return json.dumps(entry, default=str)


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Adds the component name to every record"""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        extra = kwargs.setdefault("extra", {})
        extra["service"] = self.extra.get("service", "unknown")
        return msg, kwargs


def _parse_level(log_level: str) -> int:
    return getattr(logging, log_level.upper(), logging.INFO)


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    json_format: bool = True,
) -> logging.Logger:
    """
    Configure the logger of one component.

    Args:
        service_name: Component name, e.g. "device.reader" or "polling"
        log_level: Level name; unknown names fall back to INFO
        json_format: JSON lines (production) or plain text

    Returns:
        The `fieldpoller.<service_name>` logger with a single stdout handler
    """
    level = _parse_level(log_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(
        JsonFormatter() if json_format
        else logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    )

    logger = logging.getLogger(f"{LOGGER_PREFIX}.{service_name}")
    logger.setLevel(level)
    logger.handlers[:] = [handler]
    logger.propagate = False

    return logger


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    """Logger adapter for a component, configured from the environment"""
    logger = setup_logging(
        service_name,
        log_level=os.environ.get("FIELDPOLLER_LOG_LEVEL", "INFO"),
        json_format=os.environ.get("FIELDPOLLER_LOG_FORMAT", "json").lower() == "json",
    )
    return ServiceLoggerAdapter(logger, {"service": service_name})


def set_log_level(log_level: str) -> None:
    """Change the level of every fieldpoller logger already created (--verbose)"""
    level = _parse_level(log_level)
    for name, logger in logging.Logger.manager.loggerDict.items():
        if not name.startswith(f"{LOGGER_PREFIX}.") or not isinstance(logger, logging.Logger):
            continue
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)


# ============================================
# Helpers for recurring events
# ============================================

def log_device_read(
    logger: logging.Logger | logging.LoggerAdapter,
    device_name: str,
    metric: str,
    value: Any,
    success: bool = True,
    description: str = "",
    error: str | None = None,
) -> None:
    """One register read: debug on success, warning on failure"""
    if success:
        logger.debug(
            f"Read {device_name}.{metric} = {value}",
            extra={"device": device_name, "metric": metric, "value": value},
        )
        return

    logger.warning(
        f"Failed to read {device_name}.{metric} ({description}): {error}",
        extra={
            "device": device_name,
            "metric": metric,
            "description": description,
            "error": error,
        },
    )


def log_cycle(
    logger: logging.Logger | logging.LoggerAdapter,
    bucket: Any,
    reads_ok: int,
    reads_failed: int,
    rows_written: int,
    execution_time_ms: float,
) -> None:
    """Summary line of one completed polling cycle"""
    logger.info(
        f"Cycle {bucket}: reads ok={reads_ok} failed={reads_failed}, "
        f"rows={rows_written}, exec={execution_time_ms:.0f}ms",
        extra={
            "bucket": bucket,
            "reads_ok": reads_ok,
            "reads_failed": reads_failed,
            "rows_written": rows_written,
            "execution_time_ms": execution_time_ms,
        },
    )
