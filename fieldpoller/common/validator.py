"""
Configuration Validator

Validates the raw configuration dictionary before it is turned into
dataclasses. Table and column names end up in SQL statements and URLs,
so they are restricted to plain identifiers here.
"""

import re
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .config import ActivePowerPolicy, MetricClass, StorageType, WordOrder
from .logging_setup import get_service_logger

logger = get_service_logger("config.validator")

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ConfigValidator:
    """Validates poller configuration"""

    def validate(self, config: dict[str, Any]) -> tuple[bool, list[str]]:
        """
        Validate configuration.

        Args:
            config: Configuration dictionary

        Returns:
            Tuple of (is_valid, list of error messages)
        """
        errors: list[str] = []

        errors.extend(self._validate_policy(config))
        errors.extend(self._validate_timing(config))

        device_errors, device_names = self._validate_devices(config)
        errors.extend(device_errors)

        register_errors, metrics = self._validate_registers(config, device_names)
        errors.extend(register_errors)

        errors.extend(self._validate_derived(config, metrics))
        errors.extend(self._validate_storage(config))

        is_valid = len(errors) == 0

        if not is_valid:
            logger.warning(
                f"Config validation failed: {len(errors)} errors",
                extra={"errors": errors},
            )
        else:
            logger.debug("Config validation passed")

        return is_valid, errors

    def _validate_policy(self, config: dict) -> list[str]:
        choices = ", ".join(p.value for p in ActivePowerPolicy)
        policy = config.get("active_power_policy")
        if not policy:
            return [f"Missing active_power_policy (one of: {choices})"]
        if policy not in {p.value for p in ActivePowerPolicy}:
            return [f"Unknown active_power_policy '{policy}' (one of: {choices})"]
        return []

    def _validate_timing(self, config: dict) -> list[str]:
        errors = []

        for key in ("interval_s", "granularity_s"):
            value = config.get(key, 60.0)
            if not isinstance(value, (int, float)) or value <= 0:
                errors.append(f"{key} must be a positive number")

        offset = config.get("offset_s", 0.0)
        interval = config.get("interval_s", 60.0)
        if isinstance(offset, (int, float)) and isinstance(interval, (int, float)):
            if offset < 0 or (interval > 0 and offset >= interval):
                errors.append("offset_s must be within [0, interval_s)")

        fraction = config.get("overrun_fraction", 0.8)
        if not isinstance(fraction, (int, float)) or not 0 < fraction <= 1:
            errors.append("overrun_fraction must be in (0, 1]")

        tz_name = config.get("timezone", "America/Tegucigalpa")
        try:
            ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError, TypeError):
            errors.append(f"Unknown timezone '{tz_name}'")

        return errors

    def _validate_devices(self, config: dict) -> tuple[list[str], set[str]]:
        errors = []
        devices = config.get("devices") or {}

        if not isinstance(devices, dict) or not devices:
            return ["No devices configured"], set()

        for name, device in devices.items():
            if not isinstance(device, dict) or not device.get("host"):
                errors.append(f"Device {name}: missing host")

        return errors, set(devices)

    def _validate_registers(
        self,
        config: dict,
        device_names: set[str],
    ) -> tuple[list[str], dict[str, str]]:
        errors = []
        metrics: dict[str, str] = {}  # metric -> class
        registers = config.get("registers") or []

        if not registers:
            errors.append("No registers configured")

        for i, reg in enumerate(registers):
            metric = reg.get("metric")
            label = metric or f"registers[{i}]"

            if not metric:
                errors.append(f"{label}: missing metric name")
            elif metric in metrics:
                errors.append(f"{label}: duplicate metric name")

            if reg.get("device") not in device_names:
                errors.append(f"{label}: unknown device '{reg.get('device')}'")

            if "address" in reg:
                if not isinstance(reg["address"], int) or reg["address"] < 0:
                    errors.append(f"{label}: address must be a non-negative integer")
            elif "documented_address" in reg:
                documented = reg["documented_address"]
                if not isinstance(documented, int) or documented < 1:
                    errors.append(f"{label}: documented_address must be >= 1")
            else:
                errors.append(f"{label}: missing address or documented_address")

            metric_class = reg.get("class")
            if metric_class not in {c.value for c in MetricClass}:
                errors.append(f"{label}: unknown class '{metric_class}'")

            if reg.get("word_order", "high_first") not in {w.value for w in WordOrder}:
                errors.append(f"{label}: unknown word_order '{reg.get('word_order')}'")

            errors.extend(self._check_identifiers(label, reg))

            if metric:
                metrics[metric] = metric_class

        return errors, metrics

    def _validate_derived(self, config: dict, metrics: dict[str, str]) -> list[str]:
        errors = []

        for i, derived in enumerate(config.get("derived") or []):
            label = derived.get("name") or f"derived[{i}]"

            if not derived.get("name"):
                errors.append(f"{label}: missing name")
            elif derived["name"] in metrics:
                errors.append(f"{label}: name collides with a register metric")

            for source in ("primary", "fallback"):
                ref = derived.get(source)
                if ref not in metrics:
                    errors.append(f"{label}: {source} '{ref}' is not a configured metric")
                elif metrics[ref] != MetricClass.VOLTAGE.value:
                    errors.append(f"{label}: {source} '{ref}' is not a voltage metric")

            errors.extend(self._check_identifiers(label, derived))

        return errors

    def _validate_storage(self, config: dict) -> list[str]:
        storage = config.get("storage") or {}
        storage_type = storage.get("type", "sqlite")

        if storage_type not in {s.value for s in StorageType}:
            return [f"Unknown storage type '{storage_type}'"]

        if storage_type == StorageType.REST.value and not storage.get("url"):
            return ["REST storage requires storage.url"]

        return []

    def _check_identifiers(self, label: str, entry: dict) -> list[str]:
        errors = []

        table = entry.get("table")
        if not table or not IDENTIFIER_RE.match(str(table)):
            errors.append(f"{label}: invalid table name '{table}'")

        column = entry.get("column")
        if column is not None and not IDENTIFIER_RE.match(str(column)):
            errors.append(f"{label}: invalid column name '{column}'")
        if column is None and entry.get("persist", True):
            # Column defaults to the metric/derived name
            name = entry.get("metric") or entry.get("name") or ""
            if name and not IDENTIFIER_RE.match(str(name)):
                errors.append(f"{label}: name is not a valid column, set 'column'")

        return errors
