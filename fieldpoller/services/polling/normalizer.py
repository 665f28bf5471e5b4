"""
Validator / Normalizer

Turns one tick's ReadingResults into storage-ready rows.

Two sanitization policies apply, selected per metric class by RULES:
- zero-is-safe (power, voltage): any failure or anomaly becomes 0, since
  a generator reading garbage is more plausibly off than running backwards
- preserve-absence (level, flow): a failed reading becomes None, so a
  broken sensor never shows up as an empty tank

Per-metric transforms run on successful raw values before the class rule.
A transform that raises or yields a non-finite number counts as a failure.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable

from fieldpoller.common.config import (
    ActivePowerPolicy,
    DerivedVoltage,
    MetricClass,
    PollerConfig,
    RegisterSpec,
)
from fieldpoller.common.exceptions import TransformError
from fieldpoller.common.logging_setup import get_service_logger
from .orchestrator import ReadingResult

logger = get_service_logger("polling.normalizer")

# Explicit "no data" marker for preserve-absence metrics (NULL / empty cell)
NO_DATA = None

Transform = Callable[[float], float]


@dataclass(frozen=True)
class MetricRule:
    """Normalization rule for one metric class"""
    failure_value: float | None
    negative_to_zero: bool = False
    max_value: float | None = None  # above -> 0
    min_value: float | None = None  # below -> 0

    def apply(self, value: float) -> float:
        if self.negative_to_zero and value < 0:
            return 0
        if self.max_value is not None and value > self.max_value:
            return 0
        if self.min_value is not None and value < self.min_value:
            return 0
        return value


def build_rules(
    policy: ActivePowerPolicy,
    min_active_kw: float = 100.0,
    max_active_kw: float = 1000.0,
) -> dict[MetricClass, MetricRule]:
    """
    Rule table for every metric class.

    clamp_range:   kW failure/negative/>max -> 0
    min_threshold: same, and kW below min_active_kw -> 0
    """
    active_min = min_active_kw if policy == ActivePowerPolicy.MIN_THRESHOLD else None

    return {
        MetricClass.ACTIVE_POWER: MetricRule(
            failure_value=0,
            negative_to_zero=True,
            max_value=max_active_kw,
            min_value=active_min,
        ),
        MetricClass.REACTIVE_POWER: MetricRule(failure_value=0),
        MetricClass.VOLTAGE: MetricRule(failure_value=0),
        MetricClass.LEVEL: MetricRule(failure_value=NO_DATA),
        MetricClass.FLOW: MetricRule(failure_value=NO_DATA),
    }


def derive_voltage(
    primary: float | None,
    fallback: float | None,
    multiplier: float = 10.0,
) -> float:
    """
    Pick one voltage from two redundant sources.

    None means the source failed. The primary wins when it read a nonzero
    value; otherwise the fallback is used as read (even 0); with neither
    available the result is 0.

    Examples:
        (0, 230)       -> 2300
        (138, 0)       -> 1380
        (None, None)   -> 0
    """
    if primary is not None and primary != 0:
        base = primary
    elif fallback is not None:
        base = fallback
    else:
        return 0
    return base * multiplier


@dataclass
class ValidatedRow:
    """Storage-ready values of one table for one time bucket"""
    table: str
    bucket: datetime
    values: dict[str, float | int | None] = field(default_factory=dict)


class Normalizer:
    """Applies the rule table, transforms and derivations to a tick's readings"""

    def __init__(
        self,
        rules: dict[MetricClass, MetricRule],
        derived: Iterable[DerivedVoltage] = (),
        transforms: dict[str, Transform] | None = None,
    ):
        self._rules = rules
        self._derived = list(derived)
        self._transforms = dict(transforms or {})

    @classmethod
    def from_config(
        cls,
        config: PollerConfig,
        transforms: dict[str, Transform] | None = None,
    ) -> "Normalizer":
        """Build from config; `transforms` override YAML-declared ones per metric."""
        merged: dict[str, Transform] = {
            spec.metric: spec.transform
            for spec in config.registers
            if spec.transform is not None
        }
        merged.update(transforms or {})

        rules = build_rules(
            config.active_power_policy,
            min_active_kw=config.min_active_kw,
            max_active_kw=config.max_active_kw,
        )
        return cls(rules, derived=config.derived, transforms=merged)

    def register_transform(self, metric: str, transform: Transform) -> None:
        self._transforms[metric] = transform

    def normalize(
        self,
        bucket: datetime,
        readings: list[ReadingResult],
    ) -> list[ValidatedRow]:
        """
        Build one row per table for this bucket.

        Args:
            bucket: Aligned time bucket of the tick
            readings: Orchestrator output

        Returns:
            Rows in first-seen table order
        """
        rows: dict[str, ValidatedRow] = {}
        sources: dict[str, float | None] = {}

        for reading in readings:
            spec = reading.spec
            raw = self._raw_value(reading)

            if spec.metric_class == MetricClass.VOLTAGE:
                sources[spec.metric] = raw

            if not spec.persist:
                continue

            row = rows.setdefault(spec.table, ValidatedRow(spec.table, bucket))
            row.values[spec.column_name] = self._apply_rule(spec, raw)

        for derived in self._derived:
            value = derive_voltage(
                sources.get(derived.primary),
                sources.get(derived.fallback),
                derived.multiplier,
            )
            row = rows.setdefault(derived.table, ValidatedRow(derived.table, bucket))
            row.values[derived.column_name] = value

        return list(rows.values())

    def _raw_value(self, reading: ReadingResult) -> float | None:
        """Transformed value, or None if the read or the transform failed"""
        if not reading.ok:
            return None

        spec = reading.spec
        value = reading.result.value
        if isinstance(value, bool):
            value = int(value)

        try:
            value = self._transform(spec, value)
        except TransformError as e:
            logger.warning(f"{spec.metric}: {e.message}, treating as failure")
            return None

        return value

    def _transform(self, spec: RegisterSpec, value: float) -> float:
        transform = self._transforms.get(spec.metric)

        if transform is not None:
            try:
                value = transform(value)
            except Exception as e:
                raise TransformError(f"transform raised {e!r}", metric=spec.metric) from e

        try:
            finite = math.isfinite(value)
        except TypeError:
            raise TransformError(f"non-numeric value {value!r}", metric=spec.metric)
        if not finite:
            raise TransformError(f"non-finite value {value!r}", metric=spec.metric)

        return value

    def _apply_rule(self, spec: RegisterSpec, raw: float | None) -> float | None:
        rule = self._rules[spec.metric_class]

        if raw is None:
            return rule.failure_value

        value = rule.apply(raw)
        if value != raw:
            logger.warning(
                f"Value {raw} for {spec.metric} outside accepted range, recording {value}",
                extra={"metric": spec.metric, "raw": raw, "value": value},
            )
        return value
