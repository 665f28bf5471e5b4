"""Tests for metric sanitization, derived voltage and row grouping."""

import math
from datetime import datetime, timezone

import pytest

from fieldpoller.common.config import (
    ActivePowerPolicy,
    DecodeKind,
    DerivedVoltage,
    LinearTransform,
    MetricClass,
    load_poller_config,
)
from fieldpoller.services.device.reader import ReadResult
from fieldpoller.services.polling.normalizer import (
    NO_DATA,
    Normalizer,
    build_rules,
    derive_voltage,
)
from fieldpoller.services.polling.orchestrator import ReadingResult

BUCKET = datetime(2025, 3, 1, 20, 30, tzinfo=timezone.utc)


def ok(spec, value):
    return ReadingResult(spec.metric, spec, ReadResult.ok(value))


def failed(spec):
    return ReadingResult(spec.metric, spec, ReadResult.failed("timeout"))


def normalize_one(spec, reading, policy=ActivePowerPolicy.CLAMP_RANGE, transforms=None):
    normalizer = Normalizer(build_rules(policy), transforms=transforms)
    rows = normalizer.normalize(BUCKET, [reading])
    assert len(rows) == 1
    return rows[0].values[spec.column_name]


class TestActivePower:
    @pytest.mark.parametrize("raw,expected", [
        (-5, 0),
        (1500, 0),
        (400, 400),
        (1000, 1000),
        (50, 50),
    ])
    def test_clamp_range(self, make_spec, raw, expected):
        spec = make_spec("kw22")
        assert normalize_one(spec, ok(spec, raw)) == expected

    def test_failure_is_zero(self, make_spec):
        spec = make_spec("kw22")
        assert normalize_one(spec, failed(spec)) == 0

    @pytest.mark.parametrize("raw,expected", [
        (50, 0),
        (99, 0),
        (100, 100),
        (400, 400),
        (1500, 0),
        (-5, 0),
    ])
    def test_min_threshold(self, make_spec, raw, expected):
        spec = make_spec("kw22")
        value = normalize_one(spec, ok(spec, raw), policy=ActivePowerPolicy.MIN_THRESHOLD)
        assert value == expected

    def test_custom_bounds(self, make_spec):
        spec = make_spec("kw22")
        rules = build_rules(ActivePowerPolicy.MIN_THRESHOLD, min_active_kw=10, max_active_kw=50)
        rows = Normalizer(rules).normalize(BUCKET, [ok(spec, 60)])
        assert rows[0].values["kw22"] == 0


class TestReactivePower:
    def test_negative_kept(self, make_spec):
        spec = make_spec("kvar22", kind=DecodeKind.SIGNED_HOLDING,
                         metric_class=MetricClass.REACTIVE_POWER)
        assert normalize_one(spec, ok(spec, -120)) == -120

    def test_failure_is_zero(self, make_spec):
        spec = make_spec("kvar22", metric_class=MetricClass.REACTIVE_POWER)
        assert normalize_one(spec, failed(spec)) == 0


class TestPreserveAbsence:
    def test_level_failure_is_no_data(self, make_spec):
        spec = make_spec("1b3", metric_class=MetricClass.LEVEL, table="nivel1b3",
                         column="nivel")
        assert normalize_one(spec, failed(spec)) is NO_DATA

    def test_level_zero_is_kept(self, make_spec):
        spec = make_spec("1b3", metric_class=MetricClass.LEVEL, table="nivel1b3",
                         column="nivel")
        assert normalize_one(spec, ok(spec, 0)) == 0

    def test_flow_failure_is_no_data(self, make_spec):
        spec = make_spec("flow", kind=DecodeKind.FLOAT32_BE,
                         metric_class=MetricClass.FLOW, table="flow")
        assert normalize_one(spec, failed(spec)) is NO_DATA

    def test_discrete_true_becomes_one(self, make_spec):
        spec = make_spec("g21", kind=DecodeKind.BOOLEAN_DISCRETE,
                         metric_class=MetricClass.LEVEL, table="estados")
        value = normalize_one(spec, ok(spec, True))
        assert value == 1
        assert not isinstance(value, bool)


class TestTransforms:
    def test_transform_applied_before_rule(self, make_spec):
        spec = make_spec("1b3", metric_class=MetricClass.LEVEL, table="nivel1b3")
        value = normalize_one(spec, ok(spec, 500), transforms={"1b3": lambda v: v - 369})
        assert value == 131

    def test_raising_transform_is_failure(self, make_spec):
        spec = make_spec("1b3", metric_class=MetricClass.LEVEL, table="nivel1b3")

        def boom(v):
            raise ValueError("bad")

        assert normalize_one(spec, ok(spec, 500), transforms={"1b3": boom}) is NO_DATA

    def test_non_finite_transform_is_failure(self, make_spec):
        spec = make_spec("kw22")
        value = normalize_one(spec, ok(spec, 400), transforms={"kw22": lambda v: math.inf})
        assert value == 0

    def test_nan_reading_is_failure(self, make_spec):
        spec = make_spec("flow", kind=DecodeKind.FLOAT32_BE,
                         metric_class=MetricClass.FLOW, table="flow")
        assert normalize_one(spec, ok(spec, math.nan)) is NO_DATA

    def test_linear_transform(self, make_spec):
        spec = make_spec("1b3", metric_class=MetricClass.LEVEL, table="nivel1b3")
        transform = LinearTransform(scale=1.0, offset=-369)
        assert normalize_one(spec, ok(spec, 400), transforms={"1b3": transform}) == 31

    def test_register_transform(self, make_spec):
        spec = make_spec("kw22")
        normalizer = Normalizer(build_rules(ActivePowerPolicy.CLAMP_RANGE))
        normalizer.register_transform("kw22", lambda v: v * 2)

        rows = normalizer.normalize(BUCKET, [ok(spec, 300)])

        assert rows[0].values["kw22"] == 600


class TestDeriveVoltage:
    @pytest.mark.parametrize("primary,fallback,expected", [
        (0, 230, 2300),
        (138, 0, 1380),
        (138, 230, 1380),
        (None, 230, 2300),
        (None, 0, 0),
        (0, None, 0),
        (None, None, 0),
    ])
    def test_selection(self, primary, fallback, expected):
        assert derive_voltage(primary, fallback) == expected

    def test_multiplier(self):
        assert derive_voltage(23, None, multiplier=100) == 2300

    def test_derived_column_in_row(self, make_spec):
        v22 = make_spec("voltage22", address=1631, metric_class=MetricClass.VOLTAGE,
                        persist=False)
        v21 = make_spec("voltage21", host="10.0.0.2", address=1631,
                        metric_class=MetricClass.VOLTAGE, persist=False)
        derived = DerivedVoltage("voltage", "voltage22", "voltage21", "generacion")
        normalizer = Normalizer(build_rules(ActivePowerPolicy.CLAMP_RANGE), derived=[derived])

        rows = normalizer.normalize(BUCKET, [failed(v22), ok(v21, 230)])

        assert len(rows) == 1
        assert rows[0].values == {"voltage": 2300}


class TestRows:
    def test_grouped_by_table_in_first_seen_order(self, make_spec):
        kw = make_spec("kw22")
        level = make_spec("1b3", host="10.0.0.3", metric_class=MetricClass.LEVEL,
                          table="nivel1b3", column="nivel")
        kvar = make_spec("kvar22", metric_class=MetricClass.REACTIVE_POWER)
        normalizer = Normalizer(build_rules(ActivePowerPolicy.CLAMP_RANGE))

        rows = normalizer.normalize(BUCKET, [ok(kw, 400), ok(level, 80), ok(kvar, -3)])

        assert [r.table for r in rows] == ["generacion", "nivel1b3"]
        assert rows[0].values == {"kw22": 400, "kvar22": -3}
        assert rows[1].values == {"nivel": 80}
        assert all(r.bucket == BUCKET for r in rows)

    def test_non_persisted_metric_not_in_row(self, make_spec):
        kw = make_spec("kw22")
        hidden = make_spec("kw_debug", persist=False)
        normalizer = Normalizer(build_rules(ActivePowerPolicy.CLAMP_RANGE))

        rows = normalizer.normalize(BUCKET, [ok(kw, 400), ok(hidden, 1)])

        assert rows[0].values == {"kw22": 400}


def test_from_config_uses_policy_and_yaml_transforms(config_data):
    config_data["active_power_policy"] = "min_threshold"
    config_data["registers"][4]["transform"] = {"offset": -369}
    config = load_poller_config(config_data)
    normalizer = Normalizer.from_config(config)

    kw, _, _, _, level = config.registers
    rows = normalizer.normalize(BUCKET, [ok(kw, 50), ok(level, 400)])
    values = {r.table: r.values for r in rows}

    assert values["generacion"]["kw_a"] == 0
    assert values["nivel"]["nivel"] == 31
