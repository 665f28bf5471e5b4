"""
Configuration Dataclasses

Type-safe configuration structures for the poller.
Loaded once at startup from a YAML file and never mutated afterwards.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError
from .logging_setup import get_service_logger

logger = get_service_logger("config")


class DecodeKind(str, Enum):
    """How raw register words become a value"""
    BOOLEAN_DISCRETE = "boolean_discrete"
    UNSIGNED_HOLDING = "unsigned_holding"
    SIGNED_HOLDING = "signed_holding"
    FLOAT32_BE = "float32_be"


class WordOrder(str, Enum):
    """Which register of a 32-bit pair carries the high word"""
    HIGH_FIRST = "high_first"
    LOW_FIRST = "low_first"


class MetricClass(str, Enum):
    """Validation class of a metric (selects its normalization rule)"""
    ACTIVE_POWER = "active_power"
    REACTIVE_POWER = "reactive_power"
    VOLTAGE = "voltage"
    LEVEL = "level"
    FLOW = "flow"


class ActivePowerPolicy(str, Enum):
    """kW sanitization variants; the integrator must pick one"""
    CLAMP_RANGE = "clamp_range"
    MIN_THRESHOLD = "min_threshold"


class StorageType(str, Enum):
    """Row sink implementations"""
    SQLITE = "sqlite"
    REST = "rest"
    CSV = "csv"


# Default register count per decode kind
REGISTER_COUNTS: dict[DecodeKind, int] = {
    DecodeKind.BOOLEAN_DISCRETE: 1,
    DecodeKind.UNSIGNED_HOLDING: 1,
    DecodeKind.SIGNED_HOLDING: 1,
    DecodeKind.FLOAT32_BE: 2,
}

# Documented register numbers are 1-based for holding and discrete tables
ADDRESS_BASE_OFFSET = 1


@dataclass(frozen=True)
class DeviceEndpoint:
    """One field device reachable over Modbus TCP"""
    name: str
    host: str
    port: int = 502
    unit_id: int = 1
    connect_timeout_s: float = 5.0
    read_timeout_s: float = 3.0

    @property
    def key(self) -> tuple[str, int, int]:
        """Identity used to serialize reads against the same device"""
        return (self.host, self.port, self.unit_id)


@dataclass(frozen=True)
class LinearTransform:
    """value * scale + offset, declared in YAML for a single metric"""
    scale: float = 1.0
    offset: float = 0.0

    def __call__(self, value: float) -> float:
        return value * self.scale + self.offset


@dataclass(frozen=True)
class RegisterSpec:
    """One metric read from one device register (or register pair)"""
    metric: str
    endpoint: DeviceEndpoint
    address: int  # wire address, zero-based
    kind: DecodeKind | str
    metric_class: MetricClass
    table: str
    count: int = 1
    word_order: WordOrder = WordOrder.HIGH_FIRST
    scale: float = 1.0
    column: str = ""
    persist: bool = True
    description: str = ""
    transform: LinearTransform | None = None

    @property
    def column_name(self) -> str:
        return self.column or self.metric


@dataclass(frozen=True)
class DerivedVoltage:
    """Single voltage value chosen from two redundant sources"""
    name: str
    primary: str
    fallback: str
    table: str
    multiplier: float = 10.0
    column: str = ""

    @property
    def column_name(self) -> str:
        return self.column or self.name


@dataclass
class StorageSettings:
    """Where validated rows go"""
    type: StorageType = StorageType.SQLITE
    path: str = "data/fieldpoller.db"  # sqlite file or csv directory
    url: str = ""  # rest base url
    api_key: str = ""
    timeout_s: float = 10.0


@dataclass
class PollerConfig:
    """Complete poller configuration"""
    name: str
    active_power_policy: ActivePowerPolicy
    interval_s: float = 60.0
    offset_s: float = 0.0
    granularity_s: float = 60.0
    timezone: str = "America/Tegucigalpa"
    min_active_kw: float = 100.0
    max_active_kw: float = 1000.0
    overrun_fraction: float = 0.8
    health_port: int = 0

    devices: dict[str, DeviceEndpoint] = field(default_factory=dict)
    registers: list[RegisterSpec] = field(default_factory=list)
    derived: list[DerivedVoltage] = field(default_factory=list)
    storage: StorageSettings = field(default_factory=StorageSettings)

    def get_tables(self) -> dict[str, list[str]]:
        """Columns written per table, in declaration order"""
        tables: dict[str, list[str]] = {}
        for spec in self.registers:
            if spec.persist:
                tables.setdefault(spec.table, []).append(spec.column_name)
        for derived in self.derived:
            tables.setdefault(derived.table, []).append(derived.column_name)
        return tables

    def get_registers_for(self, device_name: str) -> list[RegisterSpec]:
        return [r for r in self.registers if r.endpoint.name == device_name]


def to_wire_address(documented_address: int) -> int:
    """Documented (1-based) register number -> zero-based wire address"""
    return documented_address - ADDRESS_BASE_OFFSET


def _parse_kind(raw: str, metric: str) -> DecodeKind | str:
    try:
        return DecodeKind(raw)
    except ValueError:
        # Reads of this metric will fail; the rest of the batch is unaffected
        logger.error(f"Unknown decode kind '{raw}' for metric {metric}")
        return raw


def _load_endpoint(name: str, d: dict) -> DeviceEndpoint:
    return DeviceEndpoint(
        name=name,
        host=d["host"],
        port=d.get("port", 502),
        unit_id=d.get("unit_id", d.get("slave_id", 1)),
        connect_timeout_s=d.get("connect_timeout_s", 5.0),
        read_timeout_s=d.get("read_timeout_s", 3.0),
    )


def _load_register(r: dict, devices: dict[str, DeviceEndpoint]) -> RegisterSpec:
    metric = r["metric"]
    kind = _parse_kind(r.get("kind", "unsigned_holding"), metric)

    if "address" in r:
        address = r["address"]
    else:
        address = to_wire_address(r["documented_address"])

    default_count = REGISTER_COUNTS.get(kind, 1) if isinstance(kind, DecodeKind) else 1

    transform = None
    if r.get("transform"):
        transform = LinearTransform(
            scale=r["transform"].get("scale", 1.0),
            offset=r["transform"].get("offset", 0.0),
        )

    return RegisterSpec(
        metric=metric,
        endpoint=devices[r["device"]],
        address=address,
        kind=kind,
        metric_class=MetricClass(r["class"]),
        table=r["table"],
        count=r.get("count", default_count),
        word_order=WordOrder(r.get("word_order", "high_first")),
        scale=r.get("scale", 1.0),
        column=r.get("column", ""),
        persist=r.get("persist", True),
        description=r.get("description", metric),
        transform=transform,
    )


def load_poller_config(data: dict[str, Any]) -> PollerConfig:
    """Load PollerConfig from dictionary (e.g., parsed YAML)"""
    # Deferred: the validator imports enums from this module
    from .validator import ConfigValidator

    is_valid, errors = ConfigValidator().validate(data)
    if not is_valid:
        raise ConfigError("; ".join(errors))

    devices = {
        name: _load_endpoint(name, d)
        for name, d in data.get("devices", {}).items()
    }

    registers = [_load_register(r, devices) for r in data.get("registers", [])]

    derived = [
        DerivedVoltage(
            name=d["name"],
            primary=d["primary"],
            fallback=d["fallback"],
            table=d["table"],
            multiplier=d.get("multiplier", 10.0),
            column=d.get("column", ""),
        )
        for d in data.get("derived", [])
    ]

    storage_data = data.get("storage", {})
    storage = StorageSettings(
        type=StorageType(storage_data.get("type", "sqlite")),
        path=storage_data.get("path", "data/fieldpoller.db"),
        url=storage_data.get("url", ""),
        api_key=storage_data.get("api_key", ""),
        timeout_s=storage_data.get("timeout_s", 10.0),
    )

    return PollerConfig(
        name=data.get("name", "fieldpoller"),
        active_power_policy=ActivePowerPolicy(data["active_power_policy"]),
        interval_s=data.get("interval_s", 60.0),
        offset_s=data.get("offset_s", 0.0),
        granularity_s=data.get("granularity_s", 60.0),
        timezone=data.get("timezone", "America/Tegucigalpa"),
        min_active_kw=data.get("min_active_kw", 100.0),
        max_active_kw=data.get("max_active_kw", 1000.0),
        overrun_fraction=data.get("overrun_fraction", 0.8),
        health_port=data.get("health_port", 0),
        devices=devices,
        registers=registers,
        derived=derived,
        storage=storage,
    )


def load_config_file(config_path: str) -> PollerConfig:
    """
    Load configuration from YAML file.

    Raises:
        ConfigError: file missing, unparsable or invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    return load_poller_config(data)
