"""
Shared fixtures for the fieldpoller test suite.

FakeNetwork stands in for the Modbus TCP layer: each host maps to a
FakeDevice with canned register contents and optional failures, and
FakeNetwork.factory is passed to DeviceReader as its client factory.
"""

import asyncio
import copy

import pytest

from fieldpoller.common.config import DecodeKind, DeviceEndpoint, MetricClass, RegisterSpec
from fieldpoller.common.exceptions import DeviceError


class FakeDevice:
    """Register contents and failure modes of one simulated device."""

    def __init__(
        self,
        holding: dict[int, list[int]] | None = None,
        discrete: dict[int, list[bool]] | None = None,
        connect_error: Exception | None = None,
        read_error: Exception | None = None,
        close_error: Exception | None = None,
        delay: float = 0.0,
    ):
        self.holding = holding or {}
        self.discrete = discrete or {}
        self.connect_error = connect_error
        self.read_error = read_error
        self.close_error = close_error
        self.delay = delay

        self.connects = 0
        self.closes = 0
        self.reads: list[int] = []
        self.active = 0
        self.max_active = 0


class FakeNetwork:
    """Hosts -> FakeDevice, plus global in-flight read accounting."""

    def __init__(self):
        self.devices: dict[str, FakeDevice] = {}
        self.active = 0
        self.max_active = 0

    def add(self, host: str, **kwargs) -> FakeDevice:
        device = FakeDevice(**kwargs)
        self.devices[host] = device
        return device

    def factory(self, endpoint: DeviceEndpoint) -> "FakeModbusClient":
        return FakeModbusClient(endpoint, self)


class FakeModbusClient:
    """Same surface as fieldpoller.services.device.modbus_client.ModbusClient."""

    def __init__(self, endpoint: DeviceEndpoint, network: FakeNetwork):
        self.endpoint = endpoint
        self.network = network

    @property
    def device(self) -> FakeDevice:
        return self.network.devices[self.endpoint.host]

    async def connect(self) -> None:
        self.device.connects += 1
        if self.device.connect_error is not None:
            raise self.device.connect_error

    async def read_holding_registers(self, address: int, count: int = 1) -> list[int]:
        await self._enter(address)
        if address not in self.device.holding:
            raise DeviceError("Modbus error: illegal address", self.endpoint.name, address)
        return list(self.device.holding[address][:count])

    async def read_discrete_inputs(self, address: int, count: int = 1) -> list[bool]:
        await self._enter(address)
        if address not in self.device.discrete:
            raise DeviceError("Modbus error: illegal address", self.endpoint.name, address)
        return list(self.device.discrete[address][:count])

    def close(self) -> None:
        self.device.closes += 1
        if self.device.close_error is not None:
            raise self.device.close_error

    async def _enter(self, address: int) -> None:
        device = self.device
        device.reads.append(address)

        device.active += 1
        device.max_active = max(device.max_active, device.active)
        self.network.active += 1
        self.network.max_active = max(self.network.max_active, self.network.active)
        try:
            if device.delay:
                await asyncio.sleep(device.delay)
            if device.read_error is not None:
                raise device.read_error
        finally:
            device.active -= 1
            self.network.active -= 1


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


BASE_CONFIG = {
    "name": "test-plant",
    "active_power_policy": "clamp_range",
    "min_active_kw": 100,
    "max_active_kw": 1000,
    "interval_s": 60,
    "offset_s": 20,
    "granularity_s": 60,
    "timezone": "America/Tegucigalpa",
    "devices": {
        "gen_a": {"host": "10.0.0.1"},
        "gen_b": {"host": "10.0.0.2"},
        "tank": {"host": "10.0.0.3"},
    },
    "registers": [
        {"metric": "kw_a", "device": "gen_a", "address": 1633,
         "kind": "unsigned_holding", "class": "active_power", "table": "generacion"},
        {"metric": "kvar_a", "device": "gen_a", "address": 1635,
         "kind": "signed_holding", "class": "reactive_power", "table": "generacion"},
        {"metric": "voltage_a", "device": "gen_a", "address": 1631,
         "kind": "unsigned_holding", "class": "voltage", "table": "generacion",
         "persist": False},
        {"metric": "voltage_b", "device": "gen_b", "address": 1631,
         "kind": "unsigned_holding", "class": "voltage", "table": "generacion",
         "persist": False},
        {"metric": "tank_level", "device": "tank", "address": 103,
         "kind": "unsigned_holding", "class": "level", "table": "nivel", "column": "nivel"},
    ],
    "derived": [
        {"name": "voltage", "primary": "voltage_a", "fallback": "voltage_b",
         "table": "generacion"},
    ],
    "storage": {"type": "sqlite", "path": "data/test.db"},
}


@pytest.fixture
def config_data() -> dict:
    """Fresh, mutable copy of a valid configuration dictionary."""
    return copy.deepcopy(BASE_CONFIG)


@pytest.fixture
def make_spec():
    """Factory for RegisterSpec with one endpoint per host."""
    endpoints: dict[str, DeviceEndpoint] = {}

    def _make(
        metric: str,
        host: str = "10.0.0.1",
        address: int = 0,
        kind: DecodeKind | str = DecodeKind.UNSIGNED_HOLDING,
        metric_class: MetricClass = MetricClass.ACTIVE_POWER,
        table: str = "generacion",
        **kwargs,
    ) -> RegisterSpec:
        endpoint = endpoints.setdefault(host, DeviceEndpoint(name=f"dev-{host}", host=host))
        if "count" not in kwargs:
            kwargs["count"] = 2 if kind == DecodeKind.FLOAT32_BE else 1
        return RegisterSpec(
            metric=metric,
            endpoint=endpoint,
            address=address,
            kind=kind,
            metric_class=metric_class,
            table=table,
            **kwargs,
        )

    return _make
