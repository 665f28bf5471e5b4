"""Tests for the diagnostic register CLI."""

import asyncio
import json

import yaml

from fieldpoller import register_cli
from fieldpoller.common.config import DecodeKind, DeviceEndpoint
from fieldpoller.common.exceptions import CommunicationError

ENDPOINT = DeviceEndpoint(name="gen22", host="10.0.0.1")


def test_reads_addresses_over_one_connection(network):
    device = network.add("10.0.0.1", holding={1631: [230], 1635: [65416]})

    result = asyncio.run(register_cli.read_registers(
        ENDPOINT, [1631, 1635], DecodeKind.SIGNED_HOLDING, client_factory=network.factory,
    ))

    assert result["success"]
    assert result["readings"]["1631"]["value"] == 230
    assert result["readings"]["1635"]["value"] == -120
    assert result["readings"]["1635"]["raw"] == [65416]
    assert device.connects == 1
    assert device.closes == 1


def test_partial_failure_still_succeeds(network):
    network.add("10.0.0.1", holding={1631: [230]})

    result = asyncio.run(register_cli.read_registers(
        ENDPOINT, [1631, 9999], DecodeKind.UNSIGNED_HOLDING, client_factory=network.factory,
    ))

    assert result["success"]
    assert "9999" not in result["readings"]
    assert any("9999" in e for e in result["errors"])


def test_discrete_values_are_ints(network):
    network.add("10.0.0.1", discrete={39: [True]})

    result = asyncio.run(register_cli.read_registers(
        ENDPOINT, [39], DecodeKind.BOOLEAN_DISCRETE, client_factory=network.factory,
    ))

    assert result["readings"]["39"]["value"] == 1


def test_connect_failure(network):
    device = network.add(
        "10.0.0.1",
        connect_error=CommunicationError("Connect timeout after 5.0s", host="10.0.0.1"),
    )

    result = asyncio.run(register_cli.read_registers(
        ENDPOINT, [1631], DecodeKind.UNSIGNED_HOLDING, client_factory=network.factory,
    ))

    assert not result["success"]
    assert "Connect timeout" in result["errors"][0]
    assert device.closes == 1


def test_close_error_reported_not_raised(network):
    network.add("10.0.0.1", holding={1631: [230]}, close_error=OSError("reset by peer"))

    result = asyncio.run(register_cli.read_registers(
        ENDPOINT, [1631], DecodeKind.UNSIGNED_HOLDING, client_factory=network.factory,
    ))

    assert result["success"]
    assert any("Close error" in e for e in result["errors"])


def test_main_exit_codes(monkeypatch, capsys):
    async def fake_read(endpoint, addresses, kind):
        return {"success": kind == DecodeKind.UNSIGNED_HOLDING, "readings": {}, "errors": []}

    monkeypatch.setattr(register_cli, "read_registers", fake_read)

    assert register_cli.main(["--host", "10.0.0.1", "--addresses", "1631"]) == 0
    assert register_cli.main(["--host", "10.0.0.1", "--addresses", "39", "--kind", "discrete"]) == 1
    assert register_cli.main(["--host", "10.0.0.1", "--addresses", "x"]) == 1

    last = capsys.readouterr().out.strip().splitlines()[-1]
    assert json.loads(last)["success"] is False


def test_main_unknown_device(tmp_path, config_data, capsys):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(config_data))

    code = register_cli.main(["--config", str(path), "--device", "ghost", "--addresses", "1"])

    assert code == 1
    assert "ghost" in capsys.readouterr().out
