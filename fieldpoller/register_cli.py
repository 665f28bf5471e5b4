#!/usr/bin/env python3
"""
Register CLI - Diagnostic Modbus Reads

One-shot tool for checking what a device answers before wiring it into
the poller config. Connects once, reads each address in turn, prints JSON.

Usage:
    # Holding registers on an explicit host
    fieldpoller-registers --host 192.168.0.130 --addresses 1631,1632

    # Signed values from a device declared in config.yaml
    fieldpoller-registers --config config.yaml --device kwreport_130 \\
        --addresses 1631 --kind signed

    # Discrete inputs (wire addresses)
    fieldpoller-registers --host 192.168.7.10 --addresses 39,40 --kind discrete

Exit code is 1 when the connection fails or nothing could be read.
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime, timezone

from fieldpoller.common.config import DecodeKind, DeviceEndpoint, load_config_file
from fieldpoller.common.exceptions import FieldPollerError
from fieldpoller.services.device.decoder import decode_words
from fieldpoller.services.device.modbus_client import ModbusClient

KIND_CHOICES = {
    "holding": DecodeKind.UNSIGNED_HOLDING,
    "signed": DecodeKind.SIGNED_HOLDING,
    "discrete": DecodeKind.BOOLEAN_DISCRETE,
    "float": DecodeKind.FLOAT32_BE,
}


def resolve_endpoint(args: argparse.Namespace) -> DeviceEndpoint:
    """Explicit --host wins; otherwise look the device up in --config."""
    if args.host:
        return DeviceEndpoint(
            name=args.host,
            host=args.host,
            port=args.port,
            unit_id=args.unit,
            connect_timeout_s=args.timeout,
            read_timeout_s=args.timeout,
        )

    config = load_config_file(args.config)
    endpoint = config.devices.get(args.device)
    if endpoint is None:
        raise FieldPollerError(f"Device not found in config: {args.device}", recoverable=False)
    return endpoint


async def read_registers(
    endpoint: DeviceEndpoint,
    addresses: list[int],
    kind: DecodeKind,
    client_factory=ModbusClient,
) -> dict:
    """
    Read addresses sequentially over a single connection.

    Returns:
        {
            "success": bool,
            "device": str,
            "kind": str,
            "readings": {"address": {"raw": [int, ...], "value": ..., "timestamp": str}},
            "errors": ["error message", ...]
        }
    """
    result = {
        "success": False,
        "device": f"{endpoint.host}:{endpoint.port}/{endpoint.unit_id}",
        "kind": kind.value,
        "readings": {},
        "errors": [],
    }

    count = 2 if kind == DecodeKind.FLOAT32_BE else 1
    client = client_factory(endpoint)

    try:
        await client.connect()
    except FieldPollerError as e:
        result["errors"].append(f"Connection error: {e.message}")
        _close(client, result)
        return result

    timestamp = datetime.now(timezone.utc).isoformat()

    for address in addresses:
        try:
            if kind == DecodeKind.BOOLEAN_DISCRETE:
                raw = [int(b) for b in await client.read_discrete_inputs(address, count)]
            else:
                raw = await client.read_holding_registers(address, count)

            value = decode_words(kind, raw)
            result["readings"][str(address)] = {
                "raw": raw,
                "value": int(value) if isinstance(value, bool) else value,
                "timestamp": timestamp,
            }
        except FieldPollerError as e:
            result["errors"].append(f"Failed to read address {address}: {e.message}")
        except Exception as e:
            result["errors"].append(f"Error reading address {address}: {e}")

    _close(client, result)
    result["success"] = len(result["readings"]) > 0
    return result


def _close(client, result: dict) -> None:
    try:
        client.close()
    except Exception as e:
        result["errors"].append(f"Close error: {e}")


def parse_addresses(raw: str) -> list[int]:
    return [int(a.strip()) for a in raw.split(",") if a.strip()]


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Read Modbus registers once and print JSON",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--host", help="Device IP/hostname")
    target.add_argument("--device", help="Device name from --config")
    parser.add_argument("--config", "-c", default="config.yaml", help="Config used with --device")
    parser.add_argument("--port", type=int, default=502)
    parser.add_argument("--unit", type=int, default=1, help="Modbus unit id")
    parser.add_argument("--timeout", type=float, default=3.0, help="Connect/read timeout (s)")
    parser.add_argument("--addresses", required=True, help="Comma-separated wire addresses")
    parser.add_argument("--kind", choices=sorted(KIND_CHOICES), default="holding")

    args = parser.parse_args(argv)

    try:
        addresses = parse_addresses(args.addresses)
    except ValueError:
        print(json.dumps({"success": False, "error": f"Invalid addresses: {args.addresses}"}))
        return 1

    if not addresses:
        print(json.dumps({"success": False, "error": "No addresses specified"}))
        return 1

    try:
        endpoint = resolve_endpoint(args)
    except FieldPollerError as e:
        print(json.dumps({"success": False, "error": e.message}))
        return 1

    result = asyncio.run(read_registers(endpoint, addresses, KIND_CHOICES[args.kind]))
    print(json.dumps(result))
    return 0 if result["success"] else 1


if __name__ == "__main__":
    sys.exit(main())
