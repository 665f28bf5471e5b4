"""
Async Modbus Client

Wrapper around pymodbus exposing only the read primitive the pipeline
consumes: connect, read discrete inputs, read holding registers, close.

Connect and read carry separate bounds (connect_timeout_s, read_timeout_s).
pymodbus' own retry loop is disabled; one call is one attempt.
"""

import asyncio

from pymodbus.client import AsyncModbusTcpClient
from pymodbus.exceptions import ModbusException

from fieldpoller.common.config import DeviceEndpoint
from fieldpoller.common.exceptions import CommunicationError, DeviceError
from fieldpoller.common.logging_setup import get_service_logger

logger = get_service_logger("device.modbus")


class ModbusClient:
    """
    Single-use async Modbus TCP connection to one endpoint.

    All failures surface as CommunicationError (transport) or
    DeviceError (device answered with something unusable).
    """

    def __init__(self, endpoint: DeviceEndpoint):
        self.endpoint = endpoint
        self._client: AsyncModbusTcpClient | None = None

    async def connect(self) -> None:
        """Open the TCP connection within connect_timeout_s."""
        ep = self.endpoint
        self._client = AsyncModbusTcpClient(
            host=ep.host,
            port=ep.port,
            timeout=ep.connect_timeout_s,
            retries=0,
        )

        try:
            connected = await asyncio.wait_for(
                self._client.connect(),
                timeout=ep.connect_timeout_s,
            )
        except asyncio.TimeoutError:
            raise CommunicationError(
                f"Connect timeout after {ep.connect_timeout_s}s",
                device_name=ep.name,
                host=ep.host,
                port=ep.port,
            )
        except (ModbusException, OSError) as e:
            raise CommunicationError(
                f"Connection error: {e}",
                device_name=ep.name,
                host=ep.host,
                port=ep.port,
            ) from e

        if not connected:
            raise CommunicationError(
                f"Failed to connect to {ep.host}:{ep.port}",
                device_name=ep.name,
                host=ep.host,
                port=ep.port,
            )

        logger.debug(f"Connected to Modbus device at {ep.host}:{ep.port}")

    async def read_discrete_inputs(self, address: int, count: int = 1) -> list[bool]:
        """FC2 read; returns exactly `count` bits."""
        response = await self._request(
            "read_discrete_inputs",
            address,
            count,
        )
        # pymodbus pads bits to a multiple of 8
        return list(response.bits[:count])

    async def read_holding_registers(self, address: int, count: int = 1) -> list[int]:
        """FC3 read; returns the raw 16-bit words."""
        response = await self._request(
            "read_holding_registers",
            address,
            count,
        )
        return list(response.registers)

    def close(self) -> None:
        """Close the connection. Safe to call when never connected."""
        if self._client is not None:
            client, self._client = self._client, None
            client.close()
            logger.debug(f"Disconnected from {self.endpoint.host}:{self.endpoint.port}")

    async def _request(self, method: str, address: int, count: int):
        ep = self.endpoint
        if self._client is None:
            raise CommunicationError(
                f"Not connected to {ep.host}:{ep.port}",
                device_name=ep.name,
                host=ep.host,
                port=ep.port,
            )

        try:
            response = await asyncio.wait_for(
                getattr(self._client, method)(
                    address,
                    count=count,
                    device_id=ep.unit_id,
                ),
                timeout=ep.read_timeout_s,
            )
        except asyncio.TimeoutError:
            raise CommunicationError(
                f"Read timeout after {ep.read_timeout_s}s",
                device_name=ep.name,
                host=ep.host,
                port=ep.port,
            )
        except ModbusException as e:
            raise CommunicationError(
                f"Modbus exception: {e}",
                device_name=ep.name,
                host=ep.host,
                port=ep.port,
            ) from e

        if response.isError():
            raise DeviceError(
                f"Modbus error: {response}",
                device_name=ep.name,
                address=address,
            )

        return response
