"""
Device Reader

Reads one RegisterSpec from its device: fresh connection, one attempt,
decode, close. Every outcome comes back as a ReadResult; nothing raised
by the transport, the device or the decoder escapes read().
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable

from fieldpoller.common.config import DecodeKind, DeviceEndpoint, RegisterSpec
from fieldpoller.common.exceptions import DecodeError, FieldPollerError
from fieldpoller.common.logging_setup import get_service_logger, log_device_read
from .decoder import decode_words
from .modbus_client import ModbusClient

logger = get_service_logger("device.reader")


@dataclass
class ReadResult:
    """Tagged outcome of one read: a value, or the reason it failed"""
    success: bool
    value: bool | int | float | None = None
    raw_registers: list[int] | None = None
    error: str | None = None

    @classmethod
    def ok(cls, value: Any, raw_registers: list[int] | None = None) -> "ReadResult":
        return cls(success=True, value=value, raw_registers=raw_registers)

    @classmethod
    def failed(cls, error: str) -> "ReadResult":
        return cls(success=False, error=error)


class DeviceReader:
    """
    Reads single register specs.

    No pooling and no retries: a connection is opened for each read and
    closed on every exit path. A failure while closing is logged and never
    replaces the read outcome.
    """

    def __init__(
        self,
        client_factory: Callable[[DeviceEndpoint], Any] = ModbusClient,
    ):
        self._client_factory = client_factory

    async def read(self, spec: RegisterSpec) -> ReadResult:
        """
        Read and decode one spec.

        Args:
            spec: Register to read

        Returns:
            ReadResult with the decoded, scaled value or the failure reason
        """
        device = spec.endpoint.name

        if not isinstance(spec.kind, DecodeKind):
            logger.error(
                f"Unknown decode kind '{spec.kind}' for {device}.{spec.metric}",
                extra={"device": device, "metric": spec.metric},
            )
            return ReadResult.failed(f"Unknown decode kind: {spec.kind}")

        client = None
        try:
            client = self._client_factory(spec.endpoint)
            await client.connect()

            if spec.kind == DecodeKind.BOOLEAN_DISCRETE:
                bits = await client.read_discrete_inputs(spec.address, spec.count)
                words = [int(bool(b)) for b in bits]
            else:
                words = await client.read_holding_registers(spec.address, spec.count)

            if len(words) < spec.count:
                raise DecodeError(
                    f"short reply: {len(words)} of {spec.count} word(s)",
                    kind=spec.kind.value,
                )

            value = decode_words(spec.kind, words, spec.word_order)
            value = self._apply_scale(value, spec.scale)

            log_device_read(logger, device, spec.metric, value, success=True)
            return ReadResult.ok(value, raw_registers=list(words))

        except (FieldPollerError, asyncio.TimeoutError, OSError) as e:
            return self._failure(spec, str(e))
        except Exception as e:
            # pymodbus surfaces framing problems as assorted exception types
            return self._failure(spec, f"{e.__class__.__name__}: {e}")
        finally:
            if client is not None:
                self._close(client, spec)

    def _failure(self, spec: RegisterSpec, error: str) -> ReadResult:
        log_device_read(
            logger,
            spec.endpoint.name,
            spec.metric,
            None,
            success=False,
            description=f"{spec.description} @ {spec.endpoint.host}:{spec.address}",
            error=error,
        )
        return ReadResult.failed(error)

    def _close(self, client: Any, spec: RegisterSpec) -> None:
        try:
            client.close()
        except Exception as e:
            logger.warning(
                f"Error closing connection to {spec.endpoint.host}:{spec.endpoint.port} "
                f"after reading {spec.metric}: {e}"
            )

    @staticmethod
    def _apply_scale(value: bool | int | float, scale: float) -> bool | int | float:
        if scale == 1.0 or isinstance(value, bool):
            return value
        return value * scale
