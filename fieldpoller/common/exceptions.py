"""
Custom Exception Classes for fieldpoller

Hierarchical exception structure for error handling across the pipeline.
Most of these never leave the component that raises them: device errors
stop at the reader, transform errors at the normalizer and persistence
errors at the polling service.
"""


class FieldPollerError(Exception):
    """Base exception for all fieldpoller errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ConfigError(FieldPollerError):
    """Configuration-related errors"""

    def __init__(self, message: str, recoverable: bool = False):
        super().__init__(f"Config Error: {message}", recoverable)


class DeviceError(FieldPollerError):
    """Device returned something unusable (exception response, short reply)"""

    def __init__(
        self,
        message: str,
        device_name: str | None = None,
        address: int | None = None,
        recoverable: bool = True,
    ):
        self.device_name = device_name
        self.address = address
        super().__init__(f"Device Error: {message}", recoverable)


class CommunicationError(DeviceError):
    """Modbus/network communication errors (connect, timeout, socket)"""

    def __init__(
        self,
        message: str,
        device_name: str | None = None,
        host: str | None = None,
        port: int | None = None,
    ):
        self.host = host
        self.port = port
        super().__init__(message, device_name, recoverable=True)


class DecodeError(FieldPollerError):
    """Raw register words could not be decoded into a value"""

    def __init__(self, message: str, kind: str | None = None):
        self.kind = kind
        super().__init__(f"Decode Error: {message}", recoverable=True)


class TransformError(FieldPollerError):
    """Per-metric transform raised or produced a non-finite value"""

    def __init__(self, message: str, metric: str | None = None):
        self.metric = metric
        super().__init__(f"Transform Error: {message}", recoverable=True)


class PersistenceError(FieldPollerError):
    """Row could not be written to the sink"""

    def __init__(self, message: str, table: str | None = None):
        self.table = table
        super().__init__(f"Persistence Error: {message}", recoverable=True)
