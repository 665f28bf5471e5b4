"""
Common Utilities

Shared modules used across all components:
- config.py - Configuration dataclasses and YAML loading
- validator.py - Configuration validation
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
- timestamp.py - Time bucket alignment and formatting
- scheduler.py - Wall-clock trigger
"""

from .config import (
    PollerConfig,
    DeviceEndpoint,
    RegisterSpec,
    DerivedVoltage,
    LinearTransform,
    StorageSettings,
    DecodeKind,
    WordOrder,
    MetricClass,
    ActivePowerPolicy,
    StorageType,
    load_poller_config,
    load_config_file,
    to_wire_address,
)
from .exceptions import (
    FieldPollerError,
    ConfigError,
    DeviceError,
    CommunicationError,
    DecodeError,
    TransformError,
    PersistenceError,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
    log_device_read,
    log_cycle,
)

__all__ = [
    # Config
    "PollerConfig",
    "DeviceEndpoint",
    "RegisterSpec",
    "DerivedVoltage",
    "LinearTransform",
    "StorageSettings",
    "DecodeKind",
    "WordOrder",
    "MetricClass",
    "ActivePowerPolicy",
    "StorageType",
    "load_poller_config",
    "load_config_file",
    "to_wire_address",
    # Exceptions
    "FieldPollerError",
    "ConfigError",
    "DeviceError",
    "CommunicationError",
    "DecodeError",
    "TransformError",
    "PersistenceError",
    # Logging
    "setup_logging",
    "get_service_logger",
    "log_device_read",
    "log_cycle",
]
