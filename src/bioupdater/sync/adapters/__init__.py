"""Adapters layer - Infrastructure implementations for sync operations.

This layer contains concrete implementations of the ports defined in the domain layer:
- ZKTecoDevice: pyzk implementation of IDeviceSource
- DeviceRegistry: In-memory implementation of IDeviceRegistry
- PostgresTimeRecordSink: PostgreSQL implementation of IPersistenceSink
- JsonFileSink: JSON-lines implementation of IPersistenceSink
- PunchMapper: Raw terminal punch to TimeRecord mapping
"""

from .device_factory import (
    DEVICE_SOURCE_TYPES,
    create_device_source,
    is_supported_device_type,
    register_device_type,
    supported_device_types,
)
from .device_registry import DeviceRegistry
from .json_sink import JsonFileSink
from .postgres_sink import PostgresTimeRecordSink
from .punch_mapper import PunchMapper
from .sink_factory import SINK_TYPES, create_sink, supported_sink_types
from .zkteco_device import ZKTecoDevice

__all__ = [
    # Device adapters
    "DEVICE_SOURCE_TYPES",
    "DeviceRegistry",
    "PunchMapper",
    "ZKTecoDevice",
    "create_device_source",
    "is_supported_device_type",
    "register_device_type",
    "supported_device_types",
    # Sink adapters
    "JsonFileSink",
    "PostgresTimeRecordSink",
    "SINK_TYPES",
    "create_sink",
    "supported_sink_types",
]
