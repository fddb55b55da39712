"""Domain layer - Pure domain entities and port interfaces.

This layer contains:
- Entities: Pure data structures representing attendance sync objects
- Ports: Abstract interfaces defining contracts for adapters

No infrastructure dependencies allowed in this layer.
"""

from .entities import (
    DEFAULT_VERIFY_MODE,
    TIME_RECORD_FORMAT,
    ConnectionTestResult,
    DeviceEndpoint,
    DeviceIdentity,
    DeviceStatus,
    DeviceSyncResult,
    SyncErrorEntry,
    SyncResult,
    TimeRecord,
)
from .ports import IDeviceRegistry, IDeviceSource, IPersistenceSink, ISyncService

__all__ = [
    # Constants
    "DEFAULT_VERIFY_MODE",
    "TIME_RECORD_FORMAT",
    # Record Entities
    "TimeRecord",
    # Device Entities
    "DeviceEndpoint",
    "DeviceIdentity",
    "DeviceStatus",
    "ConnectionTestResult",
    # Result Entities
    "DeviceSyncResult",
    "SyncErrorEntry",
    "SyncResult",
    # Ports
    "IDeviceRegistry",
    "IDeviceSource",
    "IPersistenceSink",
    "ISyncService",
]
