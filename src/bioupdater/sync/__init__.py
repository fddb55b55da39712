"""Sync module - Clean Architecture implementation for attendance sync.

This module pulls attendance punches from biometric terminals and writes
them to a relational store, tracking each terminal's last-synced time.

Architecture:
    domain/     - Pure domain entities and port interfaces
    use_cases/  - Sync pass orchestration
    adapters/   - Infrastructure implementations (ZKTeco, PostgreSQL, JSON)
"""

from .domain.entities import (
    ConnectionTestResult,
    DeviceEndpoint,
    DeviceIdentity,
    DeviceStatus,
    DeviceSyncResult,
    SyncErrorEntry,
    SyncResult,
    TimeRecord,
)
from .domain.ports import (
    IDeviceRegistry,
    IDeviceSource,
    IPersistenceSink,
    ISyncService,
)

__all__ = [
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
