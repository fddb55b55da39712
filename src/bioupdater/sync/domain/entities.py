"""Domain entities for attendance sync operations.

These are pure data structures with no infrastructure dependencies.
They represent the core business objects used in a sync pass.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Any

# Canonical representation stored by every sink (no timezone conversion)
TIME_RECORD_FORMAT = "%Y-%m-%d %H:%M:%S"

# Verification method written when the terminal omits it
DEFAULT_VERIFY_MODE = 1


@dataclass(frozen=True)
class TimeRecord:
    """One attendance punch retrieved from a terminal.

    The timestamp is device-local time and is never converted. The
    (employee, timestamp, direction) triple is the natural dedup key,
    but uniqueness is left to the sink.
    """

    employee_number: str
    timestamp: datetime
    in_out_mode: int
    verify_mode: int = DEFAULT_VERIFY_MODE

    # Origin
    ip_address: str | None = None
    location: str | None = None
    device_id: str | None = None

    @property
    def time_record(self) -> str:
        """Canonical `YYYY-MM-DD HH:MM:SS` timestamp."""
        return self.timestamp.strftime(TIME_RECORD_FORMAT)

    @property
    def record_date(self) -> date:
        return self.timestamp.date()

    @property
    def dedup_key(self) -> tuple[str, str, int]:
        return (self.employee_number, self.time_record, self.in_out_mode)

    def to_dict(self) -> dict[str, Any]:
        return {
            "employee_number": self.employee_number,
            "time_record": self.time_record,
            "in_out_mode": self.in_out_mode,
            "verify_mode": self.verify_mode,
            "ip_address": self.ip_address,
            "location": self.location,
            "device_id": self.device_id,
        }


@dataclass(frozen=True)
class DeviceEndpoint:
    """Static configuration for one terminal.

    Loaded once at startup and read-only for the life of the process.
    A disabled endpoint stays addressable by id but is skipped when
    the registry enumerates devices.
    """

    id: str
    ip: str
    name: str = ""
    port: int = 4370
    model: str = "Unknown"
    type: str = "zkteco"
    parser: str = "v6.60"
    protocol: str = "udp"
    inport: int = 5200
    timeout_ms: int = 5000
    enabled: bool = True

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class DeviceIdentity:
    """Identity metadata reported by a device source."""

    id: str
    ip: str
    name: str
    model: str | None = None
    port: int | None = None
    connected: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SyncErrorEntry:
    """One failure recorded during a pass.

    error_type is one of:
    - record_write_error: a single record could not be written
    - device_sync_error: a device could not be connected or read
    - checkpoint_error: the device checkpoint could not be updated
    """

    message: str
    error_type: str
    device_id: str | None = None
    record: TimeRecord | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "type": self.error_type,
            "device_id": self.device_id,
            "record": self.record.to_dict() if self.record else None,
        }


@dataclass
class DeviceSyncResult:
    """Statistics for one device within a pass."""

    device_id: str
    total_records: int = 0
    inserted_records: int = 0
    errors: list[SyncErrorEntry] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None

    @property
    def failed_records(self) -> int:
        return self.total_records - self.inserted_records

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def duration_seconds(self) -> float | None:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "total_records": self.total_records,
            "inserted_records": self.inserted_records,
            "errors": [e.to_dict() for e in self.errors],
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class SyncResult:
    """Aggregate result of one sync pass.

    inserted_records never exceeds total_records. In multi-device mode
    the totals equal the sums over device_results; in single-device
    mode device_results is None.
    """

    from_date: date
    to_date: date
    total_records: int = 0
    inserted_records: int = 0
    errors: list[SyncErrorEntry] = field(default_factory=list)
    device_results: dict[str, DeviceSyncResult] | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None

    @property
    def success(self) -> bool:
        """True when the pass finished without any recorded error."""
        return not self.errors

    @property
    def partially_successful(self) -> bool:
        """Errors were recorded but at least one record made it in."""
        return bool(self.errors) and self.inserted_records > 0

    @property
    def duration_seconds(self) -> float | None:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def add_device_result(self, device_result: DeviceSyncResult) -> None:
        """Fold one device's statistics into the pass totals."""
        if self.device_results is None:
            self.device_results = {}
        self.device_results[device_result.device_id] = device_result
        self.total_records += device_result.total_records
        self.inserted_records += device_result.inserted_records
        self.errors.extend(device_result.errors)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for CLI output and health reporting."""
        result = {
            "from_date": self.from_date.isoformat(),
            "to_date": self.to_date.isoformat(),
            "total_records": self.total_records,
            "inserted_records": self.inserted_records,
            "errors": [e.to_dict() for e in self.errors],
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
        if self.device_results is not None:
            result["devices"] = {
                device_id: device_result.to_dict()
                for device_id, device_result in self.device_results.items()
            }
        return result


@dataclass
class ConnectionTestResult:
    """Outcome of connect / identify / disconnect for one device."""

    device_id: str
    success: bool
    name: str | None = None
    identity: DeviceIdentity | None = None
    error: str | None = None


@dataclass
class DeviceStatus:
    """Configuration-level status for one registered device."""

    device_id: str
    status: str
    name: str | None = None
    ip: str | None = None
    type: str | None = None
    identity: DeviceIdentity | None = None
    error: str | None = None

    @property
    def available(self) -> bool:
        return self.status == "available"
