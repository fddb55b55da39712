"""Punch mapper for transforming terminal attendance logs into TimeRecords.

Terminals report punches in vendor shapes (pyzk `Attendance` objects, or
plain dictionaries from exports). This mapper normalizes them into the
TimeRecord entity and the sink's record tuple.
"""

from datetime import datetime
from typing import Any

from ..domain.entities import (
    DEFAULT_VERIFY_MODE,
    TIME_RECORD_FORMAT,
    DeviceEndpoint,
    TimeRecord,
)


class PunchMapper:
    """Maps raw terminal punches to TimeRecord entities and DB records.

    This class handles:
    - Attribute or key lookup (objects and dicts are both accepted)
    - Timestamp normalization to the canonical format, without timezone
      conversion (aware timestamps keep their wall-clock time)
    - Verification method defaulting when the terminal omits it
    - Origin tagging from the endpoint configuration
    """

    def __init__(self, endpoint: DeviceEndpoint):
        self.endpoint = endpoint

    def map_to_entity(self, raw: Any) -> TimeRecord:
        """Transform one raw punch into a TimeRecord.

        Field mapping (pyzk names, with dict aliases):
            user_id (or uid)  -> employee_number
            timestamp         -> timestamp
            punch             -> in_out_mode
            status            -> verify_mode (DEFAULT_VERIFY_MODE when 0/None)

        Raises:
            ValueError: If the punch has no employee id or timestamp
        """
        employee = _field(raw, "user_id", "uid", "employee_number")
        if employee in (None, ""):
            raise ValueError(f"Punch without employee identifier: {raw!r}")

        timestamp = self._parse_timestamp(_field(raw, "timestamp", "time_record"))
        if timestamp is None:
            raise ValueError(f"Punch without timestamp: {raw!r}")

        in_out_mode = _field(raw, "punch", "in_out_mode", "inOutStatus")
        verify_mode = _field(raw, "status", "verify_mode", "verifyMode")

        return TimeRecord(
            employee_number=str(employee),
            timestamp=timestamp,
            in_out_mode=int(in_out_mode or 0),
            verify_mode=int(verify_mode) if verify_mode else DEFAULT_VERIFY_MODE,
            ip_address=self.endpoint.ip,
            location=self.endpoint.display_name,
            device_id=self.endpoint.id,
        )

    def map_all(self, raws: list[Any]) -> list[TimeRecord]:
        return [self.map_to_entity(raw) for raw in raws]

    @staticmethod
    def map_to_record(record: TimeRecord) -> tuple[Any, ...]:
        """Transform a TimeRecord to a database record tuple.

        The tuple ordering matches the INSERT statement in
        PostgresTimeRecordSink:
        (employee_number, time_record, in_out_mode, verify_mode,
         ip_address, location, device_id)
        """
        return (
            record.employee_number,
            record.timestamp,
            record.in_out_mode,
            record.verify_mode,
            record.ip_address,
            record.location,
            record.device_id,
        )

    @staticmethod
    def _parse_timestamp(value: Any) -> datetime | None:
        """Normalize a punch timestamp to a naive, second-precision datetime."""
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            return value.replace(tzinfo=None, microsecond=0)
        text = str(value).strip()
        try:
            return datetime.strptime(text, TIME_RECORD_FORMAT)
        except ValueError:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            return parsed.replace(tzinfo=None, microsecond=0)


def _field(raw: Any, *names: str) -> Any:
    for name in names:
        if isinstance(raw, dict):
            if name in raw:
                return raw[name]
        elif hasattr(raw, name):
            return getattr(raw, name)
    return None
