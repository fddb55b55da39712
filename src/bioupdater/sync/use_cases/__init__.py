"""Use cases layer - Business logic orchestration for attendance sync.

This layer contains the use case that orchestrates a sync pass:
- Pull punches from terminals (via IDeviceSource / IDeviceRegistry ports)
- Persist time records and checkpoints (via the IPersistenceSink port)

Use cases depend only on ports, not concrete implementations.
"""

from .sync_attendance import SyncAttendanceUseCase, filter_records_in_window

__all__ = [
    "SyncAttendanceUseCase",
    "filter_records_in_window",
]
