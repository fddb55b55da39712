"""Port interfaces for attendance sync operations.

Ports define the contracts between the use case and the infrastructure.
These are abstract base classes that adapters must implement.

Following the Hexagonal Architecture (Ports and Adapters) pattern:
- Ports are interfaces defined in the domain layer
- Adapters implement these ports in the adapters layer
- Use cases depend only on ports, not concrete implementations
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import date, datetime

from .entities import DeviceIdentity, SyncResult, TimeRecord


class IDeviceSource(ABC):
    """Port for one physical biometric terminal.

    Implementations wrap a vendor protocol. The use case only relies on
    the connect / retrieve / disconnect lifecycle and identity metadata.
    """

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether a live connection is currently held."""
        ...

    @abstractmethod
    async def connect(self) -> None:
        """Open a connection to the terminal.

        Bounded by the terminal's own configured timeout.

        Raises:
            DeviceConnectionError: If the terminal is unreachable or times out
        """
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the connection. Safe to call when not connected."""
        ...

    @abstractmethod
    async def get_attendance(
        self,
        from_date: date,
        to_date: date,
    ) -> list[TimeRecord]:
        """Retrieve attendance punches covering the window.

        The result may be a superset of the window; callers narrow it.

        Args:
            from_date: First day of the window (inclusive)
            to_date: Last day of the window (inclusive)

        Returns:
            TimeRecords in device listing order

        Raises:
            RetrievalError: If the listing cannot be read
        """
        ...

    @abstractmethod
    async def get_device_info(self) -> DeviceIdentity:
        """Return identity metadata (id, address, model, name)."""
        ...


class IPersistenceSink(ABC):
    """Port for time record persistence.

    One sink connection is shared by every write of a pass.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the sink.

        Raises:
            SinkConnectionError: If the sink cannot be reached
        """
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the sink. Safe to call when not connected."""
        ...

    @abstractmethod
    async def insert_time_record(self, record: TimeRecord) -> None:
        """Write a single time record.

        Raises:
            WriteError: If the record cannot be written
        """
        ...

    @abstractmethod
    async def update_checkpoint(self, device_id: str, synced_at: datetime) -> None:
        """Store the last-synced timestamp for a device.

        Raises:
            WriteError: If the checkpoint cannot be written
        """
        ...


class IDeviceRegistry(ABC):
    """Port for the set of configured device sources.

    The registry owns every device handle; callers borrow them for the
    duration of one operation.
    """

    @abstractmethod
    def get_device(self, device_id: str) -> IDeviceSource:
        """Return the handle for an id, creating and caching it if needed.

        Raises:
            UnknownDeviceError: If the id has no configuration entry
        """
        ...

    @abstractmethod
    def get_all_devices(self) -> list[IDeviceSource]:
        """Return one handle per enabled device, in registration order."""
        ...

    @abstractmethod
    async def disconnect_all(self) -> None:
        """Disconnect every materialized handle and clear the cache."""
        ...


class ISyncService(ABC):
    """Port for high-level sync orchestration.

    Used by the CLI and scheduler to trigger a pass without knowing
    the implementation details.
    """

    @abstractmethod
    async def sync(
        self,
        from_date: date,
        to_date: date,
        device_ids: str | Iterable[str] | None = None,
    ) -> SyncResult:
        """Execute one sync pass over a date window.

        Returns:
            SyncResult with statistics about the pass
        """
        ...
