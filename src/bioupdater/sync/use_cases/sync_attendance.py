"""Sync Attendance Use Case - Orchestrates one attendance sync pass.

This use case pulls punches from one or more biometric terminals and
writes them to a persistence sink. It depends on ports (interfaces)
for all external operations, making it fully testable without
infrastructure.

Workflow:
1. Resolve the device set (explicit ids via the registry, or all enabled)
2. Open the sink once for the whole pass
3. For each device, sequentially:
   connect -> retrieve -> disconnect -> write each record
4. Fold per-device statistics into the pass totals
5. Update every device checkpoint if anything was inserted
6. Close the sink and return the SyncResult

Failure scopes:
- A record that fails to write is recorded; the device batch continues
- A device that fails to connect or retrieve is recorded; the pass continues
- An unknown explicit device id or an unreachable sink aborts the pass
  after every device handle and the sink have been disconnected
- A failure closing the sink is logged; the pass result is still returned
"""

import logging
from collections.abc import Iterable
from datetime import date, datetime, timezone

from ...dates import as_date, within_window
from ..domain.entities import (
    DeviceSyncResult,
    SyncErrorEntry,
    SyncResult,
    TimeRecord,
)
from ..domain.ports import (
    IDeviceRegistry,
    IDeviceSource,
    IPersistenceSink,
    ISyncService,
)

logger = logging.getLogger(__name__)


class SyncAttendanceUseCase(ISyncService):
    """Orchestrates the attendance sync workflow.

    Constructed against a device registry (multi-device mode) or a
    single device source (single-device compatibility mode). Both modes
    run the same per-device steps; single-device results carry no
    per-device breakdown.

    Devices are processed sequentially because the sink connection is
    shared by every write of the pass.

    Example:
        use_case = SyncAttendanceUseCase(
            source=DeviceRegistry(config.devices),
            sink=PostgresTimeRecordSink(config.database),
        )
        result = await use_case.execute(date(2024, 1, 1), date(2024, 1, 31))
    """

    def __init__(
        self,
        source: IDeviceRegistry | IDeviceSource,
        sink: IPersistenceSink,
    ):
        """Initialize the use case with its dependencies.

        Args:
            source: Registry of devices, or one device source
            sink: Port for persisting time records and checkpoints
        """
        self.source = source
        self.sink = sink
        self.is_multi_device = isinstance(source, IDeviceRegistry)

    async def sync(
        self,
        from_date: date | datetime,
        to_date: date | datetime,
        device_ids: str | Iterable[str] | None = None,
    ) -> SyncResult:
        return await self.execute(from_date, to_date, device_ids)

    async def execute(
        self,
        from_date: date | datetime,
        to_date: date | datetime,
        device_ids: str | Iterable[str] | None = None,
    ) -> SyncResult:
        """Execute one sync pass over an inclusive date window.

        Args:
            from_date: First day of the window
            to_date: Last day of the window
            device_ids: Optional id or ids to restrict the pass to
                        (multi-device mode only)

        Returns:
            SyncResult with aggregated statistics. A non-empty error list
            means the pass was partially successful.

        Raises:
            UnknownDeviceError: If an explicitly requested id is not registered
            SinkConnectionError: If the sink cannot be opened
        """
        if self.is_multi_device:
            return await self._sync_multiple_devices(from_date, to_date, device_ids)
        if device_ids:
            logger.warning("Device ids are ignored in single-device mode")
        return await self._sync_single_device(from_date, to_date)

    async def _sync_multiple_devices(
        self,
        from_date: date | datetime,
        to_date: date | datetime,
        device_ids: str | Iterable[str] | None,
    ) -> SyncResult:
        result = SyncResult(
            from_date=as_date(from_date),
            to_date=as_date(to_date),
            device_results={},
        )

        logger.info(
            f"Starting multi-device sync from {result.from_date.isoformat()} "
            f"to {result.to_date.isoformat()}"
        )

        # Unknown explicit ids fail here, before anything is contacted
        devices = self._resolve_devices(device_ids)
        logger.info(f"Syncing {len(devices)} devices")

        try:
            await self.sink.connect()
            logger.info("Connected to persistence sink")

            for device in devices:
                identity = await device.get_device_info()
                device_id = identity.id
                logger.info(f"Syncing device: {device_id} ({identity.name})")

                try:
                    device_result = await self.sync_device(device, from_date, to_date)
                    logger.info(
                        f"Device {device_id} sync completed: "
                        f"{device_result.inserted_records}/{device_result.total_records} records"
                    )
                except Exception as e:
                    logger.error(f"Error syncing device {device_id}: {e}")
                    device_result = DeviceSyncResult(
                        device_id=device_id,
                        errors=[
                            SyncErrorEntry(
                                message=str(e),
                                error_type="device_sync_error",
                                device_id=device_id,
                            )
                        ],
                    )
                    device_result.completed_at = datetime.now(timezone.utc)

                result.add_device_result(device_result)

            if result.inserted_records > 0:
                await self._update_checkpoints(devices, result)
                logger.info("Updated all devices last sync timestamp")

        except Exception as e:
            logger.error(f"Multi-device sync failed: {e}")
            await self._disconnect_devices()
            raise
        finally:
            await self._close_sink()

        result.completed_at = datetime.now(timezone.utc)
        logger.info(
            f"Multi-device sync completed. Total: "
            f"{result.inserted_records}/{result.total_records} records, "
            f"{len(result.errors)} errors"
        )
        return result

    async def _sync_single_device(
        self,
        from_date: date | datetime,
        to_date: date | datetime,
    ) -> SyncResult:
        device = self.source
        result = SyncResult(from_date=as_date(from_date), to_date=as_date(to_date))

        logger.info(
            f"Starting sync from {result.from_date.isoformat()} "
            f"to {result.to_date.isoformat()}"
        )

        try:
            await self.sink.connect()
            logger.info("Connected to persistence sink")

            identity = await device.get_device_info()
            try:
                device_result = await self.sync_device(device, from_date, to_date)
                result.total_records = device_result.total_records
                result.inserted_records = device_result.inserted_records
                result.errors.extend(device_result.errors)
            except Exception as e:
                logger.error(f"Error syncing device {identity.id}: {e}")
                result.errors.append(
                    SyncErrorEntry(
                        message=str(e),
                        error_type="device_sync_error",
                        device_id=identity.id,
                    )
                )

            if result.inserted_records > 0:
                await self._update_checkpoints([device], result)
                logger.info("Updated device last sync timestamp")

        except Exception as e:
            logger.error(f"Sync failed: {e}")
            await self._disconnect_devices()
            raise
        finally:
            await self._close_sink()

        result.completed_at = datetime.now(timezone.utc)
        logger.info(
            f"Sync completed. Inserted {result.inserted_records}/{result.total_records} records"
        )
        return result

    async def sync_device(
        self,
        device: IDeviceSource,
        from_date: date | datetime,
        to_date: date | datetime,
    ) -> DeviceSyncResult:
        """Sync one device into the (already open) sink.

        The device is disconnected right after retrieval, before any
        write. Write failures are recorded per record and never abort
        the batch.

        Raises:
            DeviceConnectionError: If the device cannot be connected
            RetrievalError: If the attendance listing cannot be read
        """
        identity = await device.get_device_info()
        device_result = DeviceSyncResult(device_id=identity.id)

        try:
            await device.connect()
            logger.debug(f"Connected to biometric device {identity.id}")

            raw_records = await device.get_attendance(from_date, to_date)
            records = filter_records_in_window(raw_records, from_date, to_date)
            logger.info(f"Retrieved {len(records)} records from device {identity.id}")

            await device.disconnect()
            logger.debug(f"Disconnected from biometric device {identity.id}")

        except Exception:
            try:
                await device.disconnect()
            except Exception as cleanup_error:
                logger.warning(
                    f"Error disconnecting device {identity.id} after failure: {cleanup_error}"
                )
            raise

        device_result.total_records = len(records)

        for record in records:
            try:
                await self.sink.insert_time_record(record)
                device_result.inserted_records += 1
            except Exception as e:
                logger.error(f"Error inserting record {record.dedup_key}: {e}")
                device_result.errors.append(
                    SyncErrorEntry(
                        message=str(e),
                        error_type="record_write_error",
                        device_id=identity.id,
                        record=record,
                    )
                )

        device_result.completed_at = datetime.now(timezone.utc)
        return device_result

    def _resolve_devices(
        self,
        device_ids: str | Iterable[str] | None,
    ) -> list[IDeviceSource]:
        if device_ids is None:
            return self.source.get_all_devices()
        if isinstance(device_ids, str):
            device_ids = [device_ids]
        return [self.source.get_device(device_id) for device_id in device_ids]

    async def _update_checkpoints(
        self,
        devices: list[IDeviceSource],
        result: SyncResult,
    ) -> None:
        """Stamp every device of the pass, not only those that inserted.

        Failures are logged and recorded; they never fail the pass.
        """
        synced_at = datetime.now(timezone.utc)

        for device in devices:
            device_id = None
            try:
                identity = await device.get_device_info()
                device_id = identity.id
                await self.sink.update_checkpoint(device_id, synced_at)
            except Exception as e:
                logger.error(f"Error updating sync timestamp for device {device_id}: {e}")
                result.errors.append(
                    SyncErrorEntry(
                        message=str(e),
                        error_type="checkpoint_error",
                        device_id=device_id,
                    )
                )

    async def _disconnect_devices(self) -> None:
        """Best-effort disconnect of every device handle after an aborted pass."""
        try:
            if self.is_multi_device:
                await self.source.disconnect_all()
            else:
                await self.source.disconnect()
        except Exception as e:
            logger.warning(f"Error disconnecting devices during cleanup: {e}")

    async def _close_sink(self) -> None:
        """Close the sink exactly once per pass.

        A close failure is logged; it never replaces a completed result
        or the error that aborted the pass.
        """
        try:
            await self.sink.disconnect()
            logger.info("Disconnected from persistence sink")
        except Exception as e:
            logger.error(f"Error disconnecting persistence sink: {e}")


def filter_records_in_window(
    records: Iterable[TimeRecord],
    from_date: date | datetime,
    to_date: date | datetime,
) -> list[TimeRecord]:
    """Keep records whose calendar date lies in the inclusive window."""
    return [r for r in records if within_window(r.timestamp, from_date, to_date)]
