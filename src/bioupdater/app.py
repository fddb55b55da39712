"""Application facade for the Biometric Attendance Sync.

Wires configuration, the persistence sink, the device registry and the
sync use case together, and exposes the operations the CLI and the
scheduler call.

Example:
    config = AppConfig.from_env()
    app = BiometricUpdaterApp(config)
    app.initialize()
    try:
        result = await app.run_yesterday_sync()
    finally:
        await app.cleanup()
"""

import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime, timezone
from typing import Any, Optional

from .config import AppConfig, DatabaseConfig
from .database import check_database_health
from .dates import as_date, date_range, yesterday_range
from .exceptions import ConfigurationError
from .sync.adapters.device_factory import create_device_source
from .sync.adapters.device_registry import DeviceRegistry
from .sync.adapters.sink_factory import create_sink
from .sync.domain.entities import (
    ConnectionTestResult,
    DeviceEndpoint,
    DeviceStatus,
    SyncResult,
)
from .sync.domain.ports import IDeviceSource, IPersistenceSink
from .sync.use_cases.sync_attendance import SyncAttendanceUseCase

logger = logging.getLogger(__name__)


class BiometricUpdaterApp:
    """Entry point for every sync operation."""

    def __init__(
        self,
        config: AppConfig,
        sink_factory: Callable[[DatabaseConfig], IPersistenceSink] = create_sink,
        device_factory: Callable[[DeviceEndpoint], IDeviceSource] = create_device_source,
    ):
        self.config = config
        self._sink_factory = sink_factory
        self._device_factory = device_factory

        self.sink: Optional[IPersistenceSink] = None
        self.registry: Optional[DeviceRegistry] = None
        self.sync_service: Optional[SyncAttendanceUseCase] = None

    @property
    def initialized(self) -> bool:
        return self.sync_service is not None

    def initialize(self) -> None:
        """Build the sink, register devices and create the sync service.

        Raises:
            ConfigurationError: If no devices are configured
            UnsupportedSinkTypeError: If the sink type is not supported
        """
        if not self.config.devices:
            raise ConfigurationError("No biometric devices configured")

        self.sink = self._sink_factory(self.config.database)
        logger.info(f"Persistence sink created ({self.config.database.sink_type})")

        self.registry = DeviceRegistry(device_factory=self._device_factory)
        self.registry.register_devices(self.config.devices)

        self.sync_service = SyncAttendanceUseCase(source=self.registry, sink=self.sink)
        logger.info("Application initialized successfully")

    # ============================================
    # Sync Operations
    # ============================================

    async def run_yesterday_sync(self) -> SyncResult:
        window = yesterday_range()
        logger.info(f"Syncing data for date: {window.date_string}")
        return await self._run(window.from_date, window.to_date)

    async def run_date_sync(self, day: date | datetime | str) -> SyncResult:
        window = date_range(day)
        logger.info(f"Syncing data for date: {window.date_string}")
        return await self._run(window.from_date, window.to_date)

    async def run_range_sync(
        self,
        from_date: date | datetime | str,
        to_date: date | datetime | str,
        device_ids: str | Iterable[str] | None = None,
    ) -> SyncResult:
        """Sync an inclusive date range, optionally for specific devices.

        Raises:
            ValueError: If from_date is later than to_date
        """
        start, end = as_date(from_date), as_date(to_date)
        if start > end:
            raise ValueError("From date cannot be later than to date")

        device_ids = _normalize_ids(device_ids)
        logger.info(f"Syncing data from {start.isoformat()} to {end.isoformat()}")
        if device_ids:
            logger.info(f"Target devices: {', '.join(device_ids)}")
        return await self._run(start, end, device_ids)

    async def run_device_sync(self, device_ids: str | Iterable[str]) -> SyncResult:
        """Sync yesterday's data for specific devices."""
        device_ids = _normalize_ids(device_ids)
        window = yesterday_range()
        logger.info(
            f"Syncing devices [{', '.join(device_ids)}] for date: {window.date_string}"
        )
        return await self._run(window.from_date, window.to_date, device_ids)

    async def _run(
        self,
        from_date: date | datetime,
        to_date: date | datetime,
        device_ids: str | Iterable[str] | None = None,
    ) -> SyncResult:
        service = self._require_service()
        result = await service.execute(from_date, to_date, device_ids)

        logger.info(
            f"Total records: {result.total_records}, "
            f"Inserted: {result.inserted_records}, Errors: {len(result.errors)}"
        )
        if result.errors:
            logger.warning(f"{len(result.errors)} errors occurred during sync")
        return result

    # ============================================
    # Device Operations
    # ============================================

    async def test_device_connections(
        self,
        device_ids: str | Iterable[str] | None = None,
    ) -> list[ConnectionTestResult]:
        registry = self._require_registry()
        if isinstance(device_ids, str):
            device_ids = [device_ids]
        return await registry.test_all_connections(device_ids)

    async def get_devices_status(self) -> list[DeviceStatus]:
        return await self._require_registry().get_devices_status()

    def list_registered_devices(self) -> list[DeviceEndpoint]:
        """Configured devices, disabled ones included."""
        if self.registry is None:
            return []
        return self.registry.get_device_configs()

    # ============================================
    # Database Operations
    # ============================================

    async def get_database_health(self) -> Optional[dict[str, Any]]:
        """Check that the PostgreSQL sink accepts connections.

        Returns:
            None when the sink is not PostgreSQL, otherwise a dict with
            "healthy" and, on failure, "error"
        """
        database = self.config.database
        if database.sink_type not in ("postgresql", "postgres"):
            return None

        try:
            database.validate()
        except ConfigurationError as e:
            return {"healthy": False, "error": str(e)}

        health = await check_database_health(database.dsn, timeout=database.connect_timeout)
        if not health["healthy"]:
            logger.warning(f"Database health check failed: {health.get('error')}")
        return health

    def get_status(self) -> dict[str, Any]:
        return {
            "initialized": self.initialized,
            "environment": self.config.environment,
            "config": self.config.get_config_info(),
            "database": self.config.database.to_dict(),
            "devices": [d.to_dict() for d in self.list_registered_devices()],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def cleanup(self) -> None:
        """Disconnect every device handle. Errors are logged, not raised."""
        if self.registry is None:
            return
        try:
            await self.registry.disconnect_all()
        except Exception as e:
            logger.error(f"Error during cleanup: {e}")

    def _require_service(self) -> SyncAttendanceUseCase:
        if self.sync_service is None:
            raise RuntimeError("Application not initialized; call initialize() first")
        return self.sync_service

    def _require_registry(self) -> DeviceRegistry:
        if self.registry is None:
            raise RuntimeError("Application not initialized; call initialize() first")
        return self.registry


def _normalize_ids(device_ids: str | Iterable[str] | None) -> list[str] | None:
    if device_ids is None:
        return None
    if isinstance(device_ids, str):
        return [device_ids]
    return list(device_ids)
