"""Device registry adapter.

This adapter implements IDeviceRegistry. It owns the mapping from device
id to configuration and to lazily created IDeviceSource handles, and it
runs the bulk operations that touch every device.

Bulk operations without a shared target (disconnect, connection tests)
run concurrently with asyncio.gather; a failure on one device never
stops the others.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable

from ...exceptions import UnknownDeviceError
from ..domain.entities import (
    ConnectionTestResult,
    DeviceEndpoint,
    DeviceStatus,
)
from ..domain.ports import IDeviceRegistry, IDeviceSource
from .device_factory import create_device_source

logger = logging.getLogger(__name__)


class DeviceRegistry(IDeviceRegistry):
    """In-memory registry of terminal configurations and their handles.

    Handles are created on first access and cached until removed or until
    disconnect_all() clears the cache. Concurrent sync passes against one
    registry need external mutual exclusion.

    Example:
        registry = DeviceRegistry()
        registry.register_devices(config.devices)
        results = await registry.test_all_connections()
    """

    def __init__(
        self,
        endpoints: Iterable[DeviceEndpoint] = (),
        device_factory: Callable[[DeviceEndpoint], IDeviceSource] = create_device_source,
    ):
        """Initialize the registry.

        Args:
            endpoints: Initial device configurations
            device_factory: Builds a handle from a configuration
        """
        self._configs: dict[str, DeviceEndpoint] = {}
        self._devices: dict[str, IDeviceSource] = {}
        self._device_factory = device_factory
        self.register_devices(endpoints)

    # ============================================
    # Registration
    # ============================================

    def register_device(self, endpoint: DeviceEndpoint) -> None:
        """Insert or replace a configuration entry by id.

        An already cached handle for the id is left untouched.

        Raises:
            ValueError: If the endpoint has no id
        """
        if not endpoint.id:
            raise ValueError("Device configuration must have an ID")

        self._configs[endpoint.id] = endpoint
        logger.debug(f"Registered device: {endpoint.id} ({endpoint.display_name})")

    def register_devices(self, endpoints: Iterable[DeviceEndpoint]) -> None:
        endpoints = list(endpoints)
        for endpoint in endpoints:
            self.register_device(endpoint)
        if endpoints:
            logger.info(f"Registered {len(endpoints)} biometric devices")

    async def remove_device(self, device_id: str) -> bool:
        """Drop a configuration and its cached handle.

        Returns:
            True if the device was registered
        """
        removed = self._configs.pop(device_id, None) is not None
        device = self._devices.pop(device_id, None)
        if device is not None:
            try:
                await device.disconnect()
            except Exception as e:
                logger.error(f"Error disconnecting device {device_id}: {e}")

        if removed:
            logger.debug(f"Removed device: {device_id}")
        return removed

    # ============================================
    # Lookup
    # ============================================

    def get_device(self, device_id: str) -> IDeviceSource:
        """Return the cached handle, creating it from configuration if needed.

        Disabled devices are still returned when addressed directly.

        Raises:
            UnknownDeviceError: If the id has no configuration entry
        """
        device = self._devices.get(device_id)
        if device is not None:
            return device

        endpoint = self._configs.get(device_id)
        if endpoint is None:
            raise UnknownDeviceError(device_id)

        device = self._device_factory(endpoint)
        self._devices[device_id] = device
        logger.debug(f"Created device adapter for: {device_id}")
        return device

    def get_all_devices(self) -> list[IDeviceSource]:
        return [
            self.get_device(device_id)
            for device_id, endpoint in self._configs.items()
            if endpoint.enabled
        ]

    def get_device_configs(self) -> list[DeviceEndpoint]:
        """All registered configurations, disabled ones included."""
        return list(self._configs.values())

    def get_device_ids(self) -> list[str]:
        return list(self._configs)

    def has_device(self, device_id: str) -> bool:
        return device_id in self._configs

    def get_config(self, device_id: str) -> DeviceEndpoint:
        endpoint = self._configs.get(device_id)
        if endpoint is None:
            raise UnknownDeviceError(device_id)
        return endpoint

    # ============================================
    # Bulk Lifecycle
    # ============================================

    async def disconnect_all(self) -> None:
        """Disconnect every cached handle concurrently, then clear the cache."""
        try:
            await asyncio.gather(
                *(
                    self._disconnect_quietly(device_id, device)
                    for device_id, device in self._devices.items()
                )
            )
        finally:
            self._devices.clear()
        logger.info("Disconnected all biometric devices")

    async def _disconnect_quietly(self, device_id: str, device: IDeviceSource) -> None:
        try:
            await device.disconnect()
        except Exception as e:
            logger.error(f"Error disconnecting device {device_id}: {e}")

    async def test_connection(self, device_id: str) -> ConnectionTestResult:
        """Connect, read identity, disconnect. Never raises."""
        try:
            endpoint = self.get_config(device_id)
            device = self.get_device(device_id)

            await device.connect()
            try:
                identity = await device.get_device_info()
            finally:
                await device.disconnect()

            return ConnectionTestResult(
                device_id=device_id,
                success=True,
                name=endpoint.display_name,
                identity=identity,
            )
        except Exception as e:
            logger.warning(f"Connection test failed for device {device_id}: {e}")
            return ConnectionTestResult(
                device_id=device_id,
                success=False,
                error=str(e),
            )

    async def test_all_connections(
        self,
        device_ids: Iterable[str] | None = None,
    ) -> list[ConnectionTestResult]:
        """Test every registered device (or the given ids) concurrently.

        Returns:
            One result per device, in request order
        """
        ids = list(device_ids) if device_ids is not None else self.get_device_ids()
        return list(await asyncio.gather(*(self.test_connection(i) for i in ids)))

    # ============================================
    # Status
    # ============================================

    async def get_device_status(self, device_id: str) -> DeviceStatus:
        """Configuration-level status; does not open a connection."""
        try:
            endpoint = self.get_config(device_id)
            device = self.get_device(device_id)
            identity = await device.get_device_info()

            return DeviceStatus(
                device_id=device_id,
                status="available",
                name=endpoint.display_name,
                ip=endpoint.ip,
                type=endpoint.type,
                identity=identity,
            )
        except Exception as e:
            return DeviceStatus(device_id=device_id, status="error", error=str(e))

    async def get_devices_status(self) -> list[DeviceStatus]:
        return list(
            await asyncio.gather(
                *(self.get_device_status(device_id) for device_id in self._configs)
            )
        )
