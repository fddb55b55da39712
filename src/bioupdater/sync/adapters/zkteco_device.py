"""ZKTeco terminal adapter for pulling attendance punches.

This adapter implements IDeviceSource on top of the pyzk client. pyzk is
a blocking socket library, so every call runs in a worker thread and is
bounded by the endpoint's own configured timeout.
"""

import asyncio
import logging
import math
from datetime import date
from typing import Any

from zk import ZK

from ...exceptions import DeviceConnectionError, RetrievalError
from ..domain.entities import DeviceEndpoint, DeviceIdentity, TimeRecord
from ..domain.ports import IDeviceSource
from .punch_mapper import PunchMapper

logger = logging.getLogger(__name__)


class ZKTecoDevice(IDeviceSource):
    """pyzk implementation of IDeviceSource.

    The terminal's native listing returns the full attendance log; the
    records are mapped to TimeRecords and returned unfiltered. The sync
    use case narrows them to the requested window.
    """

    def __init__(self, endpoint: DeviceEndpoint, client_factory=ZK):
        """Initialize the adapter.

        Args:
            endpoint: Terminal configuration
            client_factory: pyzk client constructor, replaceable in tests
        """
        self.endpoint = endpoint
        self.mapper = PunchMapper(endpoint)
        self._client_factory = client_factory
        self._connection: Any = None
        self._late_cleanups: set[asyncio.Future] = set()

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    async def connect(self) -> None:
        """Connect to the terminal within the endpoint's timeout.

        Raises:
            DeviceConnectionError: If the terminal is unreachable or times out
        """
        if self.is_connected:
            return

        client = self._client_factory(
            self.endpoint.ip,
            port=self.endpoint.port,
            timeout=max(1, math.ceil(self.endpoint.timeout_seconds)),
            force_udp=self.endpoint.protocol.lower() == "udp",
        )

        connect_task = asyncio.ensure_future(asyncio.to_thread(client.connect))
        try:
            # A timeout cancels only the shield; connect_task keeps running
            self._connection = await asyncio.wait_for(
                asyncio.shield(connect_task),
                timeout=self.endpoint.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            cleanup = asyncio.ensure_future(self._close_late_connection(connect_task))
            self._late_cleanups.add(cleanup)
            cleanup.add_done_callback(self._late_cleanups.discard)
            raise DeviceConnectionError(
                f"Timed out connecting to {self.endpoint.display_name}",
                device_id=self.endpoint.id,
                host=f"{self.endpoint.ip}:{self.endpoint.port}",
                timeout_seconds=self.endpoint.timeout_seconds,
                cause=e,
            )
        except Exception as e:
            logger.error(f"Failed to connect to ZKTeco device {self.endpoint.id}: {e}")
            raise DeviceConnectionError(
                f"Failed to connect to {self.endpoint.display_name}: {e}",
                device_id=self.endpoint.id,
                host=f"{self.endpoint.ip}:{self.endpoint.port}",
                cause=e,
            )

        logger.debug(f"Connected to ZKTeco device {self.endpoint.id}")

    async def _close_late_connection(self, connect_task: "asyncio.Future[Any]") -> None:
        """Wait out a timed-out connect and close the session if it opened."""
        try:
            connection = await connect_task
        except Exception as e:
            logger.debug(f"Timed-out connect to {self.endpoint.id} failed later: {e}")
            return

        try:
            await asyncio.to_thread(connection.disconnect)
            logger.debug(f"Closed late session on ZKTeco device {self.endpoint.id}")
        except Exception as e:
            logger.warning(f"Error closing late session on ZKTeco device {self.endpoint.id}: {e}")

    async def disconnect(self) -> None:
        """Close the session, including any opened late by a timed-out connect."""
        if self._late_cleanups:
            await asyncio.gather(*self._late_cleanups)

        if not self.is_connected:
            return

        connection, self._connection = self._connection, None
        try:
            await asyncio.wait_for(
                asyncio.to_thread(connection.disconnect),
                timeout=self.endpoint.timeout_seconds,
            )
            logger.debug(f"Disconnected from ZKTeco device {self.endpoint.id}")
        except Exception as e:
            logger.warning(f"Error disconnecting from ZKTeco device {self.endpoint.id}: {e}")

    async def get_attendance(self, from_date: date, to_date: date) -> list[TimeRecord]:
        """Read the terminal's attendance log.

        Raises:
            RetrievalError: If not connected or the listing fails
        """
        if not self.is_connected:
            raise RetrievalError("Device not connected", device_id=self.endpoint.id)

        try:
            raw_logs = await asyncio.to_thread(self._connection.get_attendance)
        except Exception as e:
            logger.error(f"Error getting attendance data from {self.endpoint.id}: {e}")
            raise RetrievalError(
                f"Error getting attendance data: {e}",
                device_id=self.endpoint.id,
                cause=e,
            )

        try:
            records = self.mapper.map_all(raw_logs or [])
        except ValueError as e:
            raise RetrievalError(
                f"Malformed attendance log: {e}",
                device_id=self.endpoint.id,
                cause=e,
            )

        logger.debug(f"Retrieved {len(records)} attendance records from {self.endpoint.id}")
        return records

    async def get_device_info(self) -> DeviceIdentity:
        """Identity from configuration; never touches the network."""
        return DeviceIdentity(
            id=self.endpoint.id,
            ip=self.endpoint.ip,
            name=self.endpoint.display_name,
            model=self.endpoint.model,
            port=self.endpoint.port,
            connected=self.is_connected,
        )
