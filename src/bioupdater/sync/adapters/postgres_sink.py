"""PostgreSQL sink adapter for time record persistence.

This adapter implements IPersistenceSink. It holds a single asyncpg
connection for the duration of a pass; every record write and every
checkpoint update of that pass goes through it.

Writes are not wrapped in a transaction: a failed INSERT must not roll
back the records written before it, and must not block the ones after.
"""

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from ...database import close_connection, convert_db_exception, create_connection
from ...exceptions import WriteError
from ..domain.entities import TimeRecord
from ..domain.ports import IPersistenceSink
from .punch_mapper import PunchMapper

if TYPE_CHECKING:
    import asyncpg

    from ...config import DatabaseConfig

logger = logging.getLogger(__name__)


class PostgresTimeRecordSink(IPersistenceSink):
    """PostgreSQL implementation of IPersistenceSink.

    Tables (see src/bioupdater/schema.sql):
    - employee_time_records: one row per written punch
    - biometric_devices: one row per terminal with date_last_updated
    """

    INSERT_TIME_RECORD = """
        INSERT INTO employee_time_records (
            employee_number, time_record, in_out_mode, verify_mode,
            ip_address, location, device_id
        ) VALUES ($1, $2, $3, $4, $5, $6, $7)
    """

    UPDATE_CHECKPOINT = """
        INSERT INTO biometric_devices (id, date_last_updated)
        VALUES ($1, $2)
        ON CONFLICT (id) DO UPDATE SET date_last_updated = EXCLUDED.date_last_updated
    """

    def __init__(self, config: "DatabaseConfig"):
        """Initialize the sink.

        Args:
            config: Database configuration (DSN and connect timeout)
        """
        self.config = config
        self._conn: "asyncpg.Connection | None" = None

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    async def connect(self) -> None:
        """Open the pass connection.

        Raises:
            SinkConnectionError: If PostgreSQL cannot be reached
        """
        if self._conn is not None:
            return
        self._conn = await create_connection(
            self.config.dsn,
            timeout=self.config.connect_timeout,
        )

    async def disconnect(self) -> None:
        conn, self._conn = self._conn, None
        await close_connection(conn)

    async def insert_time_record(self, record: TimeRecord) -> None:
        """Insert one punch into employee_time_records.

        Raises:
            WriteError: If not connected or the INSERT fails
        """
        conn = self._require_connection("insert_time_record")
        try:
            await conn.execute(self.INSERT_TIME_RECORD, *PunchMapper.map_to_record(record))
        except Exception as e:
            raise convert_db_exception(e, operation="insert_time_record")

    async def update_checkpoint(self, device_id: str, synced_at: datetime) -> None:
        """Upsert the device's last-synced timestamp.

        Raises:
            WriteError: If not connected or the statement fails
        """
        conn = self._require_connection("update_checkpoint")
        try:
            await conn.execute(self.UPDATE_CHECKPOINT, device_id, synced_at)
        except Exception as e:
            raise convert_db_exception(e, operation="update_checkpoint")

    def _require_connection(self, operation: str) -> "asyncpg.Connection":
        if self._conn is None:
            raise WriteError("Database not connected", operation=operation)
        return self._conn
