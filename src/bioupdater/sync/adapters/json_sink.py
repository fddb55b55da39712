"""JSON-lines sink adapter for database-less runs.

Implements IPersistenceSink by appending one JSON object per time record
to a file. Device checkpoints are kept in a side file next to it
(`<name>.checkpoints.json`). Useful for exporting punches without a
database, or for inspecting what a pass would write.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import IO, Any

from ...exceptions import SinkConnectionError, WriteError
from ..domain.entities import TimeRecord
from ..domain.ports import IPersistenceSink

logger = logging.getLogger(__name__)


class JsonFileSink(IPersistenceSink):
    """Append-only JSON-lines implementation of IPersistenceSink."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.checkpoint_path = self.path.with_suffix(".checkpoints.json")
        self._handle: IO[str] | None = None
        self._checkpoints: dict[str, str] = {}

    @property
    def is_connected(self) -> bool:
        return self._handle is not None

    async def connect(self) -> None:
        if self._handle is not None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = self.path.open("a", encoding="utf-8")
            self._checkpoints = self._load_checkpoints()
        except (OSError, ValueError) as e:
            raise SinkConnectionError(f"Cannot open {self.path}: {e}", cause=e)
        logger.info(f"Writing time records to {self.path}")

    async def disconnect(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.close()
            logger.info(f"Closed {self.path}")

    async def insert_time_record(self, record: TimeRecord) -> None:
        if self._handle is None:
            raise WriteError("JSON sink not connected", operation="insert_time_record")
        try:
            self._handle.write(json.dumps(record.to_dict()) + "\n")
            self._handle.flush()
        except (OSError, TypeError, ValueError) as e:
            raise WriteError(
                f"Failed to write record: {e}",
                operation="insert_time_record",
                cause=e,
            )

    async def update_checkpoint(self, device_id: str, synced_at: datetime) -> None:
        if self._handle is None:
            raise WriteError("JSON sink not connected", operation="update_checkpoint")
        self._checkpoints[device_id] = synced_at.isoformat()
        try:
            self.checkpoint_path.write_text(
                json.dumps(self._checkpoints, indent=2),
                encoding="utf-8",
            )
        except OSError as e:
            raise WriteError(
                f"Failed to write checkpoint: {e}",
                operation="update_checkpoint",
                cause=e,
            )

    def _load_checkpoints(self) -> dict[str, Any]:
        if not self.checkpoint_path.exists():
            return {}
        return json.loads(self.checkpoint_path.read_text(encoding="utf-8"))
