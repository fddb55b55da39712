"""Tests for the JsonFileSink adapter."""

import json
from datetime import datetime, timezone

import pytest

from src.bioupdater.exceptions import WriteError
from src.bioupdater.sync.adapters.json_sink import JsonFileSink
from src.bioupdater.sync.domain.entities import TimeRecord


@pytest.fixture
def record():
    return TimeRecord(
        employee_number="1042",
        timestamp=datetime(2024, 1, 15, 8, 3, 12),
        in_out_mode=0,
        ip_address="10.0.0.10",
        location="Front Door",
        device_id="front",
    )


class TestJsonFileSink:

    async def test_appends_one_line_per_record(self, tmp_path, record):
        path = tmp_path / "out" / "punches.jsonl"
        sink = JsonFileSink(path)

        await sink.connect()
        await sink.insert_time_record(record)
        await sink.insert_time_record(record)
        await sink.disconnect()

        lines = path.read_text().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[0]) == {
            "employee_number": "1042",
            "time_record": "2024-01-15 08:03:12",
            "in_out_mode": 0,
            "verify_mode": 1,
            "ip_address": "10.0.0.10",
            "location": "Front Door",
            "device_id": "front",
        }

    async def test_existing_file_is_appended(self, tmp_path, record):
        path = tmp_path / "punches.jsonl"
        path.write_text('{"existing": true}\n')
        sink = JsonFileSink(path)

        await sink.connect()
        await sink.insert_time_record(record)
        await sink.disconnect()

        assert len(path.read_text().splitlines()) == 2

    async def test_checkpoints_written_to_side_file(self, tmp_path):
        sink = JsonFileSink(tmp_path / "punches.jsonl")
        synced_at = datetime(2024, 1, 16, 1, 0, 0, tzinfo=timezone.utc)

        await sink.connect()
        await sink.update_checkpoint("front", synced_at)
        await sink.update_checkpoint("back", synced_at)
        await sink.disconnect()

        checkpoints = json.loads((tmp_path / "punches.checkpoints.json").read_text())
        assert checkpoints == {
            "front": "2024-01-16T01:00:00+00:00",
            "back": "2024-01-16T01:00:00+00:00",
        }

    async def test_checkpoints_survive_reconnect(self, tmp_path):
        path = tmp_path / "punches.jsonl"
        first = datetime(2024, 1, 16, tzinfo=timezone.utc)
        second = datetime(2024, 1, 17, tzinfo=timezone.utc)

        sink = JsonFileSink(path)
        await sink.connect()
        await sink.update_checkpoint("front", first)
        await sink.disconnect()

        sink = JsonFileSink(path)
        await sink.connect()
        await sink.update_checkpoint("back", second)
        await sink.disconnect()

        checkpoints = json.loads(sink.checkpoint_path.read_text())
        assert set(checkpoints) == {"front", "back"}

    async def test_write_without_connect_raises(self, tmp_path, record):
        sink = JsonFileSink(tmp_path / "punches.jsonl")

        with pytest.raises(WriteError):
            await sink.insert_time_record(record)

    async def test_disconnect_is_idempotent(self, tmp_path):
        sink = JsonFileSink(tmp_path / "punches.jsonl")

        await sink.disconnect()
        await sink.connect()
        await sink.disconnect()
        await sink.disconnect()

        assert sink.is_connected is False
