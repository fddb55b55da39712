"""Tests for the BiometricUpdaterApp facade.

Sinks and devices are in-memory fakes injected through the app's
factory parameters.
"""

from dataclasses import replace
from datetime import date, datetime
from unittest.mock import AsyncMock, patch

import pytest

from src.bioupdater.app import BiometricUpdaterApp
from src.bioupdater.config import AppConfig, DatabaseConfig
from src.bioupdater.exceptions import ConfigurationError, DeviceConnectionError, UnknownDeviceError
from src.bioupdater.sync.domain.entities import DeviceEndpoint, DeviceIdentity, TimeRecord
from src.bioupdater.sync.domain.ports import IDeviceSource, IPersistenceSink


# ============================================
# Fakes
# ============================================

class FakeSink(IPersistenceSink):

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.records: list[TimeRecord] = []
        self.checkpoints: dict[str, datetime] = {}
        self.connected = False

    async def connect(self) -> None:
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    async def insert_time_record(self, record: TimeRecord) -> None:
        self.records.append(record)

    async def update_checkpoint(self, device_id: str, synced_at: datetime) -> None:
        self.checkpoints[device_id] = synced_at


class FakeDevice(IDeviceSource):

    def __init__(self, endpoint: DeviceEndpoint, records: list[TimeRecord], reachable: bool = True):
        self.endpoint = endpoint
        self.records = records
        self.reachable = reachable
        self.connected = False
        self.disconnect_calls = 0

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def connect(self) -> None:
        if not self.reachable:
            raise DeviceConnectionError("host unreachable", device_id=self.endpoint.id)
        self.connected = True

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False

    async def get_attendance(self, from_date: date, to_date: date) -> list[TimeRecord]:
        return list(self.records)

    async def get_device_info(self) -> DeviceIdentity:
        return DeviceIdentity(
            id=self.endpoint.id,
            ip=self.endpoint.ip,
            name=self.endpoint.display_name,
            connected=self.connected,
        )


def punch(employee: str, day: int, device_id: str) -> TimeRecord:
    return TimeRecord(
        employee_number=employee,
        timestamp=datetime(2024, 1, day, 8, 0, 0),
        in_out_mode=0,
        device_id=device_id,
    )


class Harness:
    """Builds an app whose sink and devices can be inspected afterwards."""

    def __init__(self, unreachable: set[str] | None = None):
        self.unreachable = unreachable or set()
        self.sink: FakeSink | None = None
        self.devices: dict[str, FakeDevice] = {}

    def sink_factory(self, config: DatabaseConfig) -> FakeSink:
        self.sink = FakeSink(config)
        return self.sink

    def device_factory(self, endpoint: DeviceEndpoint) -> FakeDevice:
        records = [
            punch("1001", 14, endpoint.id),
            punch("1002", 15, endpoint.id),
            punch("1003", 16, endpoint.id),
        ]
        device = FakeDevice(endpoint, records, reachable=endpoint.id not in self.unreachable)
        self.devices[endpoint.id] = device
        return device

    def build(self, config: AppConfig) -> BiometricUpdaterApp:
        return BiometricUpdaterApp(
            config,
            sink_factory=self.sink_factory,
            device_factory=self.device_factory,
        )


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(
        devices=(
            DeviceEndpoint(id="front", ip="10.0.0.10", name="Front Door"),
            DeviceEndpoint(id="back", ip="10.0.0.11"),
            DeviceEndpoint(id="dock", ip="10.0.0.12", enabled=False),
        ),
        database=DatabaseConfig(url="postgresql://db/attendance"),
        environment="test",
        config_source="devices.json",
        config_file_path="devices.json",
    )


# ============================================
# Initialization
# ============================================

class TestInitialize:

    def test_initialize_wires_components(self, config):
        harness = Harness()
        app = harness.build(config)

        assert app.initialized is False
        app.initialize()

        assert app.initialized is True
        assert app.sink is harness.sink
        assert harness.sink.config is config.database
        assert app.registry.get_device_ids() == ["front", "back", "dock"]

    def test_initialize_without_devices_raises(self, config):
        app = Harness().build(AppConfig(devices=(), database=config.database))

        with pytest.raises(ConfigurationError):
            app.initialize()

    async def test_sync_before_initialize_raises(self, config):
        app = Harness().build(config)

        with pytest.raises(RuntimeError):
            await app.run_date_sync("2024-01-15")

    def test_list_registered_devices_before_initialize(self, config):
        assert Harness().build(config).list_registered_devices() == []


# ============================================
# Sync Operations
# ============================================

class TestSyncOperations:

    async def test_run_date_sync_filters_to_one_day(self, config):
        harness = Harness()
        app = harness.build(config)
        app.initialize()

        result = await app.run_date_sync("2024-01-15")

        assert result.success is True
        assert result.total_records == 2
        assert result.inserted_records == 2
        assert [r.employee_number for r in harness.sink.records] == ["1002", "1002"]
        assert set(result.device_results) == {"front", "back"}
        assert set(harness.sink.checkpoints) == {"front", "back"}

    async def test_run_range_sync_for_selected_device(self, config):
        harness = Harness()
        app = harness.build(config)
        app.initialize()

        result = await app.run_range_sync(date(2024, 1, 14), date(2024, 1, 15), device_ids="back")

        assert result.inserted_records == 2
        assert set(result.device_results) == {"back"}
        assert "front" not in harness.devices

    async def test_run_range_sync_accepts_generator_ids(self, config):
        harness = Harness()
        app = harness.build(config)
        app.initialize()

        result = await app.run_range_sync(
            "2024-01-14", "2024-01-16", device_ids=(i for i in ["front", "dock"])
        )

        assert set(result.device_results) == {"front", "dock"}
        assert result.inserted_records == 6

    async def test_run_range_sync_rejects_reversed_window(self, config):
        app = Harness().build(config)
        app.initialize()

        with pytest.raises(ValueError):
            await app.run_range_sync("2024-01-16", "2024-01-15")

    async def test_unknown_device_aborts_pass(self, config):
        harness = Harness()
        app = harness.build(config)
        app.initialize()

        with pytest.raises(UnknownDeviceError):
            await app.run_range_sync("2024-01-15", "2024-01-15", ["front", "roof"])

        assert harness.sink.records == []

    async def test_unreachable_device_is_reported(self, config):
        harness = Harness(unreachable={"front"})
        app = harness.build(config)
        app.initialize()

        result = await app.run_date_sync(date(2024, 1, 15))

        assert result.inserted_records == 1
        assert [e.device_id for e in result.errors] == ["front"]
        assert result.partially_successful is True


# ============================================
# Device Operations and Status
# ============================================

class TestDeviceOperations:

    async def test_connection_tests(self, config):
        app = Harness(unreachable={"back"}).build(config)
        app.initialize()

        results = await app.test_device_connections()

        assert [(r.device_id, r.success) for r in results] == [
            ("front", True),
            ("back", False),
            ("dock", True),
        ]

    async def test_connection_test_single_id(self, config):
        app = Harness().build(config)
        app.initialize()

        [result] = await app.test_device_connections("front")

        assert result.name == "Front Door"

    async def test_devices_status(self, config):
        app = Harness().build(config)
        app.initialize()

        statuses = await app.get_devices_status()

        assert [s.status for s in statuses] == ["available"] * 3

    def test_get_status(self, config):
        app = Harness().build(config)
        app.initialize()

        status = app.get_status()

        assert status["initialized"] is True
        assert status["environment"] == "test"
        assert status["config"]["enabled_device_count"] == 2
        assert [d["id"] for d in status["devices"]] == ["front", "back", "dock"]
        assert status["database"]["url_configured"] is True

    async def test_cleanup_disconnects_handles(self, config):
        harness = Harness()
        app = harness.build(config)
        app.initialize()
        await app.test_device_connections(["front"])

        await app.cleanup()

        assert harness.devices["front"].disconnect_calls == 2

    async def test_cleanup_before_initialize_is_noop(self, config):
        await Harness().build(config).cleanup()


# ============================================
# Database Operations
# ============================================

class TestDatabaseHealth:

    async def test_checks_configured_postgres(self, config):
        app = Harness().build(config)
        check = AsyncMock(return_value={"healthy": True})

        with patch("src.bioupdater.app.check_database_health", check):
            health = await app.get_database_health()

        assert health == {"healthy": True}
        check.assert_awaited_once_with("postgresql://db/attendance", timeout=30.0)

    async def test_unreachable_database_reported(self, config):
        app = Harness().build(config)
        check = AsyncMock(return_value={"healthy": False, "error": "connection refused"})

        with patch("src.bioupdater.app.check_database_health", check):
            health = await app.get_database_health()

        assert health["healthy"] is False
        assert health["error"] == "connection refused"

    async def test_incomplete_settings_reported_without_connecting(self, config):
        app = Harness().build(replace(config, database=DatabaseConfig()))
        check = AsyncMock()

        with patch("src.bioupdater.app.check_database_health", check):
            health = await app.get_database_health()

        assert health["healthy"] is False
        assert "DATABASE_URL" in health["error"]
        check.assert_not_awaited()

    async def test_json_sink_has_no_database(self, config):
        app = Harness().build(
            replace(config, database=DatabaseConfig(sink_type="json", json_path="out.jsonl"))
        )

        assert await app.get_database_health() is None
