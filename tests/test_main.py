#!/usr/bin/env python3
"""Tests for the command-line interface."""
import json
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

import main
from src.bioupdater.exceptions import SinkConnectionError
from src.bioupdater.sync.domain.entities import SyncErrorEntry, SyncResult


def parse(*argv):
    return main.build_parser().parse_args(list(argv))


# ============================================
# Argument Parsing
# ============================================

class TestParser:

    def test_defaults(self):
        args = parse()

        assert args.date is None
        assert args.from_date is None
        assert args.devices is None
        assert args.count == 1
        assert args.json_only is None
        assert args.init_db is False

    def test_date_range(self):
        args = parse("--from", "2024-01-01", "--to", "2024-01-31")

        assert args.from_date == date(2024, 1, 1)
        assert args.to_date == date(2024, 1, 31)

    def test_invalid_date_exits(self):
        with pytest.raises(SystemExit):
            parse("--date", "01/15/2024")

    def test_split_ids(self):
        assert main._split_ids("front, back,,dock ") == ["front", "back", "dock"]
        assert main._split_ids(" , ") is None
        assert main._split_ids(None) is None

    def test_main_rejects_half_range(self, monkeypatch):
        monkeypatch.setattr("sys.argv", ["main.py", "--from", "2024-01-01"])

        with pytest.raises(SystemExit) as exc_info:
            main.main()

        assert exc_info.value.code == 2

    def test_main_rejects_reversed_range(self, monkeypatch):
        monkeypatch.setattr("sys.argv", ["main.py", "--from", "2024-01-31", "--to", "2024-01-01"])

        with pytest.raises(SystemExit) as exc_info:
            main.main()

        assert exc_info.value.code == 2


# ============================================
# Config File Commands
# ============================================

class TestConfigCommands:

    def test_generate_then_validate(self, tmp_path, capsys):
        path = tmp_path / "devices.json"

        assert main.run_generate_config(str(path), 2) == 0
        assert main.run_validate_config(str(path)) == 0

        output = capsys.readouterr().out
        assert "Status: VALID" in output
        assert "branch_office" in output

    def test_validate_invalid_file(self, tmp_path, capsys):
        path = tmp_path / "devices.json"
        path.write_text(json.dumps({"devices": [{"id": "front"}]}))

        assert main.run_validate_config(str(path)) == 1
        assert 'Missing required field "ip"' in capsys.readouterr().out

    def test_generate_rejects_zero_count(self, tmp_path):
        assert main.run_generate_config(str(tmp_path / "devices.json"), 0) == 1


# ============================================
# Sync Dispatch
# ============================================

def make_app(result: SyncResult):
    app = MagicMock()
    app.run_range_sync = AsyncMock(return_value=result)
    app.run_device_sync = AsyncMock(return_value=result)
    app.run_yesterday_sync = AsyncMock(return_value=result)
    return app


@pytest.fixture
def ok_result():
    return SyncResult(from_date=date(2024, 1, 15), to_date=date(2024, 1, 15))


class TestRunSync:

    async def test_yesterday_by_default(self, ok_result):
        app = make_app(ok_result)

        assert await main.run_sync(app, parse()) == 0

        app.run_yesterday_sync.assert_awaited_once()

    async def test_single_date(self, ok_result):
        app = make_app(ok_result)

        await main.run_sync(app, parse("--date", "2024-01-15", "--devices", "front"))

        app.run_range_sync.assert_awaited_once_with(date(2024, 1, 15), date(2024, 1, 15), ["front"])

    async def test_devices_only(self, ok_result):
        app = make_app(ok_result)

        await main.run_sync(app, parse("--devices", "front,back"))

        app.run_device_sync.assert_awaited_once_with(["front", "back"])

    async def test_errors_give_nonzero_exit(self):
        result = SyncResult(
            from_date=date(2024, 1, 15),
            to_date=date(2024, 1, 15),
            errors=[SyncErrorEntry("unreachable", "device_sync_error", "front")],
        )

        assert await main.run_sync(make_app(result), parse()) == 1


class TestRun:

    async def test_configuration_error(self, tmp_path, monkeypatch, capsys):
        for key in ("BIOMETRIC_DEVICES", "BIOMETRIC_DEVICE_IP", "BIOMETRIC_DEVICE_1_IP"):
            monkeypatch.delenv(key, raising=False)

        code = await main.run(parse("--config", str(tmp_path / "missing.json")))

        assert code == 1
        assert "Configuration error" in capsys.readouterr().out

    async def test_list_devices_without_database(self, tmp_path, monkeypatch, capsys):
        for key in ("DATABASE_URL", "POSTGRES_HOST", "POSTGRES_DB", "SINK_TYPE"):
            monkeypatch.delenv(key, raising=False)
        path = tmp_path / "devices.json"
        main.run_generate_config(str(path), 1)

        code = await main.run(parse("--config", str(path), "--list-devices"))

        assert code == 0
        assert "main_office" in capsys.readouterr().out

    async def test_aborted_sync_returns_one(self, tmp_path, capsys):
        path = tmp_path / "devices.json"
        main.run_generate_config(str(path), 1)
        failing = AsyncMock(side_effect=SinkConnectionError("database down"))

        with patch.object(main.BiometricUpdaterApp, "run_yesterday_sync", failing):
            code = await main.run(
                parse("--config", str(path), "--json-only", str(tmp_path / "out.jsonl"))
            )

        assert code == 1
        assert "Sync failed" in capsys.readouterr().out

    async def test_status_reports_database_health(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setenv("DATABASE_URL", "postgresql://sync@db:5432/attendance")
        monkeypatch.delenv("SINK_TYPE", raising=False)
        path = tmp_path / "devices.json"
        main.run_generate_config(str(path), 1)
        health = AsyncMock(return_value={"healthy": False, "error": "connection refused"})

        with patch.object(main.BiometricUpdaterApp, "get_database_health", health), \
                patch.object(main.BiometricUpdaterApp, "get_devices_status", AsyncMock(return_value=[])):
            code = await main.run(parse("--config", str(path), "--status"))

        assert code == 0
        assert "Database: unhealthy (connection refused)" in capsys.readouterr().out
        health.assert_awaited_once()


# ============================================
# Database Commands
# ============================================

def fake_connection():
    conn = MagicMock()
    conn.execute = AsyncMock()
    conn.close = AsyncMock()
    return conn


@pytest.fixture
def postgres_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://sync@db:5432/attendance")
    monkeypatch.delenv("SINK_TYPE", raising=False)


class TestInitDb:

    async def test_applies_packaged_schema(self, postgres_env, capsys):
        conn = fake_connection()

        with patch("src.bioupdater.database.asyncpg.connect", AsyncMock(return_value=conn)):
            code = await main.run_init_db()

        assert code == 0
        sql = conn.execute.await_args.args[0]
        assert "CREATE TABLE IF NOT EXISTS employee_time_records" in sql
        assert "CREATE TABLE IF NOT EXISTS biometric_devices" in sql
        conn.close.assert_awaited_once()
        assert "schema is up to date" in capsys.readouterr().out

    async def test_schema_failure_closes_connection(self, postgres_env, capsys):
        conn = fake_connection()
        conn.execute.side_effect = RuntimeError("permission denied for schema public")

        with patch("src.bioupdater.database.asyncpg.connect", AsyncMock(return_value=conn)):
            code = await main.run_init_db()

        assert code == 1
        assert "permission denied" in capsys.readouterr().out
        conn.close.assert_awaited_once()

    async def test_unreachable_database(self, postgres_env, capsys):
        connect = AsyncMock(side_effect=OSError("connection refused"))

        with patch("src.bioupdater.database.asyncpg.connect", connect):
            code = await main.run_init_db()

        assert code == 1
        assert "Schema initialization failed" in capsys.readouterr().out

    async def test_requires_postgres_sink(self, monkeypatch, capsys):
        monkeypatch.setenv("SINK_TYPE", "json")
        monkeypatch.setenv("SINK_JSON_PATH", "punches.jsonl")

        code = await main.run_init_db()

        assert code == 1
        assert "requires a PostgreSQL sink" in capsys.readouterr().out

    async def test_missing_database_settings(self, monkeypatch, capsys):
        for key in ("DATABASE_URL", "POSTGRES_HOST", "POSTGRES_DB", "SINK_TYPE"):
            monkeypatch.delenv(key, raising=False)

        code = await main.run_init_db()

        assert code == 1
        assert "Configuration error" in capsys.readouterr().out

    def test_main_dispatches_init_db(self, monkeypatch):
        monkeypatch.setattr("sys.argv", ["main.py", "--init-db"])
        init_db = AsyncMock(return_value=0)

        with patch.object(main, "run_init_db", init_db), pytest.raises(SystemExit) as exc_info:
            main.main()

        assert exc_info.value.code == 0
        init_db.assert_awaited_once()
