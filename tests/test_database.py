#!/usr/bin/env python3
"""Tests for database utilities.

Tests cover:
    - Driver exception conversion
    - Connection open/close error handling (asyncpg patched)
    - Schema bootstrap and sink statements against a live PostgreSQL

Live tests run only when DATABASE_URL is set. They run inside a
transaction that is ROLLED BACK, so no test data persists.
"""
import asyncio
import os
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import asyncpg
import pytest
import pytest_asyncio
from dotenv import load_dotenv

from src.bioupdater.database import (
    SCHEMA_PATH,
    apply_schema,
    check_database_health,
    close_connection,
    convert_db_exception,
    create_connection,
)
from src.bioupdater.exceptions import (
    DuplicateRecordError,
    SinkConnectionError,
    WriteError,
)
from src.bioupdater.sync.adapters.postgres_sink import PostgresTimeRecordSink

# Load environment variables from .env file (for local development)
load_dotenv()

requires_database = pytest.mark.skipif(
    not os.getenv("DATABASE_URL"),
    reason="DATABASE_URL not set",
)


# ============================================
# Error Conversion
# ============================================

class TestConvertDbException:

    def test_unique_violation(self):
        error = convert_db_exception(asyncpg.UniqueViolationError("duplicate key"), "insert_time_record")

        assert isinstance(error, DuplicateRecordError)
        assert error.details["operation"] == "insert_time_record"

    def test_duplicate_message(self):
        assert isinstance(convert_db_exception(RuntimeError("Duplicate entry")), DuplicateRecordError)

    def test_connection_lost(self):
        error = convert_db_exception(asyncpg.ConnectionDoesNotExistError("connection was closed"))

        assert type(error) is WriteError
        assert "connection lost" in error.message

    def test_timeout_message(self):
        error = convert_db_exception(RuntimeError("statement timed out"))

        assert "timed out" in error.message

    def test_generic_error(self):
        cause = RuntimeError("value too long")

        error = convert_db_exception(cause, "update_checkpoint")

        assert type(error) is WriteError
        assert error.__cause__ is cause
        assert error.details["operation"] == "update_checkpoint"

    def test_sync_errors_pass_through(self):
        original = WriteError("already converted")

        assert convert_db_exception(original) is original


# ============================================
# Connection Helpers
# ============================================

class TestConnectionHelpers:

    async def test_create_connection_timeout(self):
        with patch("asyncpg.connect", AsyncMock(side_effect=asyncio.TimeoutError())):
            with pytest.raises(SinkConnectionError) as exc_info:
                await create_connection("postgresql://db/attendance", timeout=2.0)

        assert exc_info.value.details["timeout_seconds"] == 2.0

    async def test_create_connection_failure(self):
        with patch("asyncpg.connect", AsyncMock(side_effect=OSError("refused"))):
            with pytest.raises(SinkConnectionError, match="refused"):
                await create_connection("postgresql://db/attendance")

    async def test_close_none_is_noop(self):
        await close_connection(None)

    async def test_close_terminates_on_error(self):
        conn = MagicMock()
        conn.close = AsyncMock(side_effect=OSError("broken pipe"))

        await close_connection(conn)

        conn.terminate.assert_called_once()

    async def test_health_check_reports_failure(self):
        with patch("asyncpg.connect", AsyncMock(side_effect=OSError("refused"))):
            health = await check_database_health("postgresql://db/attendance")

        assert health["healthy"] is False
        assert "refused" in health["error"]

    def test_schema_file_exists(self):
        sql = SCHEMA_PATH.read_text()

        assert "employee_time_records" in sql
        assert "biometric_devices" in sql

    def test_schema_ships_inside_package(self):
        assert SCHEMA_PATH.name == "schema.sql"
        assert SCHEMA_PATH.parent.name == "bioupdater"

    async def test_apply_schema_converts_driver_errors(self):
        conn = MagicMock()
        conn.execute = AsyncMock(side_effect=RuntimeError("permission denied"))

        with pytest.raises(WriteError, match="permission denied"):
            await apply_schema(conn)


# ============================================
# Live Database
# ============================================

@pytest_asyncio.fixture
async def db_connection():
    """Connection wrapped in a transaction that is rolled back after the test."""
    conn = await create_connection(os.getenv("DATABASE_URL"))
    tr = conn.transaction()
    await tr.start()

    yield conn

    await tr.rollback()
    await close_connection(conn)


@requires_database
class TestLiveDatabase:

    async def test_apply_schema_is_idempotent(self, db_connection):
        await apply_schema(db_connection)
        await apply_schema(db_connection)

        tables = await db_connection.fetch(
            """
            SELECT table_name FROM information_schema.tables
            WHERE table_name IN ('employee_time_records', 'biometric_devices')
            """
        )
        assert {t["table_name"] for t in tables} == {"employee_time_records", "biometric_devices"}

    async def test_insert_time_record_statement(self, db_connection):
        await apply_schema(db_connection)

        await db_connection.execute(
            PostgresTimeRecordSink.INSERT_TIME_RECORD,
            "TEST-1042",
            datetime(2024, 1, 15, 8, 3, 12),
            0,
            1,
            "10.0.0.10",
            "Front Door",
            "TEST-front",
        )

        row = await db_connection.fetchrow(
            "SELECT * FROM employee_time_records WHERE employee_number = $1",
            "TEST-1042",
        )
        assert row["time_record"] == datetime(2024, 1, 15, 8, 3, 12)
        assert row["location"] == "Front Door"
        assert row["device_id"] == "TEST-front"

    async def test_update_checkpoint_upserts(self, db_connection):
        await apply_schema(db_connection)
        first = datetime(2024, 1, 16, 1, 0, 0, tzinfo=timezone.utc)
        second = datetime(2024, 1, 17, 1, 0, 0, tzinfo=timezone.utc)

        await db_connection.execute(PostgresTimeRecordSink.UPDATE_CHECKPOINT, "TEST-front", first)
        await db_connection.execute(PostgresTimeRecordSink.UPDATE_CHECKPOINT, "TEST-front", second)

        rows = await db_connection.fetch(
            "SELECT date_last_updated FROM biometric_devices WHERE id = $1",
            "TEST-front",
        )
        assert [r["date_last_updated"] for r in rows] == [second]
