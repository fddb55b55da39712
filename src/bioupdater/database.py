#!/usr/bin/env python3
"""Database Utilities for the Biometric Attendance Sync.

This module provides database utilities including:
    - Single-connection open/close with error conversion
    - Schema bootstrap from the packaged schema.sql
    - Health check
    - Driver exception conversion into the sync error taxonomy

A sync pass shares exactly one connection for every write, so there is
no pool here: the sink opens a connection when the pass starts and
closes it when the pass ends.

Example:
    conn = await create_connection(config.dsn, timeout=30.0)
    try:
        await conn.execute("INSERT INTO ...")
    finally:
        await close_connection(conn)
"""
import asyncio
import logging
from pathlib import Path
from typing import Any

import asyncpg

from .exceptions import (
    DatabaseError,
    DuplicateRecordError,
    SinkConnectionError,
    WriteError,
)

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")


# ============================================
# Connection Helpers
# ============================================

async def create_connection(
    dsn: str,
    timeout: float = 30.0,
    command_timeout: float = 60.0,
    **kwargs,
):
    """Open a database connection with error handling.

    Args:
        dsn: PostgreSQL connection string
        timeout: Connect timeout in seconds
        command_timeout: Default query timeout in seconds
        **kwargs: Additional asyncpg.connect arguments

    Returns:
        asyncpg.Connection instance

    Raises:
        SinkConnectionError: If the connection cannot be opened
    """
    try:
        conn = await asyncpg.connect(
            dsn,
            timeout=timeout,
            command_timeout=command_timeout,
            **kwargs,
        )
    except (asyncio.TimeoutError, TimeoutError) as e:
        raise SinkConnectionError(
            "Timeout connecting to database",
            details={"timeout_seconds": timeout},
            cause=e,
        )
    except Exception as e:
        raise SinkConnectionError(
            f"Failed to connect to database: {e}",
            cause=e,
        )

    logger.info("Connected to PostgreSQL")
    return conn


async def close_connection(conn, timeout: float = 10.0):
    """Close a connection gracefully, terminating it if close hangs.

    Args:
        conn: asyncpg connection to close
        timeout: Maximum time to wait for a clean close
    """
    if conn is None:
        return

    try:
        await asyncio.wait_for(conn.close(), timeout=timeout)
        logger.info("Database connection closed")
    except asyncio.TimeoutError:
        logger.warning(f"Connection close timed out after {timeout}s, terminating")
        conn.terminate()
    except Exception as e:
        logger.error(f"Error closing connection: {e}")
        conn.terminate()


async def apply_schema(conn, schema_path: Path = SCHEMA_PATH) -> None:
    """Create the sync tables if they do not exist.

    Raises:
        DatabaseError: If the schema statements fail
    """
    sql = schema_path.read_text(encoding="utf-8")
    try:
        await conn.execute(sql)
    except Exception as e:
        raise convert_db_exception(e, operation="apply_schema")
    logger.info(f"Applied schema from {schema_path.name}")


# ============================================
# Error Conversion
# ============================================

def convert_db_exception(e: Exception, operation: str = "write") -> DatabaseError:
    """Convert a driver exception to the appropriate sync error subtype."""
    if isinstance(e, DatabaseError):
        return e

    if isinstance(e, asyncpg.UniqueViolationError):
        return DuplicateRecordError(
            f"Duplicate entry: {e}",
            operation=operation,
            cause=e,
        )

    if isinstance(e, asyncpg.ConnectionDoesNotExistError):
        return WriteError(
            f"Database connection lost: {e}",
            operation=operation,
            cause=e,
        )

    error_str = str(e).lower()

    if "unique" in error_str or "duplicate" in error_str:
        return DuplicateRecordError(
            f"Duplicate entry: {e}",
            operation=operation,
            cause=e,
        )

    if "timeout" in error_str or "timed out" in error_str:
        return WriteError(
            f"Database operation timed out: {e}",
            operation=operation,
            cause=e,
        )

    return WriteError(
        f"Database operation failed: {e}",
        operation=operation,
        cause=e,
    )


# ============================================
# Health Check
# ============================================

async def check_database_health(dsn: str, timeout: float = 5.0) -> dict[str, Any]:
    """Check that the database accepts connections and queries.

    Returns:
        Dict with health status information
    """
    conn = None
    try:
        conn = await create_connection(dsn, timeout=timeout)
        result = await conn.fetchval("SELECT 1")
        return {"healthy": result == 1}
    except Exception as e:
        return {
            "healthy": False,
            "error": str(e),
        }
    finally:
        await close_connection(conn)


# ============================================
# Exports
# ============================================

__all__ = [
    "apply_schema",
    "check_database_health",
    "close_connection",
    "convert_db_exception",
    "create_connection",
]
