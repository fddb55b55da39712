#!/usr/bin/env python3
"""Automated Scheduler for the Biometric Attendance Sync.

This module provides a long-running scheduler that pulls attendance
punches from every configured terminal at a fixed interval. Designed to
run as the main process in a Docker container.

Architecture:
    - Simple asyncio loop with sleep (no external dependencies)
    - Graceful shutdown on SIGTERM/SIGINT
    - Configurable via environment variables
    - Health check endpoint via optional HTTP server
    - Database connectivity checked at startup and reported by the health endpoint
    - Each run is an independent pass; a failed pass is reported and the
      next interval runs normally

Environment Variables:
    SYNC_INTERVAL_MINUTES: Minutes between sync runs (default: 60)
    SYNC_LOOKBACK_DAYS: Days before today to include in each pass (default: 1,
        i.e. yesterday only)
    SYNC_ON_STARTUP: Run sync immediately on startup (default: true)
    HEALTH_CHECK_PORT: Port for health check endpoint (default: 8080, 0 to disable)

    Devices and database: see main.py (CONFIG_FILE_PATH, DATABASE_URL, ...)

Example:
    # Run every 30 minutes, re-reading the last three days each time
    SYNC_INTERVAL_MINUTES=30 SYNC_LOOKBACK_DAYS=3 python scheduler.py

Docker Usage:
    docker run -e SYNC_INTERVAL_MINUTES=60 -e DATABASE_URL=... bioupdater
"""
import asyncio
import json
import logging
import os
import signal
import sys
from datetime import UTC, date, datetime, timedelta
from typing import Any, Optional

from dotenv import load_dotenv

load_dotenv()

# Local imports
from src.bioupdater.app import BiometricUpdaterApp
from src.bioupdater.config import AppConfig
from src.bioupdater.exceptions import BioUpdaterError

# Initialize logger
logger = logging.getLogger(__name__)

# ============================================
# Configuration
# ============================================

class SchedulerConfig:
    """Configuration loaded from environment variables."""

    def __init__(self):
        self.interval_minutes = int(os.getenv("SYNC_INTERVAL_MINUTES", "60"))
        self.lookback_days = max(1, int(os.getenv("SYNC_LOOKBACK_DAYS", "1")))
        self.sync_on_startup = os.getenv("SYNC_ON_STARTUP", "true").lower() == "true"
        self.health_check_port = int(os.getenv("HEALTH_CHECK_PORT", "8080"))

    def __repr__(self):
        return (
            f"SchedulerConfig("
            f"interval={self.interval_minutes}m, "
            f"lookback={self.lookback_days}d, "
            f"startup={self.sync_on_startup}, "
            f"health_port={self.health_check_port})"
        )


def sync_window(lookback_days: int, today: Optional[date] = None) -> tuple[date, date]:
    """Inclusive window ending yesterday and spanning lookback_days days."""
    today = today or date.today()
    to_date = today - timedelta(days=1)
    from_date = today - timedelta(days=max(1, lookback_days))
    return from_date, to_date


# ============================================
# Sync Logic
# ============================================

async def run_sync(config: SchedulerConfig, app: BiometricUpdaterApp) -> dict[str, Any]:
    """Run a single sync pass.

    Args:
        config: Scheduler configuration
        app: Initialized application

    Returns:
        Dict with sync results
    """
    start_time = datetime.now(UTC)
    from_date, to_date = sync_window(config.lookback_days)
    results: dict[str, Any] = {
        "started_at": start_time.isoformat(),
        "from_date": from_date.isoformat(),
        "to_date": to_date.isoformat(),
        "success": False,
        "error": None,
    }

    try:
        result = await app.run_range_sync(from_date, to_date)
        results["total_records"] = result.total_records
        results["inserted_records"] = result.inserted_records
        results["errors"] = len(result.errors)
        results["success"] = result.success

        if not result.success:
            logger.warning(f"Sync pass completed with {len(result.errors)} errors")
            for entry in result.errors:
                logger.warning(f"  [{entry.device_id}] {entry.error_type}: {entry.message}")

    except Exception as e:
        error_type = type(e).__name__
        logger.error(f"Sync pass failed: {error_type}: {e}", exc_info=True)
        print(f"[Scheduler] ERROR during sync: {error_type}: {e}")
        results["error"] = str(e)
        results["error_type"] = error_type

    end_time = datetime.now(UTC)
    results["completed_at"] = end_time.isoformat()
    results["duration_seconds"] = (end_time - start_time).total_seconds()

    return results


# ============================================
# Health Check Server
# ============================================

class HealthState:
    """Shared state for health checks."""

    def __init__(self):
        self.last_sync_at: Optional[datetime] = None
        self.last_sync_success: bool = False
        self.last_result: Optional[dict[str, Any]] = None
        self.total_syncs: int = 0
        self.failed_syncs: int = 0
        self.started_at: datetime = datetime.now(UTC)
        self.database: Optional[dict[str, Any]] = None

    def record(self, results: dict[str, Any]) -> None:
        self.total_syncs += 1
        self.last_sync_at = datetime.now(UTC)
        self.last_sync_success = results["success"]
        self.last_result = results
        if not results["success"]:
            self.failed_syncs += 1

    @property
    def healthy(self) -> bool:
        return self.last_sync_success or self.total_syncs == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "healthy" if self.healthy else "unhealthy",
            "uptime_seconds": round((datetime.now(UTC) - self.started_at).total_seconds()),
            "total_syncs": self.total_syncs,
            "failed_syncs": self.failed_syncs,
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else "never",
            "database": self.database,
        }


async def check_database(app: BiometricUpdaterApp, state: HealthState) -> None:
    """Record database connectivity in the health state."""
    state.database = await app.get_database_health()
    if state.database is None:
        return
    if state.database["healthy"]:
        print("[Scheduler] Database connection OK")
    else:
        print(f"[Scheduler] WARNING: database check failed: {state.database.get('error')}")


async def health_check_handler(reader, writer, state: HealthState):
    """Handle HTTP health check requests."""
    # Read request (we don't care about the content)
    await reader.read(1024)

    body = json.dumps(state.to_dict())
    http_status = 200 if state.healthy else 503
    response = (
        f"HTTP/1.1 {http_status} {'OK' if http_status == 200 else 'Service Unavailable'}\r\n"
        f"Content-Type: application/json\r\n"
        f"Content-Length: {len(body)}\r\n"
        f"Connection: close\r\n"
        f"\r\n"
        f"{body}"
    )

    writer.write(response.encode())
    await writer.drain()
    writer.close()
    await writer.wait_closed()


async def start_health_server(port: int, state: HealthState):
    """Start the health check HTTP server."""
    if port <= 0:
        return None

    async def handler(reader, writer):
        await health_check_handler(reader, writer, state)

    server = await asyncio.start_server(handler, "0.0.0.0", port)
    print(f"[Scheduler] Health check server listening on port {port}")
    return server


# ============================================
# Main Scheduler Loop
# ============================================

async def scheduler_loop(
    config: SchedulerConfig,
    app: BiometricUpdaterApp,
    health_state: HealthState,
    shutdown_event: asyncio.Event,
):
    """Main scheduling loop.

    Args:
        config: Scheduler configuration
        app: Initialized application
        health_state: Shared health state
        shutdown_event: Event to signal shutdown
    """
    interval_seconds = config.interval_minutes * 60

    # Initial sync on startup
    if config.sync_on_startup:
        print("[Scheduler] Running initial sync on startup...")
        results = await run_sync(config, app)
        health_state.record(results)
        print(f"[Scheduler] Initial sync complete: {results}")

    next_run = datetime.now(UTC) + timedelta(seconds=interval_seconds)
    print(f"[Scheduler] Next sync at {next_run.isoformat()} (in {config.interval_minutes} minutes)")

    while not shutdown_event.is_set():
        try:
            # Wait for either the interval or shutdown
            await asyncio.wait_for(
                shutdown_event.wait(),
                timeout=interval_seconds,
            )
            break
        except asyncio.TimeoutError:
            # Timeout means it's time to sync
            pass

        print("\n[Scheduler] ========== SCHEDULED SYNC ==========")
        print(f"[Scheduler] Time: {datetime.now(UTC).isoformat()}")

        results = await run_sync(config, app)
        health_state.record(results)

        print(
            f"[Scheduler] Sync complete: success={results['success']}, "
            f"inserted={results.get('inserted_records', 0)}, "
            f"duration={results['duration_seconds']:.1f}s"
        )

        next_run = datetime.now(UTC) + timedelta(seconds=interval_seconds)
        print(f"[Scheduler] Next sync at {next_run.isoformat()} (in {config.interval_minutes} minutes)")

    print("[Scheduler] Shutdown requested, exiting loop")


# ============================================
# Main Entry Point
# ============================================

async def main():
    """Main entry point for the scheduler."""
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("zk").setLevel(logging.WARNING)

    print("=" * 60)
    print("Biometric Attendance Sync Scheduler")
    print("=" * 60)

    config = SchedulerConfig()
    print(f"[Scheduler] Config: {config}")

    try:
        app_config = AppConfig.from_env()
        app = BiometricUpdaterApp(app_config)
        app.initialize()
    except BioUpdaterError as e:
        print(f"[Scheduler] ERROR: {e}")
        sys.exit(1)

    print(f"[Scheduler] {len(app_config.enabled_devices)} enabled device(s) from {app_config.config_source}")

    health_state = HealthState()
    await check_database(app, health_state)
    shutdown_event = asyncio.Event()

    def handle_shutdown(signum, frame):
        print(f"\n[Scheduler] Received signal {signum}, initiating shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    health_server = await start_health_server(config.health_check_port, health_state)

    try:
        await scheduler_loop(
            config=config,
            app=app,
            health_state=health_state,
            shutdown_event=shutdown_event,
        )
    finally:
        print("[Scheduler] Cleaning up...")

        if health_server:
            health_server.close()
            await health_server.wait_closed()

        await app.cleanup()

        print("[Scheduler] Shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
