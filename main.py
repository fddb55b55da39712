#!/usr/bin/env python3
"""Biometric Attendance Sync CLI.

This module provides a command-line interface for pulling attendance punches
from ZKTeco biometric terminals and writing them to PostgreSQL. It supports
both full database sync and a JSON-only export mode.

Architecture:
    - BiometricUpdaterApp wires configuration, devices and the sink together
    - DeviceRegistry owns one adapter per configured terminal
    - SyncAttendanceUseCase runs one pass: retrieve, write, checkpoint

Environment Variables:
    - CONFIG_FILE_PATH: devices.json location (default: ./devices.json)
    - BIOMETRIC_DEVICES / BIOMETRIC_DEVICE_*: devices when no devices.json
    - DATABASE_URL or POSTGRES_HOST/POSTGRES_DB/...: PostgreSQL sink
    - SINK_TYPE: postgresql (default) or json
    - LOG_LEVEL: Logging level (default: INFO)

Example Usage:
    $ python main.py                                  # Sync yesterday
    $ python main.py --date 2024-01-15                # Sync one day
    $ python main.py --from 2024-01-01 --to 2024-01-31
    $ python main.py --devices main_office,warehouse  # Yesterday, two devices
    $ python main.py --test-devices                   # Connectivity check
    $ python main.py --json-only punches.jsonl        # Export without a database
    $ python main.py --validate-config devices.json
    $ python main.py --init-db                        # Create the PostgreSQL tables
"""
import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv

load_dotenv()

# Local imports
from src.bioupdater.app import BiometricUpdaterApp
from src.bioupdater.config import (
    AppConfig,
    DatabaseConfig,
    generate_sample_config,
    validate_devices_file,
)
from src.bioupdater.database import apply_schema, close_connection, create_connection
from src.bioupdater.dates import parse_date
from src.bioupdater.exceptions import BioUpdaterError
from src.bioupdater.sync.domain.entities import SyncResult

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("zk").setLevel(logging.WARNING)


# ============================================
# Config File Commands
# ============================================

def run_validate_config(path: str) -> int:
    """Validate a devices.json file and print the report.

    Returns:
        Process exit code
    """
    report = validate_devices_file(path)

    print(f"[Main] Validating config file: {report.config_path}")
    print("=" * 60)
    print(f"Status: {'VALID' if report.valid else 'INVALID'}")
    print(f"Total devices: {report.total_devices}")
    print(f"Enabled devices: {report.enabled_devices}")
    print(f"Disabled devices: {report.disabled_devices}")

    if report.errors:
        print("\nErrors:")
        for i, error in enumerate(report.errors, 1):
            print(f"  {i}. {error}")

    if report.warnings:
        print("\nWarnings:")
        for i, warning in enumerate(report.warnings, 1):
            print(f"  {i}. {warning}")

    if report.device_summaries:
        print("\nDevice Summary:")
        for i, device in enumerate(report.device_summaries, 1):
            status = "enabled" if device["enabled"] else "disabled"
            print(f"  {i}. {device['id']} ({device['name']}) - {device['ip']} [{status}]")

    return 0 if report.valid else 1


def run_generate_config(path: str, count: int) -> int:
    try:
        config = generate_sample_config(path, count)
    except (OSError, ValueError) as e:
        print(f"[Main] Error generating config file: {e}")
        return 1

    print(f"[Main] Generated {path} with {len(config['devices'])} device(s)")
    for i, device in enumerate(config["devices"], 1):
        print(f"  {i}. {device['id']} ({device['name']}) - {device['ip']}")
    print("\nUpdate the IP addresses and device settings, then point CONFIG_FILE_PATH at it.")
    return 0


# ============================================
# Database Commands
# ============================================

async def run_init_db() -> int:
    """Create the sync tables in the configured PostgreSQL database.

    Returns:
        Process exit code
    """
    try:
        database = DatabaseConfig.from_env(os.environ)
    except BioUpdaterError as e:
        print(f"[Main] Configuration error: {e}")
        return 1

    if database.sink_type not in ("postgresql", "postgres"):
        print(f"[Main] --init-db requires a PostgreSQL sink (SINK_TYPE={database.sink_type})")
        return 1

    conn = None
    try:
        conn = await create_connection(database.dsn, timeout=database.connect_timeout)
        await apply_schema(conn)
    except BioUpdaterError as e:
        print(f"[Main] Schema initialization failed: {e}")
        return 1
    finally:
        await close_connection(conn)

    print("[Main] Database schema is up to date")
    return 0


# ============================================
# Device Commands
# ============================================

async def show_device_tests(app: BiometricUpdaterApp, device_ids: list[str] | None) -> int:
    print("\n[Main] Testing device connections...")
    results = await app.test_device_connections(device_ids)

    print(f"\n{'Device':<20} {'Name':<25} {'Result':<10} {'Detail'}")
    print("-" * 80)
    for r in results:
        detail = r.error or (r.identity.ip if r.identity else "")
        print(f"{r.device_id:<20} {(r.name or '')[:23]:<25} {'OK' if r.success else 'FAILED':<10} {detail}")

    failed = sum(1 for r in results if not r.success)
    print(f"\n{len(results) - failed}/{len(results)} devices reachable")
    return 1 if failed else 0


def show_registered_devices(app: BiometricUpdaterApp) -> int:
    devices = app.list_registered_devices()
    print(f"\n{'ID':<20} {'Name':<25} {'IP':<16} {'Port':<6} {'Type':<8} {'Enabled'}")
    print("-" * 85)
    for d in devices:
        print(
            f"{d.id:<20} {d.display_name[:23]:<25} {d.ip:<16} "
            f"{d.port:<6} {d.type:<8} {'yes' if d.enabled else 'no'}"
        )
    print(f"\n{len(devices)} device(s) registered")
    return 0


async def show_status(app: BiometricUpdaterApp) -> int:
    status = app.get_status()
    config = status["config"]
    print(f"\n[Main] Environment: {status['environment']}")
    print(f"[Main] Config source: {config['source']} ({config['devices_json_path']})")
    print(f"[Main] Sink: {status['database']['sink_type']}")

    health = await app.get_database_health()
    if health is not None:
        state = "healthy" if health["healthy"] else f"unhealthy ({health.get('error')})"
        print(f"[Main] Database: {state}")

    print(f"\n{'Device':<20} {'Status':<12} {'Name':<25} {'IP'}")
    print("-" * 75)
    for s in await app.get_devices_status():
        print(f"{s.device_id:<20} {s.status:<12} {(s.name or '')[:23]:<25} {s.ip or s.error or ''}")
    return 0


# ============================================
# Sync
# ============================================

def print_summary(result: SyncResult) -> None:
    print("\n" + "=" * 60)
    print("SYNC COMPLETE" if result.success else "SYNC COMPLETED WITH ERRORS")
    print("=" * 60)
    print(f"Date range: {result.from_date.isoformat()} to {result.to_date.isoformat()}")
    print(f"Total records processed: {result.total_records}")
    print(f"Successfully inserted: {result.inserted_records}")
    print(f"Errors: {len(result.errors)}")
    if result.duration_seconds is not None:
        print(f"Duration: {result.duration_seconds:.1f}s")

    if result.device_results:
        print("\nBy device:")
        for device_id, device_result in result.device_results.items():
            print(
                f"  {device_id}: {device_result.inserted_records}/"
                f"{device_result.total_records} inserted, "
                f"{len(device_result.errors)} errors"
            )

    if result.errors:
        print("\n=== Errors ===")
        for i, error in enumerate(result.errors, 1):
            device = f"[{error.device_id}] " if error.device_id else ""
            print(f"{i}. {device}{error.error_type}: {error.message}")


async def run_sync(app: BiometricUpdaterApp, args: argparse.Namespace) -> int:
    device_ids = _split_ids(args.devices)

    if args.from_date:
        result = await app.run_range_sync(args.from_date, args.to_date, device_ids)
    elif args.date:
        result = await app.run_range_sync(args.date, args.date, device_ids)
    elif device_ids:
        result = await app.run_device_sync(device_ids)
    else:
        result = await app.run_yesterday_sync()

    print_summary(result)
    return 0 if result.success else 1


async def run(args: argparse.Namespace) -> int:
    """Main orchestration function.

    Args:
        args: Parsed command-line arguments

    Returns:
        Process exit code
    """
    start_time = datetime.now(timezone.utc)
    print(f"[Main] Starting at {start_time.isoformat()}")

    device_only = args.test_devices or args.list_devices or args.status
    database = DatabaseConfig(sink_type="json", json_path=args.json_only) if args.json_only else None

    try:
        config = AppConfig.from_env(
            config_file_path=args.config,
            database=database,
            require_database=not device_only,
        )
    except BioUpdaterError as e:
        print(f"[Main] Configuration error: {e}")
        return 1

    app = BiometricUpdaterApp(config)
    try:
        app.initialize()

        if args.test_devices:
            return await show_device_tests(app, _split_ids(args.devices))
        if args.list_devices:
            return show_registered_devices(app)
        if args.status:
            return await show_status(app)

        return await run_sync(app, args)

    except BioUpdaterError as e:
        print(f"[Main] Sync failed: {e}")
        return 1
    finally:
        await app.cleanup()
        duration = (datetime.now(timezone.utc) - start_time).total_seconds()
        print(f"\n[Main] Completed in {duration:.1f} seconds")


def _split_ids(value: str | None) -> list[str] | None:
    if not value:
        return None
    ids = [part.strip() for part in value.split(",") if part.strip()]
    return ids or None


def _date_arg(value: str):
    try:
        return parse_date(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}', expected YYYY-MM-DD")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sync biometric attendance punches to PostgreSQL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                                   # Sync yesterday for all devices
  python main.py --date 2024-01-15                 # Sync a single day
  python main.py --from 2024-01-01 --to 2024-01-31 # Sync a date range
  python main.py --devices main_office,warehouse   # Sync yesterday for two devices
  python main.py --test-devices                    # Test device connectivity
  python main.py --json-only punches.jsonl         # Write records to a JSON-lines file
  python main.py --generate-config devices.json --count 3
  python main.py --init-db                         # Create the PostgreSQL tables
        """
    )

    # Window selection
    window_group = parser.add_argument_group("Sync Window")
    window_group.add_argument(
        "--date",
        type=_date_arg,
        metavar="YYYY-MM-DD",
        help="Sync a single day (default: yesterday)"
    )
    window_group.add_argument(
        "--from",
        dest="from_date",
        type=_date_arg,
        metavar="YYYY-MM-DD",
        help="First day of a date range (requires --to)"
    )
    window_group.add_argument(
        "--to",
        dest="to_date",
        type=_date_arg,
        metavar="YYYY-MM-DD",
        help="Last day of a date range (requires --from)"
    )

    # Device selection
    device_group = parser.add_argument_group("Devices")
    device_group.add_argument(
        "--devices",
        type=str,
        metavar="IDS",
        help="Comma-separated device IDs to sync or test"
    )
    device_group.add_argument(
        "--test-devices",
        action="store_true",
        help="Test connectivity to devices (no sync)"
    )
    device_group.add_argument(
        "--list-devices",
        action="store_true",
        help="List registered devices (no sync)"
    )
    device_group.add_argument(
        "--status",
        action="store_true",
        help="Show application and device status (no sync)"
    )

    # Configuration
    config_group = parser.add_argument_group("Configuration")
    config_group.add_argument(
        "--config",
        type=str,
        metavar="FILE",
        help="devices.json location (default: CONFIG_FILE_PATH or ./devices.json)"
    )
    config_group.add_argument(
        "--validate-config",
        type=str,
        metavar="FILE",
        help="Validate a devices.json file and exit"
    )
    config_group.add_argument(
        "--generate-config",
        type=str,
        metavar="FILE",
        help="Write a sample devices.json to FILE and exit"
    )
    config_group.add_argument(
        "--count",
        type=int,
        default=1,
        metavar="N",
        help="Number of sample devices for --generate-config (default: 1)"
    )
    config_group.add_argument(
        "--init-db",
        action="store_true",
        help="Create the sync tables in PostgreSQL and exit"
    )

    # Output options
    output_group = parser.add_argument_group("Output Options")
    output_group.add_argument(
        "--json-only",
        type=str,
        metavar="FILE",
        help="Append records to a JSON-lines FILE instead of PostgreSQL"
    )

    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    if (args.from_date is None) != (args.to_date is None):
        parser.error("--from and --to must be used together")
    if args.from_date and args.date:
        parser.error("--date cannot be combined with --from/--to")
    if args.from_date and args.from_date > args.to_date:
        parser.error("From date cannot be later than to date")

    configure_logging(os.getenv("LOG_LEVEL", "INFO"))

    if args.validate_config:
        sys.exit(run_validate_config(args.validate_config))
    if args.generate_config:
        sys.exit(run_generate_config(args.generate_config, args.count))
    if args.init_db:
        sys.exit(asyncio.run(run_init_db()))

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
