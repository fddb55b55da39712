"""Configuration for the Biometric Attendance Sync.

Configuration is built once at startup into immutable values and passed
explicitly to the app, the registry and the orchestrator.

Device configuration sources, in priority order:
    1. devices.json at CONFIG_FILE_PATH (default: ./devices.json)
    2. BIOMETRIC_DEVICES: JSON array (or a single object)
    3. BIOMETRIC_DEVICE_<n>_IP, BIOMETRIC_DEVICE_<n>_ID, ... for n = 1, 2, ...
    4. BIOMETRIC_DEVICE_IP, BIOMETRIC_DEVICE_ID, ... (single device)

Persistence settings:
    SINK_TYPE: postgresql (default) or json
    DATABASE_URL, or POSTGRES_HOST / POSTGRES_PORT / POSTGRES_DB /
    POSTGRES_USER / POSTGRES_PASSWORD
    SINK_JSON_PATH: output file for the json sink

Application settings:
    LOG_LEVEL (default: INFO), APP_ENV (default: development)
"""

import ipaddress
import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .exceptions import ConfigurationError
from .sync.domain.entities import DeviceEndpoint

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "devices.json"

KNOWN_DEVICE_TYPES = ("zkteco", "zklib", "hikvision", "suprema")
KNOWN_PROTOCOLS = ("udp", "tcp")

# Suffixes of BIOMETRIC_DEVICE_[<n>_]<SUFFIX> variables
_ENV_DEVICE_FIELDS = {
    "ID": "id",
    "IP": "ip",
    "NAME": "name",
    "MODEL": "model",
    "PORT": "port",
    "PHARSER": "parser",
    "PROTOCOL": "protocol",
    "INPORT": "inport",
    "TIMEOUT": "timeout",
    "TYPE": "type",
}


# ============================================
# devices.json Models
# ============================================

class DeviceConfigModel(BaseModel):
    """One entry of the devices.json `devices` array.

    Missing, null, zero or empty values fall back to defaults when the
    entry is converted to a DeviceEndpoint.
    """

    model_config = ConfigDict(extra="ignore", protected_namespaces=())

    id: str = Field(..., min_length=1)
    ip: str = Field(..., min_length=1)
    name: Optional[str] = None
    model: Optional[str] = None
    port: Optional[int] = None
    parser: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("parser", "pharser"),
    )
    protocol: Optional[str] = None
    inport: Optional[int] = None
    timeout: Optional[int] = None
    type: Optional[str] = None
    enabled: Optional[bool] = None

    def to_endpoint(self) -> DeviceEndpoint:
        return DeviceEndpoint(
            id=self.id,
            ip=self.ip,
            name=self.name or self.id,
            port=self.port or 4370,
            model=self.model or "Unknown",
            type=(self.type or "zkteco").lower(),
            parser=self.parser or "v6.60",
            protocol=(self.protocol or "udp").lower(),
            inport=self.inport or 5200,
            timeout_ms=self.timeout or 5000,
            enabled=self.enabled is not False,
        )


class DevicesFileModel(BaseModel):
    """Top-level devices.json document."""

    model_config = ConfigDict(extra="ignore")

    devices: list[DeviceConfigModel]


# ============================================
# Configuration Values
# ============================================

@dataclass(frozen=True)
class DatabaseConfig:
    """Persistence sink settings."""

    sink_type: str = "postgresql"
    url: Optional[str] = None
    host: Optional[str] = None
    port: int = 5432
    database: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    connect_timeout: float = 30.0
    json_path: Optional[str] = None

    @property
    def dsn(self) -> str:
        """PostgreSQL connection string, built from parts if no URL is set."""
        if self.url:
            return self.url

        auth = ""
        if self.user:
            auth = quote(self.user, safe="")
            if self.password:
                auth += ":" + quote(self.password, safe="")
            auth += "@"
        return f"postgresql://{auth}{self.host}:{self.port}/{self.database}"

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str],
        validate: bool = True,
    ) -> "DatabaseConfig":
        """Build database settings from environment variables.

        Args:
            environ: Environment mapping
            validate: Check that the selected sink has its required settings

        Raises:
            ConfigurationError: If the selected sink is missing settings
        """
        config = cls(
            sink_type=environ.get("SINK_TYPE", "postgresql").lower(),
            url=environ.get("DATABASE_URL") or None,
            host=environ.get("POSTGRES_HOST") or None,
            port=_parse_int(environ.get("POSTGRES_PORT"), 5432),
            database=environ.get("POSTGRES_DB") or None,
            user=environ.get("POSTGRES_USER") or None,
            password=environ.get("POSTGRES_PASSWORD") or None,
            connect_timeout=float(environ.get("DATABASE_CONNECT_TIMEOUT", "30")),
            json_path=environ.get("SINK_JSON_PATH") or None,
        )
        if validate:
            config.validate()
        return config

    def validate(self) -> None:
        if self.sink_type in ("postgresql", "postgres"):
            if self.url:
                return
            missing = [
                key for key, value in (
                    ("POSTGRES_HOST", self.host),
                    ("POSTGRES_DB", self.database),
                )
                if not value
            ]
            if missing:
                raise ConfigurationError(
                    "Missing required database configuration "
                    "(set DATABASE_URL or POSTGRES_HOST and POSTGRES_DB)",
                    missing_keys=["DATABASE_URL", *missing],
                )
        elif self.sink_type == "json" and not self.json_path:
            raise ConfigurationError(
                "JSON sink requires an output path",
                missing_keys=["SINK_JSON_PATH"],
            )

    def to_dict(self) -> dict[str, Any]:
        """Settings safe to print (no credentials)."""
        return {
            "sink_type": self.sink_type,
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "url_configured": bool(self.url),
            "json_path": self.json_path,
        }


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""

    devices: tuple[DeviceEndpoint, ...]
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    log_level: str = "INFO"
    environment: str = "development"
    config_source: str = "environment"
    config_file_path: Optional[str] = None

    @classmethod
    def from_env(
        cls,
        config_file_path: Optional[str | Path] = None,
        environ: Optional[Mapping[str, str]] = None,
        database: Optional[DatabaseConfig] = None,
        require_database: bool = True,
    ) -> "AppConfig":
        """Load configuration from devices.json and environment variables.

        Args:
            config_file_path: devices.json location (default: CONFIG_FILE_PATH
                or ./devices.json)
            environ: Environment mapping (default: os.environ)
            database: Pre-built database settings, skipping the env lookup
            require_database: Fail on incomplete database settings (device-only
                commands pass False)

        Raises:
            ConfigurationError: If no devices are configured, the devices file
                is invalid, or the database settings are incomplete
        """
        environ = os.environ if environ is None else environ
        path = Path(
            config_file_path
            or environ.get("CONFIG_FILE_PATH")
            or Path.cwd() / DEFAULT_CONFIG_FILE
        )

        if path.exists():
            logger.info(f"Loading device configuration from: {path}")
            devices = load_devices_file(path)
            source = "devices.json"
        else:
            logger.info(f"{path.name} not found, loading device configuration from environment")
            devices = load_devices_from_env(environ)
            source = "environment"

        if not devices:
            raise ConfigurationError(
                f"No biometric device configuration found. "
                f"Create {path} or set BIOMETRIC_DEVICES / BIOMETRIC_DEVICE_IP.",
                missing_keys=["BIOMETRIC_DEVICES", "BIOMETRIC_DEVICE_IP"],
            )

        return cls(
            devices=tuple(devices),
            database=database or DatabaseConfig.from_env(environ, validate=require_database),
            log_level=environ.get("LOG_LEVEL", "INFO").upper(),
            environment=environ.get("APP_ENV", "development"),
            config_source=source,
            config_file_path=str(path),
        )

    @property
    def enabled_devices(self) -> tuple[DeviceEndpoint, ...]:
        return tuple(d for d in self.devices if d.enabled)

    def get_device(self, device_id: str) -> Optional[DeviceEndpoint]:
        return next((d for d in self.devices if d.id == device_id), None)

    def get_config_info(self) -> dict[str, Any]:
        return {
            "devices_json_path": self.config_file_path,
            "source": self.config_source,
            "device_count": len(self.devices),
            "enabled_device_count": len(self.enabled_devices),
        }


# ============================================
# Device Loading
# ============================================

def load_devices_file(path: str | Path) -> list[DeviceEndpoint]:
    """Parse a devices.json file into endpoints, disabled ones included.

    Raises:
        ConfigurationError: If the file cannot be read or is invalid
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read devices file {path}: {e}", cause=e)

    try:
        document = DevicesFileModel.model_validate_json(content)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid devices file {path}: {_summarize_validation_error(e)}",
            cause=e,
        )

    devices = [entry.to_endpoint() for entry in document.devices]
    _check_unique_ids(devices, str(path))
    enabled = sum(1 for d in devices if d.enabled)
    logger.info(f"Loaded {len(devices)} devices ({enabled} enabled) from {path.name}")
    return devices


def load_devices_from_env(environ: Mapping[str, str]) -> list[DeviceEndpoint]:
    """Read device configuration from environment variables.

    Raises:
        ConfigurationError: If BIOMETRIC_DEVICES is not valid JSON, or two
            devices share an id
    """
    raw = environ.get("BIOMETRIC_DEVICES")
    if raw:
        try:
            data = json.loads(raw)
            entries = data if isinstance(data, list) else [data]
            devices = [DeviceConfigModel.model_validate(e).to_endpoint() for e in entries]
        except (ValueError, ValidationError) as e:
            raise ConfigurationError(f"Invalid BIOMETRIC_DEVICES value: {e}", cause=e)
        _check_unique_ids(devices, "BIOMETRIC_DEVICES")
        return devices

    devices = []
    index = 1
    while environ.get(f"BIOMETRIC_DEVICE_{index}_IP"):
        values = _read_device_env(environ, f"BIOMETRIC_DEVICE_{index}_")
        values.setdefault("id", f"device_{index}")
        values.setdefault("name", f"Device {index}")
        devices.append(_endpoint_from_env(values))
        index += 1
    _check_unique_ids(devices, "BIOMETRIC_DEVICE_<n>_*")

    if not devices and environ.get("BIOMETRIC_DEVICE_IP"):
        values = _read_device_env(environ, "BIOMETRIC_DEVICE_")
        values.setdefault("id", "device_1")
        values.setdefault("name", "Default Device")
        devices.append(_endpoint_from_env(values))

    return devices


def _check_unique_ids(devices: list[DeviceEndpoint], source: str) -> None:
    seen: set[str] = set()
    duplicates = []
    for device in devices:
        if device.id in seen and device.id not in duplicates:
            duplicates.append(device.id)
        seen.add(device.id)
    if duplicates:
        raise ConfigurationError(
            f"Duplicate device IDs in {source}: {', '.join(duplicates)}",
            details={"duplicate_ids": duplicates},
        )


def _read_device_env(environ: Mapping[str, str], prefix: str) -> dict[str, str]:
    return {
        key: environ[prefix + suffix]
        for suffix, key in _ENV_DEVICE_FIELDS.items()
        if environ.get(prefix + suffix)
    }


def _endpoint_from_env(values: dict[str, str]) -> DeviceEndpoint:
    return DeviceEndpoint(
        id=values["id"],
        ip=values["ip"],
        name=values["name"],
        port=_parse_int(values.get("port"), 4370),
        model=values.get("model", "Unknown"),
        type=values.get("type", "zkteco").lower(),
        parser=values.get("parser", "v6.60"),
        protocol=values.get("protocol", "udp").lower(),
        inport=_parse_int(values.get("inport"), 5200),
        timeout_ms=_parse_int(values.get("timeout"), 5000),
    )


def _parse_int(value: Optional[str], default: int) -> int:
    """Parse a positive integer, falling back to default when unset or invalid."""
    try:
        parsed = int(value) if value is not None else 0
    except ValueError:
        return default
    return parsed or default


def _summarize_validation_error(e: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
        for err in e.errors()
    )


# ============================================
# devices.json Validation
# ============================================

@dataclass
class ConfigValidationReport:
    """Outcome of validating a devices.json file."""

    config_path: str
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    total_devices: int = 0
    enabled_devices: int = 0
    disabled_devices: int = 0
    device_summaries: list[dict[str, Any]] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "config_path": self.config_path,
            "valid": self.valid,
            "errors": self.errors,
            "warnings": self.warnings,
            "devices": {
                "total": self.total_devices,
                "enabled": self.enabled_devices,
                "disabled": self.disabled_devices,
            },
        }


def validate_devices_file(path: str | Path) -> ConfigValidationReport:
    """Check a devices.json file and report every problem found.

    Errors make the file unusable; warnings flag values that are probably
    wrong but do not prevent loading.
    """
    path = Path(path)
    report = ConfigValidationReport(config_path=str(path))

    if not path.exists():
        report.errors.append(f"Config file not found: {path}")
        return report

    try:
        config = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        report.errors.append(f"Invalid JSON format: {e}")
        return report

    if not isinstance(config, dict):
        report.errors.append("Config must be a valid JSON object")
        return report
    if "devices" not in config:
        report.errors.append('Config must contain a "devices" array')
        return report
    if not isinstance(config["devices"], list):
        report.errors.append('Field "devices" must be an array')
        return report

    devices = config["devices"]
    if not devices:
        report.warnings.append("No devices defined in configuration")

    seen: set[str] = set()
    duplicates: list[str] = []
    for device in devices:
        device_id = device.get("id") if isinstance(device, dict) else None
        if device_id:
            if device_id in seen and device_id not in duplicates:
                duplicates.append(device_id)
            seen.add(device_id)
    for device_id in duplicates:
        report.errors.append(f'Duplicate device ID found: "{device_id}"')

    for index, device in enumerate(devices, start=1):
        report.total_devices += 1
        if not isinstance(device, dict):
            report.errors.append(f"Device {index}: Entry must be a JSON object")
            continue

        if device.get("enabled") is not False:
            report.enabled_devices += 1
        else:
            report.disabled_devices += 1

        _validate_device_entry(device, index, report)
        report.device_summaries.append({
            "id": device.get("id") or "NO_ID",
            "name": device.get("name") or "No Name",
            "ip": device.get("ip") or "No IP",
            "enabled": device.get("enabled") is not False,
        })

    return report


def _validate_device_entry(device: dict, index: int, report: ConfigValidationReport) -> None:
    device_id = device.get("id")
    label = f"Device {index} ({device_id})"

    if not device_id:
        report.errors.append(f'Device {index}: Missing required field "id"')
    elif not isinstance(device_id, str):
        report.errors.append(f'Device {index}: Field "id" must be a string')

    ip = device.get("ip")
    if not ip:
        report.errors.append(f'Device {index}: Missing required field "ip"')
    elif not _is_ipv4(ip):
        report.warnings.append(f"{label}: IP address format may be invalid")

    port = device.get("port")
    if port and (not _is_int(port) or not 1 <= port <= 65535):
        report.errors.append(f"{label}: Port must be an integer between 1 and 65535")

    timeout = device.get("timeout")
    if timeout and (not _is_int(timeout) or timeout < 1000):
        report.warnings.append(f"{label}: Timeout should be at least 1000ms")

    device_type = device.get("type")
    if device_type and str(device_type).lower() not in KNOWN_DEVICE_TYPES:
        report.warnings.append(f'{label}: Unknown device type "{device_type}"')

    protocol = device.get("protocol")
    if protocol and str(protocol).lower() not in KNOWN_PROTOCOLS:
        report.warnings.append(f'{label}: Unknown protocol "{protocol}"')


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_ipv4(value: Any) -> bool:
    try:
        ipaddress.IPv4Address(str(value))
    except ValueError:
        return False
    return True


# ============================================
# Sample Generation
# ============================================

_SAMPLE_DEVICES = [
    ("main_office", "Main Office Device", "ZK-U160"),
    ("branch_office", "Branch Office Device", "ZK-F19"),
    ("warehouse", "Warehouse Device", "ZK-MA300"),
    ("reception", "Reception Device", "ZK-F22"),
]


def build_sample_config(count: int = 1) -> dict[str, Any]:
    """Build a sample devices.json document with `count` devices."""
    if count < 1:
        raise ValueError("count must be at least 1")

    devices = []
    for i in range(count):
        if i < len(_SAMPLE_DEVICES):
            device_id, name, model = _SAMPLE_DEVICES[i]
        else:
            device_id, name, model = f"device_{i + 1}", f"Device {i + 1}", "Unknown"
        devices.append({
            "id": device_id,
            "name": name,
            "ip": f"192.168.1.{100 + i}",
            "port": 4370,
            "model": model,
            "type": "zkteco",
            "parser": "v6.60",
            "protocol": "udp",
            "inport": 5200,
            "timeout": 5000,
            "enabled": True,
        })
    return {"devices": devices}


def generate_sample_config(path: str | Path, count: int = 1) -> dict[str, Any]:
    """Write a sample devices.json and return its contents."""
    config = build_sample_config(count)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config, indent=2) + "\n", encoding="utf-8")
    logger.info(f"Generated sample configuration with {count} devices at {path}")
    return config


__all__ = [
    "AppConfig",
    "ConfigValidationReport",
    "DatabaseConfig",
    "DeviceConfigModel",
    "DevicesFileModel",
    "build_sample_config",
    "generate_sample_config",
    "load_devices_file",
    "load_devices_from_env",
    "validate_devices_file",
]
