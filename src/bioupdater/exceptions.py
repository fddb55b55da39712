#!/usr/bin/env python3
"""Exception Hierarchy for the Biometric Attendance Sync.

This module provides a structured exception hierarchy for handling errors
across device retrieval, persistence and configuration.

Design Principles:
    - All exceptions inherit from BioUpdaterError base class
    - Exceptions preserve context (original error, timestamps, details)
    - Exceptions are categorized by recoverability
    - Scope is part of the type: per-record, per-device, or pass-level

Exception Hierarchy:
    BioUpdaterError (base)
    ├── ConfigurationError (unrecoverable - fix config)
    ├── DeviceError
    │   ├── UnknownDeviceError (pass-level, raised before any device is contacted)
    │   ├── UnsupportedDeviceTypeError
    │   ├── DeviceConnectionError (per-device - isolated)
    │   └── RetrievalError (per-device - isolated)
    └── DatabaseError
        ├── SinkConnectionError (pass-level - full cleanup, re-raised)
        ├── UnsupportedSinkTypeError
        └── WriteError (per-record - isolated)
            └── DuplicateRecordError
"""
from datetime import datetime, timezone
from typing import Any, Optional

# ============================================
# Base Exception
# ============================================

class BioUpdaterError(Exception):
    """Base exception for all sync errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "DEVICE_CONNECTION_ERROR")
        details: Additional context as a dictionary
        timestamp: When the error occurred
        cause: The original exception that caused this error
        recoverable: Whether a later pass might succeed
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__.upper()
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        self.cause = cause
        self.recoverable = recoverable

        if cause:
            self.__cause__ = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.code:
            parts.insert(0, f"[{self.code}]")
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"details={self.details!r}, "
            f"recoverable={self.recoverable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================
# Configuration Errors (Unrecoverable)
# ============================================

class ConfigurationError(BioUpdaterError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list[str]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details=details,
            recoverable=False,
            **kwargs,
        )


# ============================================
# Device Errors
# ============================================

class DeviceError(BioUpdaterError):
    """Base class for biometric terminal errors.

    Attributes:
        device_id: Configured id of the terminal involved, if known
    """

    def __init__(self, message: str, device_id: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if device_id:
            details["device_id"] = device_id
        super().__init__(message, details=details, **kwargs)
        self.device_id = device_id


class UnknownDeviceError(DeviceError):
    """Raised when a device id has no configuration entry."""

    def __init__(self, device_id: str, **kwargs):
        super().__init__(
            f"Device configuration not found for ID: {device_id}",
            device_id=device_id,
            code="UNKNOWN_DEVICE",
            recoverable=False,
            **kwargs,
        )


class UnsupportedDeviceTypeError(DeviceError):
    """Raised when no adapter is registered for a device type tag."""

    def __init__(self, device_type: str, **kwargs):
        details = kwargs.pop("details", {})
        details["device_type"] = device_type
        super().__init__(
            f"Unsupported biometric device type: {device_type}",
            code="UNSUPPORTED_DEVICE_TYPE",
            details=details,
            recoverable=False,
            **kwargs,
        )
        self.device_type = device_type


class DeviceConnectionError(DeviceError):
    """Raised when a terminal is unreachable or the connect timeout elapses."""

    def __init__(
        self,
        message: str = "Failed to connect to biometric device",
        host: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if host:
            details["host"] = host
        if timeout_seconds:
            details["timeout_seconds"] = timeout_seconds
        kwargs.setdefault("recoverable", True)
        super().__init__(
            message,
            code="DEVICE_CONNECTION_ERROR",
            details=details,
            **kwargs,
        )


class RetrievalError(DeviceError):
    """Raised when the attendance listing cannot be read from a terminal."""

    def __init__(self, message: str = "Failed to retrieve attendance data", **kwargs):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, code="RETRIEVAL_ERROR", **kwargs)


# ============================================
# Database Errors
# ============================================

class DatabaseError(BioUpdaterError):
    """Base class for persistence sink errors."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


class SinkConnectionError(DatabaseError):
    """Raised when the persistence sink cannot be opened."""

    def __init__(self, message: str = "Failed to connect to persistence sink", **kwargs):
        super().__init__(message, code="SINK_CONNECTION_ERROR", **kwargs)


class UnsupportedSinkTypeError(DatabaseError):
    """Raised when no sink is registered for a database type tag."""

    def __init__(self, sink_type: str, **kwargs):
        details = kwargs.pop("details", {})
        details["sink_type"] = sink_type
        super().__init__(
            f"Unsupported database type: {sink_type}",
            code="UNSUPPORTED_SINK_TYPE",
            details=details,
            recoverable=False,
            **kwargs,
        )
        self.sink_type = sink_type


class WriteError(DatabaseError):
    """Raised when a single record write or checkpoint update fails."""

    def __init__(
        self,
        message: str = "Database write failed",
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        kwargs.setdefault("code", "WRITE_ERROR")
        super().__init__(message, details=details, **kwargs)


class DuplicateRecordError(WriteError):
    """Raised when the sink rejects a record that already exists."""

    def __init__(self, message: str = "Duplicate time record", **kwargs):
        super().__init__(
            message,
            code="DUPLICATE_RECORD",
            recoverable=False,
            **kwargs,
        )


# ============================================
# Exports
# ============================================

__all__ = [
    # Base
    "BioUpdaterError",
    # Configuration
    "ConfigurationError",
    # Devices
    "DeviceError",
    "UnknownDeviceError",
    "UnsupportedDeviceTypeError",
    "DeviceConnectionError",
    "RetrievalError",
    # Database
    "DatabaseError",
    "SinkConnectionError",
    "UnsupportedSinkTypeError",
    "WriteError",
    "DuplicateRecordError",
]
