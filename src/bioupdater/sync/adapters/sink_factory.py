"""Persistence sink lookup table.

Maps the configured sink type to the adapter that implements
IPersistenceSink for it.
"""

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from ...exceptions import ConfigurationError, UnsupportedSinkTypeError
from ..domain.ports import IPersistenceSink
from .json_sink import JsonFileSink
from .postgres_sink import PostgresTimeRecordSink

if TYPE_CHECKING:
    from ...config import DatabaseConfig

logger = logging.getLogger(__name__)


def _create_postgres_sink(config: "DatabaseConfig") -> IPersistenceSink:
    return PostgresTimeRecordSink(config)


def _create_json_sink(config: "DatabaseConfig") -> IPersistenceSink:
    if not config.json_path:
        raise ConfigurationError(
            "JSON sink requires an output path",
            missing_keys=["SINK_JSON_PATH"],
        )
    return JsonFileSink(config.json_path)


SINK_TYPES: dict[str, Callable[["DatabaseConfig"], IPersistenceSink]] = {
    "postgresql": _create_postgres_sink,
    "postgres": _create_postgres_sink,
    "json": _create_json_sink,
}


def create_sink(config: "DatabaseConfig") -> IPersistenceSink:
    """Build the sink for the configured sink type.

    Raises:
        UnsupportedSinkTypeError: If the type has no registered sink
        ConfigurationError: If the sink is missing required settings
    """
    sink_type = (config.sink_type or "").lower()
    constructor = SINK_TYPES.get(sink_type)
    if constructor is None:
        raise UnsupportedSinkTypeError(sink_type)

    logger.debug(f"Creating {sink_type} persistence sink")
    return constructor(config)


def supported_sink_types() -> list[str]:
    return sorted(SINK_TYPES)
