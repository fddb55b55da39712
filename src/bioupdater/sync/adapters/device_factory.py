"""Device source lookup table.

Maps a terminal type tag from configuration to the adapter constructor
that implements IDeviceSource for it. Each backend implements the port
independently; adding a terminal model means registering a constructor.
"""

import logging
from collections.abc import Callable

from ...exceptions import UnsupportedDeviceTypeError
from ..domain.entities import DeviceEndpoint
from ..domain.ports import IDeviceSource
from .zkteco_device import ZKTecoDevice

logger = logging.getLogger(__name__)

DeviceSourceConstructor = Callable[[DeviceEndpoint], IDeviceSource]

# Used when an endpoint carries no type tag
DEFAULT_DEVICE_TYPE = "zkteco"

DEVICE_SOURCE_TYPES: dict[str, DeviceSourceConstructor] = {
    "zkteco": ZKTecoDevice,
    "zklib": ZKTecoDevice,
}


def create_device_source(endpoint: DeviceEndpoint) -> IDeviceSource:
    """Build the adapter for an endpoint from its type tag.

    Raises:
        UnsupportedDeviceTypeError: If no adapter is registered for the tag
    """
    device_type = (endpoint.type or DEFAULT_DEVICE_TYPE).lower()
    constructor = DEVICE_SOURCE_TYPES.get(device_type)
    if constructor is None:
        raise UnsupportedDeviceTypeError(device_type, device_id=endpoint.id)

    logger.debug(f"Creating {device_type} adapter for device {endpoint.id}")
    return constructor(endpoint)


def register_device_type(device_type: str, constructor: DeviceSourceConstructor) -> None:
    DEVICE_SOURCE_TYPES[device_type.lower()] = constructor


def supported_device_types() -> list[str]:
    return sorted(DEVICE_SOURCE_TYPES)


def is_supported_device_type(device_type: str) -> bool:
    return device_type.lower() in DEVICE_SOURCE_TYPES
