"""Resolve which provider status codes a device uses for each property."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .catalog import CategoryCatalog, CloudDevice, Home, default_category_catalog

if TYPE_CHECKING:
    from .api import TuyaApiClient

_LOGGER = logging.getLogger(__name__)

SWITCH_CODES = ("switch_led", "switch_1", "switch")
BRIGHTNESS_CODES = ("bright_value_v2", "bright_value")
COLOUR_CODES = ("colour_data_v2", "colour_data")
TEMP_VALUE_CODES = ("temp_value_v2", "temp_value")
WORK_MODE_CODES = ("work_mode",)
FAN_SPEED_CODES = ("fan_speed_percent", "speed")
CONTROL_CODES = ("control",)
TARGET_TEMPERATURE_CODES = ("temp_set",)
CURRENT_TEMPERATURE_CODES = ("temp_current", "va_temperature")
MODE_CODES = ("mode",)
POSITION_CODES = ("percent_control", "position")

DEFAULT_SWITCH_CODE = "switch"


def _first_present(preferred: Iterable[str], codes: frozenset[str]) -> str | None:
    for code in preferred:
        if code in codes:
            return code
    return None


@dataclass(frozen=True)
class DeviceCodeMapping:
    """Which provider code carries each property of one device."""

    category: str
    device_type: str
    switch_code: str
    status_codes: frozenset[str] = frozenset()
    brightness_code: str | None = None
    colour_code: str | None = None
    temp_value_code: str | None = None
    work_mode_code: str | None = None
    fan_speed_code: str | None = None
    control_code: str | None = None
    target_temperature_code: str | None = None
    current_temperature_code: str | None = None
    mode_code: str | None = None
    position_code: str | None = None

    @property
    def is_v2_brightness(self) -> bool:
        return self.brightness_code == "bright_value_v2"

    @property
    def is_v2_colour(self) -> bool:
        return self.colour_code == "colour_data_v2"

    @property
    def is_v2_temp_value(self) -> bool:
        return self.temp_value_code == "temp_value_v2"


@dataclass(frozen=True)
class DiscoveredDevice:
    """A device found during discovery together with its code mapping."""

    device: CloudDevice
    mapping: DeviceCodeMapping
    home_id: str | None = None


class DeviceCodeResolver:
    """Build and cache :class:`DeviceCodeMapping` objects per device."""

    def __init__(self, catalog: CategoryCatalog | None = None) -> None:
        self._catalog = catalog or default_category_catalog()
        self._mappings: dict[str, DeviceCodeMapping] = {}

    def resolve(self, category: str, status_codes: Iterable[str]) -> DeviceCodeMapping:
        """Return the mapping for a device of ``category`` reporting ``status_codes``."""

        codes = frozenset(status_codes)
        return DeviceCodeMapping(
            category=category,
            device_type=self._catalog.device_type_for(category),
            switch_code=_first_present(SWITCH_CODES, codes) or DEFAULT_SWITCH_CODE,
            status_codes=codes,
            brightness_code=_first_present(BRIGHTNESS_CODES, codes),
            colour_code=_first_present(COLOUR_CODES, codes),
            temp_value_code=_first_present(TEMP_VALUE_CODES, codes),
            work_mode_code=_first_present(WORK_MODE_CODES, codes),
            fan_speed_code=_first_present(FAN_SPEED_CODES, codes),
            control_code=_first_present(CONTROL_CODES, codes),
            target_temperature_code=_first_present(TARGET_TEMPERATURE_CODES, codes),
            current_temperature_code=_first_present(CURRENT_TEMPERATURE_CODES, codes),
            mode_code=_first_present(MODE_CODES, codes),
            position_code=_first_present(POSITION_CODES, codes),
        )

    def resolve_for_device(
        self, device_id: str, category: str, status_codes: Iterable[str]
    ) -> DeviceCodeMapping:
        """Return the cached mapping, rebuilding it when the code set changed."""

        codes = frozenset(status_codes)
        cached = self._mappings.get(device_id)
        if cached is not None and cached.status_codes == codes and cached.category == category:
            return cached
        mapping = self.resolve(category, codes)
        if cached is not None:
            _LOGGER.debug("Status codes for %s changed; rebuilt code mapping", device_id)
        self._mappings[device_id] = mapping
        return mapping

    def mapping_for(self, device_id: str) -> DeviceCodeMapping | None:
        return self._mappings.get(device_id)

    def mapping_for_device(self, device: CloudDevice) -> DeviceCodeMapping:
        return self.resolve_for_device(device.id, device.category, device.status_codes)

    async def async_discover(self, client: TuyaApiClient) -> list[DiscoveredDevice]:
        """List every home and its devices, and resolve their code mappings."""

        homes: list[Home] = await client.async_get_homes()
        discovered: list[DiscoveredDevice] = []
        seen: set[str] = set()
        for home in homes:
            devices = await client.async_get_home_devices(home.home_id)
            _LOGGER.debug("Home %s reported %d devices", home.home_id, len(devices))
            for device in devices:
                if device.id in seen:
                    continue
                seen.add(device.id)
                discovered.append(
                    DiscoveredDevice(
                        device=device,
                        mapping=self.mapping_for_device(device),
                        home_id=home.home_id,
                    )
                )
        return discovered
