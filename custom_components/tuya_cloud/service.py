"""Device-facing service combining discovery, state and commands."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .api import TuyaApiClient
from .catalog import CloudDevice
from .device_codes import DeviceCodeMapping, DeviceCodeResolver, DiscoveredDevice
from .translator import Command, DeviceState, Intent, StateTranslator

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceInfo:
    """Summary of one controllable device."""

    device_id: str
    name: str
    category: str
    device_type: str
    home_id: str | None
    mapping: DeviceCodeMapping


class DeviceStateService:
    """List devices, read their canonical state and send canonical intents."""

    def __init__(
        self,
        client: TuyaApiClient,
        resolver: DeviceCodeResolver | None = None,
        translator: StateTranslator | None = None,
    ) -> None:
        self._client = client
        self._resolver = resolver or DeviceCodeResolver()
        self._translator = translator or StateTranslator(resolver=self._resolver)
        self._devices: dict[str, DeviceInfo] = {}

    @property
    def devices(self) -> dict[str, DeviceInfo]:
        return dict(self._devices)

    async def async_list_devices(self) -> list[DeviceInfo]:
        """Discover every device of the linked account."""

        discovered = await self._resolver.async_discover(self._client)
        self._devices = {
            item.device.id: self._device_info(item) for item in discovered
        }
        _LOGGER.debug("Discovered %d devices", len(self._devices))
        return list(self._devices.values())

    async def async_get_state(self, device_id: str) -> DeviceState:
        """Fetch and translate the current state of ``device_id``."""

        device = await self._client.async_get_device_status(device_id)
        return self._state_for(device)

    async def async_get_states(self, device_ids: list[str] | None = None) -> dict[str, DeviceState]:
        """Fetch the state of several devices with as few calls as the client allows."""

        ids = device_ids if device_ids is not None else list(self._devices)
        devices = await self._client.async_get_device_details(ids)
        return {device.id: self._state_for(device) for device in devices}

    async def async_send_command(self, device_id: str, intent: Intent) -> list[Command]:
        """Translate ``intent`` and send it; returns the commands that were sent."""

        mapping = await self._async_mapping(device_id)
        commands = self._translator.to_commands(mapping, intent)
        _LOGGER.debug("Sending %s to %s", [c.code for c in commands], device_id)
        await self._client.async_send_commands(device_id, commands)
        return commands

    async def _async_mapping(self, device_id: str) -> DeviceCodeMapping:
        mapping = self._resolver.mapping_for(device_id)
        if mapping is None:
            device = await self._client.async_get_device_status(device_id)
            mapping = self._resolver.mapping_for_device(device)
        return mapping

    def _state_for(self, device: CloudDevice) -> DeviceState:
        mapping = self._resolver.mapping_for_device(device)
        return self._translator.to_canonical(device.status, device.online, mapping)

    @staticmethod
    def _device_info(item: DiscoveredDevice) -> DeviceInfo:
        return DeviceInfo(
            device_id=item.device.id,
            name=item.device.name,
            category=item.device.category,
            device_type=item.mapping.device_type,
            home_id=item.home_id,
            mapping=item.mapping,
        )
