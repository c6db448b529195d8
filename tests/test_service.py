"""Tests for the device-facing state service."""

from __future__ import annotations

import pytest

from custom_components.tuya_cloud.catalog import CloudDevice, Home
from custom_components.tuya_cloud.device_codes import DeviceCodeResolver
from custom_components.tuya_cloud.errors import UnsupportedOperationError
from custom_components.tuya_cloud.service import DeviceStateService
from custom_components.tuya_cloud.translator import (
    BrightnessIntent,
    Command,
    PowerIntent,
    StateTranslator,
    TranslatorConfig,
)


def _device(device_id: str, category: str, online: bool = True, **status) -> CloudDevice:
    return CloudDevice.model_validate(
        {
            "id": device_id,
            "name": device_id.title(),
            "category": category,
            "online": online,
            "status": [{"code": code, "value": value} for code, value in status.items()],
        }
    )


class FakeCloud:
    """In-memory stand-in for a request client."""

    def __init__(self, devices: list[CloudDevice]) -> None:
        self.devices = {device.id: device for device in devices}
        self.sent: list[tuple[str, list[Command]]] = []
        self.detail_calls: list[list[str]] = []

    async def async_get_homes(self):
        return [Home(home_id="home", name="Home")]

    async def async_get_home_devices(self, home_id):
        return list(self.devices.values())

    async def async_get_device_details(self, device_ids):
        self.detail_calls.append(list(device_ids))
        return [self.devices[device_id] for device_id in device_ids if device_id in self.devices]

    async def async_get_device_status(self, device_id):
        return self.devices[device_id]

    async def async_send_commands(self, device_id, commands):
        self.sent.append((device_id, list(commands)))
        return True


@pytest.mark.asyncio
async def test_v1_light_end_to_end() -> None:
    cloud = FakeCloud([_device("lamp", "dj", switch_led=True, bright_value=128)])
    service = DeviceStateService(cloud)

    devices = await service.async_list_devices()
    state = await service.async_get_state("lamp")
    commands = await service.async_send_command("lamp", BrightnessIntent(50))

    assert [(info.device_id, info.device_type) for info in devices] == [("lamp", "light")]
    assert state.is_on is True
    assert state.brightness == 50
    assert commands == [Command("bright_value", 128)]
    assert cloud.sent == [("lamp", [Command("bright_value", 128)])]


@pytest.mark.asyncio
async def test_get_states_batches_known_devices() -> None:
    cloud = FakeCloud(
        [
            _device("lamp", "dj", bright_value_v2=550),
            _device("plug", "cz", online=False, switch_1="false"),
        ]
    )
    service = DeviceStateService(cloud)
    await service.async_list_devices()

    states = await service.async_get_states()

    assert cloud.detail_calls == [["lamp", "plug"]]
    assert states["lamp"].brightness == 55
    assert states["plug"].online is False
    assert states["plug"].is_on is False


@pytest.mark.asyncio
async def test_command_for_unknown_device_resolves_mapping_first() -> None:
    cloud = FakeCloud([_device("plug", "cz", switch_1=False)])
    resolver = DeviceCodeResolver()
    service = DeviceStateService(cloud, resolver=resolver)

    commands = await service.async_send_command("plug", PowerIntent(True))

    assert commands == [Command("switch_1", True)]
    assert resolver.mapping_for("plug") is not None


@pytest.mark.asyncio
async def test_unsupported_intent_sends_nothing() -> None:
    cloud = FakeCloud([_device("plug", "cz", switch_1=False)])
    service = DeviceStateService(cloud)

    with pytest.raises(UnsupportedOperationError):
        await service.async_send_command("plug", BrightnessIntent(10))

    assert cloud.sent == []


@pytest.mark.asyncio
async def test_custom_translator_is_used() -> None:
    cloud = FakeCloud([_device("lamp", "dj", bright_value=50)])
    translator = StateTranslator(TranslatorConfig(brightness_range=(0, 100)))
    service = DeviceStateService(cloud, translator=translator)

    state = await service.async_get_state("lamp")

    assert state.brightness == 50
