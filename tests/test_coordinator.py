"""Tests for the polling coordinator."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
from homeassistant.exceptions import ConfigEntryAuthFailed
from homeassistant.helpers.update_coordinator import UpdateFailed

from custom_components.tuya_cloud.auth import TokenManager
from custom_components.tuya_cloud.coordinator import TuyaCloudCoordinator, poll_interval
from custom_components.tuya_cloud.device_codes import DeviceCodeResolver
from custom_components.tuya_cloud.errors import (
    ApiError,
    AuthenticationError,
    RateLimitError,
)
from custom_components.tuya_cloud.service import DeviceInfo
from custom_components.tuya_cloud.translator import DeviceState


@pytest.fixture
def mock_hass() -> Mock:
    """Create a mock Home Assistant instance."""
    return Mock()


@pytest.fixture
def mock_config_entry() -> Mock:
    entry = Mock()
    entry.entry_id = "entry-1"
    entry.data = {}
    return entry


@pytest.fixture
def mock_service() -> Mock:
    service = Mock()
    service.async_list_devices = AsyncMock(return_value=[])
    service.async_get_states = AsyncMock(return_value={})
    return service


def _info(device_id: str) -> DeviceInfo:
    mapping = DeviceCodeResolver().resolve("dj", ["switch_led"])
    return DeviceInfo(
        device_id=device_id,
        name=device_id,
        category="dj",
        device_type="light",
        home_id="home",
        mapping=mapping,
    )


def _coordinator(hass, entry, service) -> TuyaCloudCoordinator:
    return TuyaCloudCoordinator(
        hass,
        config_entry=entry,
        service=service,
        token_manager=TokenManager(),
        update_interval=timedelta(seconds=30),
    )


def test_poll_interval_defaults_and_floor() -> None:
    assert poll_interval(None) == timedelta(seconds=60)
    assert poll_interval(120) == timedelta(seconds=120)
    assert poll_interval(1) == timedelta(seconds=10)


def test_init_sets_update_interval(mock_hass, mock_config_entry, mock_service) -> None:
    coordinator = _coordinator(mock_hass, mock_config_entry, mock_service)

    assert coordinator.update_interval == timedelta(seconds=30)
    assert coordinator.devices == {}


@pytest.mark.asyncio
async def test_first_update_discovers_then_polls(
    mock_hass, mock_config_entry, mock_service
) -> None:
    state = DeviceState(online=True, is_on=True)
    mock_service.async_list_devices.return_value = [_info("lamp")]
    mock_service.async_get_states.return_value = {"lamp": state}
    coordinator = _coordinator(mock_hass, mock_config_entry, mock_service)

    first = await coordinator._async_update_data()
    second = await coordinator._async_update_data()

    assert first == {"lamp": state}
    assert second == {"lamp": state}
    mock_service.async_list_devices.assert_awaited_once()
    mock_service.async_get_states.assert_awaited_with(["lamp"])


@pytest.mark.asyncio
async def test_update_without_devices_returns_empty(
    mock_hass, mock_config_entry, mock_service
) -> None:
    coordinator = _coordinator(mock_hass, mock_config_entry, mock_service)

    assert await coordinator._async_update_data() == {}
    mock_service.async_get_states.assert_not_awaited()


@pytest.mark.asyncio
async def test_authentication_error_triggers_reauth(
    mock_hass, mock_config_entry, mock_service
) -> None:
    mock_service.async_list_devices.side_effect = AuthenticationError("token invalid")
    coordinator = _coordinator(mock_hass, mock_config_entry, mock_service)

    with pytest.raises(ConfigEntryAuthFailed):
        await coordinator._async_update_data()


@pytest.mark.parametrize(
    "error",
    [
        ApiError("boom"),
        RateLimitError("slow down", code=1100),
        httpx.ConnectError("unreachable"),
    ],
)
@pytest.mark.asyncio
async def test_cloud_errors_become_update_failed(
    mock_hass, mock_config_entry, mock_service, error
) -> None:
    mock_service.async_list_devices.return_value = [_info("lamp")]
    mock_service.async_get_states.side_effect = error
    coordinator = _coordinator(mock_hass, mock_config_entry, mock_service)

    with pytest.raises(UpdateFailed):
        await coordinator._async_update_data()


@pytest.mark.asyncio
async def test_rediscover_forgets_devices(
    mock_hass, mock_config_entry, mock_service
) -> None:
    coordinator = _coordinator(mock_hass, mock_config_entry, mock_service)
    coordinator.devices = {"lamp": _info("lamp")}
    coordinator.async_request_refresh = AsyncMock()

    await coordinator.async_rediscover()

    assert coordinator.devices == {}
    coordinator.async_request_refresh.assert_awaited_once()
