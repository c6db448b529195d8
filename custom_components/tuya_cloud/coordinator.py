"""Polling coordinator for the Tuya Cloud integration."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

import httpx
from homeassistant.exceptions import ConfigEntryAuthFailed
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .auth import TokenManager
from .const import DEFAULT_POLL_INTERVAL, DOMAIN, MIN_POLL_INTERVAL
from .errors import AuthenticationError, TuyaCloudError
from .service import DeviceInfo, DeviceStateService
from .translator import DeviceState

_LOGGER = logging.getLogger(__name__)


def poll_interval(seconds: Any) -> timedelta:
    """Return the configured poll interval, never below the minimum."""

    if seconds is None:
        return DEFAULT_POLL_INTERVAL
    interval = timedelta(seconds=float(seconds))
    return max(interval, MIN_POLL_INTERVAL)


class TuyaCloudCoordinator(DataUpdateCoordinator[dict[str, DeviceState]]):
    """Poll every linked device and keep their canonical states."""

    def __init__(
        self,
        hass: Any,
        *,
        config_entry: Any,
        service: DeviceStateService,
        token_manager: TokenManager,
        update_interval: timedelta = DEFAULT_POLL_INTERVAL,
    ) -> None:
        super().__init__(
            hass,
            _LOGGER,
            config_entry=config_entry,
            name=DOMAIN,
            update_interval=update_interval,
        )
        self.service = service
        self.token_manager = token_manager
        self.devices: dict[str, DeviceInfo] = {}

    async def _async_update_data(self) -> dict[str, DeviceState]:
        try:
            if not self.devices:
                discovered = await self.service.async_list_devices()
                self.devices = {info.device_id: info for info in discovered}
            if not self.devices:
                return {}
            return await self.service.async_get_states(list(self.devices))
        except AuthenticationError as err:
            raise ConfigEntryAuthFailed(str(err)) from err
        except (TuyaCloudError, httpx.HTTPError) as err:
            raise UpdateFailed(f"Error communicating with Tuya cloud: {err}") from err

    async def async_rediscover(self) -> None:
        """Forget known devices so the next refresh runs discovery again."""

        self.devices = {}
        await self.async_request_refresh()
