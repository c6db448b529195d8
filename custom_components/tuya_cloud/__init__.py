"""Integration entry point for the Tuya Cloud custom component."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryAuthFailed, ConfigEntryError
from homeassistant.helpers.httpx_client import get_async_client

from .api import TuyaApiClient, create_client
from .auth import LocalExtensionRefresher, ServerTokenRefresher, TokenManager, TokenSet
from .config import validate_entry_data, validate_options
from .const import (
    CONF_MAX_KELVIN,
    CONF_MIN_KELVIN,
    CONF_POLL_INTERVAL,
    CONF_PROTOCOL,
    CONF_REFRESH_POLICY,
    CONF_REGION,
    CONF_USER_CODE,
    DOMAIN,
    REFRESH_POLICY_LOCAL_EXTEND,
)
from .coordinator import TuyaCloudCoordinator, poll_interval
from .device_codes import DeviceCodeResolver
from .errors import ConfigurationError
from .linking import LoginControl, QRCode
from .service import DeviceStateService
from .storage import CredentialStore
from .translator import StateTranslator, TranslatorConfig

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "DOMAIN",
    "async_link_account",
    "async_remove_entry",
    "async_setup_entry",
    "async_unlink_account",
    "async_unload_entry",
]


@dataclass
class RuntimeData:
    """Objects owned by one config entry."""

    token_manager: TokenManager
    client: TuyaApiClient
    service: DeviceStateService
    coordinator: TuyaCloudCoordinator
    credential_store: CredentialStore


def _refresher_for(policy: str, protocol: str, client: TuyaApiClient) -> Any:
    if policy == REFRESH_POLICY_LOCAL_EXTEND:
        return LocalExtensionRefresher(protocol)
    return ServerTokenRefresher(client)


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up a linked Tuya account from a config entry."""

    try:
        data = validate_entry_data(entry.data)
        options = validate_options(entry.options)
    except ConfigurationError as err:
        raise ConfigEntryError(str(err)) from err
    protocol = data[CONF_PROTOCOL]
    store = CredentialStore(hass, entry.entry_id, data[CONF_USER_CODE])
    stored = await store.async_load()
    if stored is None:
        raise ConfigEntryAuthFailed("No stored Tuya credentials; link the account again")

    token_manager = TokenManager(tokens=stored.tokens)
    client = create_client(
        protocol,
        get_async_client(hass),
        token_manager,
        region=data[CONF_REGION],
    )
    token_manager.set_refresher(
        _refresher_for(data[CONF_REFRESH_POLICY], protocol, client)
    )
    token_manager.add_listener(client.update_tokens)
    token_manager.add_listener(store.async_save)

    resolver = DeviceCodeResolver()
    translator = StateTranslator(
        TranslatorConfig(
            min_kelvin=options[CONF_MIN_KELVIN],
            max_kelvin=options[CONF_MAX_KELVIN],
        ),
        resolver=resolver,
    )
    service = DeviceStateService(client, resolver, translator)
    coordinator = TuyaCloudCoordinator(
        hass,
        config_entry=entry,
        service=service,
        token_manager=token_manager,
        update_interval=poll_interval(options[CONF_POLL_INTERVAL]),
    )

    try:
        await coordinator.async_config_entry_first_refresh()
    except BaseException:
        await token_manager.async_shutdown()
        raise

    await token_manager.async_start()
    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = RuntimeData(
        token_manager=token_manager,
        client=client,
        service=service,
        coordinator=coordinator,
        credential_store=store,
    )
    _LOGGER.debug("Set up %s with %d devices", entry.entry_id, len(coordinator.devices))
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry and cancel its timers."""

    runtime: RuntimeData | None = hass.data.get(DOMAIN, {}).pop(entry.entry_id, None)
    if runtime is not None:
        await runtime.token_manager.async_shutdown()
    return True


async def async_remove_entry(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Forget the stored credentials when the entry is deleted."""

    await async_unlink_account(hass, entry.entry_id, entry.data[CONF_USER_CODE])


async def async_link_account(
    hass: HomeAssistant,
    entry_id: str,
    user_code: str,
    on_qr_code: Callable[[QRCode], Awaitable[None] | None] | None = None,
    **wait_kwargs: Any,
) -> TokenSet:
    """Link an account by QR code and persist the resulting credentials.

    When the entry is already running (re-linking after the credentials were
    rejected) its token manager adopts the new tokens, which also updates the
    request client and the store through the registered listeners.
    """

    control = LoginControl(get_async_client(hass))
    runtime: RuntimeData | None = hass.data.get(DOMAIN, {}).get(entry_id)
    if runtime is not None:
        return await runtime.token_manager.async_authorize(
            control.async_link(user_code, on_qr_code, **wait_kwargs)
        )

    store = CredentialStore(hass, entry_id, user_code)
    token_manager = TokenManager()
    token_manager.add_listener(store.async_save)
    try:
        return await token_manager.async_authorize(
            control.async_link(user_code, on_qr_code, **wait_kwargs)
        )
    finally:
        await token_manager.async_shutdown()


async def async_unlink_account(hass: HomeAssistant, entry_id: str, user_code: str) -> None:
    """Drop the credentials of ``entry_id`` from memory and storage."""

    runtime: RuntimeData | None = hass.data.get(DOMAIN, {}).get(entry_id)
    if runtime is not None:
        await runtime.token_manager.async_invalidate()
        await runtime.credential_store.async_remove()
    else:
        await CredentialStore(hass, entry_id, user_code).async_remove()
    _LOGGER.info("Removed Tuya credentials for %s", entry_id)
