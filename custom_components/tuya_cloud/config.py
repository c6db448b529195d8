"""Validation of config entry data and options."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import voluptuous as vol

from .const import (
    CONF_MAX_KELVIN,
    CONF_MIN_KELVIN,
    CONF_POLL_INTERVAL,
    CONF_PROTOCOL,
    CONF_REFRESH_POLICY,
    CONF_REGION,
    CONF_USER_CODE,
    DEFAULT_MAX_KELVIN,
    DEFAULT_MIN_KELVIN,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_REGION,
    MIN_POLL_INTERVAL,
    PROTOCOL_SHARING,
    PROTOCOL_SIGNED,
    REFRESH_POLICY_LOCAL_EXTEND,
    REFRESH_POLICY_SERVER,
    REGION_ENDPOINTS,
)
from .errors import ConfigurationError

ENTRY_DATA_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_USER_CODE): vol.All(str, vol.Length(min=1)),
        vol.Optional(CONF_PROTOCOL, default=PROTOCOL_SHARING): vol.In(  # type: ignore
            [PROTOCOL_SHARING, PROTOCOL_SIGNED]
        ),
        vol.Optional(CONF_REGION, default=DEFAULT_REGION): vol.All(  # type: ignore
            vol.Upper, vol.In(list(REGION_ENDPOINTS))
        ),
        vol.Optional(CONF_REFRESH_POLICY, default=REFRESH_POLICY_SERVER): vol.In(  # type: ignore
            [REFRESH_POLICY_SERVER, REFRESH_POLICY_LOCAL_EXTEND]
        ),
    },
    extra=vol.ALLOW_EXTRA,
)

OPTIONS_SCHEMA = vol.Schema(
    {
        vol.Optional(
            CONF_POLL_INTERVAL, default=int(DEFAULT_POLL_INTERVAL.total_seconds())
        ): vol.All(  # type: ignore
            vol.Coerce(int), vol.Range(min=int(MIN_POLL_INTERVAL.total_seconds()))
        ),
        vol.Optional(CONF_MIN_KELVIN, default=DEFAULT_MIN_KELVIN): vol.All(  # type: ignore
            vol.Coerce(int), vol.Range(min=1)
        ),
        vol.Optional(CONF_MAX_KELVIN, default=DEFAULT_MAX_KELVIN): vol.All(  # type: ignore
            vol.Coerce(int), vol.Range(min=1)
        ),
    },
    extra=vol.ALLOW_EXTRA,
)


def validate_entry_data(data: Mapping[str, Any]) -> dict[str, Any]:
    """Return entry data with defaults applied, or raise ConfigurationError."""

    try:
        validated = ENTRY_DATA_SCHEMA(dict(data))
    except vol.Invalid as err:
        raise ConfigurationError(f"Invalid config entry data: {err}") from err
    if (
        validated[CONF_REFRESH_POLICY] == REFRESH_POLICY_LOCAL_EXTEND
        and validated[CONF_PROTOCOL] != PROTOCOL_SHARING
    ):
        raise ConfigurationError(
            "Local token extension is only available for QR-linked accounts"
        )
    return validated


def validate_options(options: Mapping[str, Any]) -> dict[str, Any]:
    """Return options with defaults applied, or raise ConfigurationError."""

    try:
        validated = OPTIONS_SCHEMA(dict(options))
    except vol.Invalid as err:
        raise ConfigurationError(f"Invalid options: {err}") from err
    if validated[CONF_MIN_KELVIN] >= validated[CONF_MAX_KELVIN]:
        raise ConfigurationError(
            f"min_kelvin {validated[CONF_MIN_KELVIN]} must be below "
            f"max_kelvin {validated[CONF_MAX_KELVIN]}"
        )
    return validated
