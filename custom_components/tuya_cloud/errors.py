"""Error taxonomy for the Tuya Cloud integration."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


class TuyaCloudError(Exception):
    """Base class for every error raised by the integration."""

    def __init__(self, message: str, *, code: int | str | None = None) -> None:
        super().__init__(message)
        self.code = code


class AuthenticationError(TuyaCloudError):
    """No usable credentials, or the provider rejected them."""


class RateLimitError(TuyaCloudError):
    """The provider throttled the request."""


class DeviceOfflineError(TuyaCloudError):
    """The target device is not reachable by the cloud."""


class UnsupportedOperationError(TuyaCloudError):
    """The device cannot perform the requested action."""


class DecryptionError(TuyaCloudError):
    """An encrypted envelope failed authentication or could not be decoded."""


class SignatureError(TuyaCloudError):
    """The provider rejected the request signature."""


class ConfigurationError(TuyaCloudError):
    """The integration was configured with values it cannot use."""


class ApiError(TuyaCloudError):
    """Any other provider or transport failure."""


_AUTH_CODES = frozenset({1010, 1011})
_SIGNATURE_CODES = frozenset({1004})
_RATE_LIMIT_CODES = frozenset({1100, 1101, 40000309})
_UNSUPPORTED_CODES = frozenset({2009})
_OFFLINE_CODES = frozenset({2013})

_KEYWORDS: tuple[tuple[str, type[TuyaCloudError]], ...] = (
    ("unsupportedoperation", UnsupportedOperationError),
    ("frequentlyinvoke", RateLimitError),
    ("targetoffline", DeviceOfflineError),
    ("device is offline", DeviceOfflineError),
    ("sign invalid", SignatureError),
    ("token invalid", AuthenticationError),
    ("token expired", AuthenticationError),
)


def _coerce_code(code: Any) -> int | None:
    try:
        return int(code)
    except (TypeError, ValueError):
        return None


def error_for_code(code: Any, message: str | None = None) -> TuyaCloudError:
    """Return the taxonomy error matching a provider failure ``code``."""

    text = message or f"Provider request failed with code {code}"
    numeric = _coerce_code(code)
    if numeric in _AUTH_CODES:
        return AuthenticationError(text, code=code)
    if numeric in _SIGNATURE_CODES:
        return SignatureError(text, code=code)
    if numeric in _RATE_LIMIT_CODES:
        return RateLimitError(text, code=code)
    if numeric in _UNSUPPORTED_CODES:
        return UnsupportedOperationError(text, code=code)
    if numeric in _OFFLINE_CODES:
        return DeviceOfflineError(text, code=code)
    lowered = text.lower()
    for keyword, error_cls in _KEYWORDS:
        if keyword in lowered:
            return error_cls(text, code=code)
    return ApiError(text, code=code)


def raise_for_response(payload: Mapping[str, Any]) -> None:
    """Raise the mapped taxonomy error when ``payload`` reports a failure."""

    if payload.get("success"):
        return
    raise error_for_code(payload.get("code"), payload.get("msg"))
