"""Request clients for the two Tuya cloud API surfaces."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from typing import Any

import httpx

from .auth import TokenManager, TokenSet
from .catalog import CloudDevice, DeviceStatusEntry, Home
from .const import (
    CLIENT_ID,
    DEFAULT_REGION,
    PROTOCOL_SHARING,
    PROTOCOL_SIGNED,
    REGION_ENDPOINTS,
    SHARING_REQUEST_TIMEOUT,
    SIGNED_REQUEST_TIMEOUT,
)
from .encryption import EncryptionEngine
from .errors import (
    ApiError,
    ConfigurationError,
    DecryptionError,
    SignatureError,
    raise_for_response,
)
from .signing import SigningEngine, build_path, serialize_body

_LOGGER = logging.getLogger(__name__)


def _as_list(result: Any, *keys: str) -> list[Any]:
    """Return the list held by ``result`` directly or under one of ``keys``."""

    if isinstance(result, list):
        return result
    if isinstance(result, Mapping):
        for key in keys:
            value = result.get(key)
            if isinstance(value, list):
                return value
    return []


def _command_payload(commands: Iterable[Any]) -> dict[str, Any]:
    return {
        "commands": [
            {"code": command.code, "value": command.value} for command in commands
        ]
    }


class TuyaApiClient(ABC):
    """Common surface of the signed and the sharing clients."""

    protocol: str

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token_manager: TokenManager,
        *,
        endpoint: str,
    ) -> None:
        self._client = http_client
        self._token_manager = token_manager
        self._endpoint = endpoint.rstrip("/")
        self._tokens: TokenSet | None = token_manager.tokens

    def update_tokens(self, tokens: TokenSet) -> None:
        """Token listener; keeps the client's view of the credentials current."""

        self._tokens = tokens

    async def _async_tokens(self) -> TokenSet:
        tokens = await self._token_manager.async_ensure_valid()
        self._tokens = tokens
        return tokens

    @abstractmethod
    async def _async_request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
        tokens: TokenSet | None = None,
    ) -> dict[str, Any]:
        """Send a request and return the envelope with a plaintext ``result``."""

    async def _async_send(
        self, method: str, url: str, *, timeout: float, **kwargs: Any
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(method, url, timeout=timeout, **kwargs)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as err:
            raise ApiError(f"Request to {url} failed: {err}") from err
        except ValueError as err:
            raise ApiError(f"Response from {url} was not JSON") from err
        if not isinstance(payload, dict):
            raise ApiError(f"Unexpected response from {url}")
        return payload

    @abstractmethod
    async def async_get_homes(self) -> list[Home]:
        """Return the homes owned by the linked account."""

    @abstractmethod
    async def async_get_home_devices(self, home_id: str) -> list[CloudDevice]:
        """Return the devices in ``home_id`` with their status arrays."""

    @abstractmethod
    async def async_get_device_details(
        self, device_ids: Sequence[str]
    ) -> list[CloudDevice]:
        """Return fresh details, including status, for ``device_ids``."""

    @abstractmethod
    async def async_send_commands(self, device_id: str, commands: Sequence[Any]) -> bool:
        """Send provider commands to ``device_id``."""

    @abstractmethod
    async def async_refresh_token(self, tokens: TokenSet) -> TokenSet:
        """Exchange ``tokens.refresh_token`` for a new token set."""

    async def async_get_device_status(self, device_id: str) -> CloudDevice:
        """Return one device with its current status array."""

        devices = await self.async_get_device_details([device_id])
        for device in devices:
            if device.id == device_id:
                return device
        raise ApiError(f"Device {device_id} was not returned by the cloud")


class SignedClient(TuyaApiClient):
    """Client for the HMAC-signed OpenAPI surface."""

    protocol = PROTOCOL_SIGNED

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token_manager: TokenManager,
        *,
        endpoint: str,
        client_id: str = CLIENT_ID,
    ) -> None:
        super().__init__(http_client, token_manager, endpoint=endpoint)
        self._signer = SigningEngine(client_id)

    async def _async_request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
        tokens: TokenSet | None = None,
        authenticated: bool = True,
    ) -> dict[str, Any]:
        if authenticated and tokens is None:
            tokens = await self._async_tokens()
        access_token = tokens.access_token if authenticated and tokens else None
        full_path = build_path(path, params)
        body_json = serialize_body(body)
        for attempt in (1, 2):
            headers = self._signer.build_headers(
                method,
                full_path,
                body,
                access_token,
                require_token=authenticated,
            )
            _LOGGER.debug("Signed request %s %s", method, full_path)
            payload = await self._async_send(
                method,
                f"{self._endpoint}{full_path}",
                timeout=SIGNED_REQUEST_TIMEOUT,
                headers=headers,
                content=body_json.encode("utf-8") if body_json else None,
            )
            try:
                raise_for_response(payload)
            except SignatureError:
                if attempt == 2:
                    raise
                _LOGGER.debug("Signature rejected for %s, retrying once", full_path)
                continue
            return payload
        raise SignatureError(f"Signature rejected for {full_path}")

    async def async_get_homes(self) -> list[Home]:
        tokens = await self._async_tokens()
        payload = await self._async_request(
            "GET", f"/v1.0/users/{tokens.uid}/homes", tokens=tokens
        )
        return [Home.model_validate(home) for home in _as_list(payload.get("result"))]

    async def async_get_home_devices(self, home_id: str) -> list[CloudDevice]:
        payload = await self._async_request("GET", f"/v1.0/homes/{home_id}/devices")
        return [
            CloudDevice.model_validate(device)
            for device in _as_list(payload.get("result"), "devices", "list")
        ]

    async def async_get_device_details(
        self, device_ids: Sequence[str]
    ) -> list[CloudDevice]:
        devices = []
        for device_id in device_ids:
            payload = await self._async_request("GET", f"/v1.0/devices/{device_id}")
            result = payload.get("result")
            if isinstance(result, Mapping):
                devices.append(CloudDevice.model_validate(result))
        return devices

    async def async_get_status(self, device_id: str) -> list[DeviceStatusEntry]:
        """Return only the status array of ``device_id``."""

        payload = await self._async_request("GET", f"/v1.0/devices/{device_id}/status")
        return [
            DeviceStatusEntry.model_validate(entry)
            for entry in _as_list(payload.get("result"))
        ]

    async def async_send_commands(self, device_id: str, commands: Sequence[Any]) -> bool:
        payload = await self._async_request(
            "POST",
            f"/v1.0/devices/{device_id}/commands",
            body=_command_payload(commands),
        )
        return bool(payload.get("result", True))

    async def async_refresh_token(self, tokens: TokenSet) -> TokenSet:
        payload = await self._async_request(
            "GET",
            f"/v1.0/token/{tokens.refresh_token}",
            tokens=tokens,
            authenticated=False,
        )
        result = payload.get("result")
        if not isinstance(result, Mapping):
            raise ApiError("Token refresh returned no result")
        refreshed = TokenSet.from_payload(dict(result), issued_at=payload.get("t"))
        return replace(
            refreshed,
            uid=refreshed.uid or tokens.uid,
            terminal_id=tokens.terminal_id,
            endpoint=tokens.endpoint,
        )


class EncryptedClient(TuyaApiClient):
    """Client for the AES-GCM sharing surface used by QR-linked accounts."""

    protocol = PROTOCOL_SHARING

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token_manager: TokenManager,
        *,
        endpoint: str,
        client_id: str = CLIENT_ID,
    ) -> None:
        super().__init__(http_client, token_manager, endpoint=endpoint)
        self._engine = EncryptionEngine(client_id)

    def _base_url(self, tokens: TokenSet) -> str:
        return (tokens.endpoint or self._endpoint).rstrip("/")

    async def _async_request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
        tokens: TokenSet | None = None,
    ) -> dict[str, Any]:
        if tokens is None:
            tokens = await self._async_tokens()
        url = f"{self._base_url(tokens)}{path}"
        for attempt in (1, 2):
            # every attempt derives a new request id, secret and nonce
            request = self._engine.encrypt_request(
                params,
                body,
                refresh_token=tokens.refresh_token,
                access_token=tokens.access_token,
            )
            _LOGGER.debug("Sharing request %s %s", method, path)
            payload = await self._async_send(
                method,
                url,
                timeout=SHARING_REQUEST_TIMEOUT,
                headers=request.headers,
                params=request.params,
                json=request.body,
            )
            try:
                raise_for_response(payload)
                result = self._engine.decrypt_result(payload.get("result"), request.secret)
            except (DecryptionError, SignatureError) as err:
                if attempt == 2:
                    raise
                _LOGGER.debug("Integrity failure for %s, retrying once: %s", path, err)
                continue
            return {**payload, "result": result}
        raise DecryptionError(f"Integrity failure for {path}")

    async def async_get_homes(self) -> list[Home]:
        payload = await self._async_request("GET", "/v1.0/m/life/users/homes")
        return [Home.model_validate(home) for home in _as_list(payload.get("result"))]

    async def async_get_home_devices(self, home_id: str) -> list[CloudDevice]:
        payload = await self._async_request(
            "GET", "/v1.0/m/life/ha/home/devices", params={"homeId": home_id}
        )
        return [
            CloudDevice.model_validate(device)
            for device in _as_list(payload.get("result"), "devices", "list")
        ]

    async def async_get_device_details(
        self, device_ids: Sequence[str]
    ) -> list[CloudDevice]:
        if not device_ids:
            return []
        payload = await self._async_request(
            "GET",
            "/v1.0/m/life/ha/devices/detail",
            params={"devIds": ",".join(device_ids)},
        )
        return [
            CloudDevice.model_validate(device)
            for device in _as_list(payload.get("result"), "devices", "list")
        ]

    async def async_send_commands(self, device_id: str, commands: Sequence[Any]) -> bool:
        payload = await self._async_request(
            "POST",
            f"/v1.1/m/thing/{device_id}/commands",
            body=_command_payload(commands),
        )
        return bool(payload.get("result", True))

    async def async_refresh_token(self, tokens: TokenSet) -> TokenSet:
        payload = await self._async_request(
            "GET", f"/v1.0/m/token/{tokens.refresh_token}", tokens=tokens
        )
        result = payload.get("result")
        if not isinstance(result, Mapping):
            raise ApiError("Token refresh returned no result")
        refreshed = TokenSet.from_payload(dict(result), issued_at=payload.get("t"))
        return replace(
            refreshed,
            uid=refreshed.uid or tokens.uid,
            terminal_id=tokens.terminal_id,
            endpoint=tokens.endpoint,
        )


def create_client(
    protocol: str,
    http_client: httpx.AsyncClient,
    token_manager: TokenManager,
    *,
    region: str | None = None,
    endpoint: str | None = None,
) -> TuyaApiClient:
    """Return the client for the protocol the account was linked with."""

    if endpoint is None:
        if region is not None and region not in REGION_ENDPOINTS:
            raise ConfigurationError(f"Unknown region {region}")
        endpoint = REGION_ENDPOINTS[region or DEFAULT_REGION]
        tokens = token_manager.tokens
        if protocol == PROTOCOL_SHARING and tokens is not None and tokens.endpoint:
            endpoint = tokens.endpoint
    if protocol == PROTOCOL_SHARING:
        return EncryptedClient(http_client, token_manager, endpoint=endpoint)
    if protocol == PROTOCOL_SIGNED:
        return SignedClient(http_client, token_manager, endpoint=endpoint)
    raise ConfigurationError(f"Unknown protocol {protocol}")
