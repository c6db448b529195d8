"""QR-code account linking against the sharing login gateway."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from .auth import TokenSet
from .const import (
    CLIENT_ID,
    LOGIN_HOST,
    QR_CODE_PREFIX,
    QR_LOGIN_TIMEOUT,
    QR_POLL_INTERVAL,
    QR_TOKEN_PATH,
    SCHEMA,
    SHARING_REQUEST_TIMEOUT,
)
from .errors import AuthenticationError, error_for_code

_LOGGER = logging.getLogger(__name__)

_EXPIRED_CODE = 1106


@dataclass(frozen=True)
class QRCode:
    """A login token and the text to encode into the QR image."""

    token: str
    qr_data: str
    expires_in: int | None = None


@dataclass(frozen=True)
class LoginResult:
    """Credentials returned once the user confirmed the QR login."""

    tokens: TokenSet
    username: str = ""


def _is_expired(payload: dict[str, Any]) -> bool:
    message = str(payload.get("msg") or "")
    return payload.get("code") == _EXPIRED_CODE or "expired" in message.lower()


class LoginControl:
    """Drive the QR login handshake."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        host: str = LOGIN_HOST,
        client_id: str = CLIENT_ID,
        schema: str = SCHEMA,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._host = host
        self._client_id = client_id
        self._schema = schema
        self._sleep = sleep
        self._clock = clock

    async def async_generate_qr_code(self, user_code: str) -> QRCode:
        """Request a login token for ``user_code``."""

        response = await self._client.post(
            f"{self._host}{QR_TOKEN_PATH}",
            params={
                "clientid": self._client_id,
                "usercode": user_code,
                "schema": self._schema,
            },
            timeout=SHARING_REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        payload = response.json()
        result = payload.get("result") or {}
        token = result.get("qrcode") if isinstance(result, dict) else None
        if not payload.get("success") or not token:
            raise error_for_code(
                payload.get("code"),
                f"Failed to generate QR code: {payload.get('msg') or 'unknown error'}",
            )
        _LOGGER.debug("Generated QR login token for user code %s", user_code)
        return QRCode(
            token=token,
            qr_data=f"{QR_CODE_PREFIX}{token}",
            expires_in=result.get("expire_time"),
        )

    async def async_check_login(self, token: str, user_code: str) -> LoginResult | None:
        """Return the login result, or None while the user has not confirmed."""

        response = await self._client.get(
            f"{self._host}{QR_TOKEN_PATH}/{token}",
            params={"clientid": self._client_id, "usercode": user_code},
            timeout=SHARING_REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        payload = response.json()
        if not payload.get("success"):
            if _is_expired(payload):
                raise AuthenticationError("QR code expired; generate a new one")
            return None
        result = payload.get("result")
        if not isinstance(result, dict) or not result.get("access_token"):
            return None
        issued_at = payload.get("t")
        tokens = TokenSet.from_payload(
            result, issued_at=int(issued_at) if issued_at is not None else None
        )
        return LoginResult(tokens=tokens, username=str(result.get("username") or ""))

    async def async_wait_for_login(
        self,
        token: str,
        user_code: str,
        *,
        timeout: float = QR_LOGIN_TIMEOUT,
        interval: float = QR_POLL_INTERVAL,
    ) -> LoginResult:
        """Poll until the QR login completes, expires or times out."""

        deadline = self._clock() + timeout
        while self._clock() < deadline:
            try:
                result = await self.async_check_login(token, user_code)
            except httpx.HTTPError as err:
                _LOGGER.debug("QR login check failed, retrying: %s", err)
                result = None
            if result is not None:
                _LOGGER.info("Linked Tuya account %s", result.username or result.tokens.uid)
                return result
            await self._sleep(interval)
        raise AuthenticationError("Timed out waiting for QR code confirmation")

    async def async_link(
        self,
        user_code: str,
        on_qr_code: Callable[[QRCode], Awaitable[None] | None] | None = None,
        **wait_kwargs: Any,
    ) -> TokenSet:
        """Run the whole handshake and return the linked account's tokens."""

        qr_code = await self.async_generate_qr_code(user_code)
        if on_qr_code is not None:
            maybe = on_qr_code(qr_code)
            if asyncio.iscoroutine(maybe):
                await maybe
        result = await self.async_wait_for_login(qr_code.token, user_code, **wait_kwargs)
        return result.tokens
