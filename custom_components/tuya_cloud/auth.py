"""Credential lifecycle management for the Tuya Cloud integration."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Protocol

from .const import (
    DEFAULT_TOKEN_LIFETIME,
    LOCAL_EXTENSION,
    PROTOCOL_SHARING,
    TOKEN_REFRESH_LEAD,
    TOKEN_SAFETY_MARGIN,
)
from .errors import AuthenticationError, ConfigurationError

_LOGGER = logging.getLogger(__name__)

TokenListener = Callable[["TokenSet"], Awaitable[None] | None]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _resolve_payload_value(payload: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first non-``None`` value for ``keys`` in ``payload``."""

    for key in keys:
        if payload.get(key) is not None:
            return payload[key]
    return default


@dataclass(frozen=True)
class TokenSet:
    """The authoritative credential bundle for one linked account."""

    access_token: str
    refresh_token: str
    expires_at: int
    uid: str
    terminal_id: str | None = None
    endpoint: str | None = None

    @classmethod
    def from_payload(
        cls, payload: dict[str, Any], *, issued_at: int | None = None
    ) -> TokenSet:
        """Create a token set from a login or refresh response.

        Both the snake_case OpenAPI shape and the camelCase sharing shape are
        accepted. ``expire_time`` is a lifetime in seconds counted from
        ``issued_at`` (epoch milliseconds).
        """

        access_token = _resolve_payload_value(payload, "access_token", "accessToken")
        if not access_token:
            raise AuthenticationError("Token response did not include an access token")
        lifetime = _resolve_payload_value(
            payload,
            "expire_time",
            "expireTime",
            default=int(DEFAULT_TOKEN_LIFETIME.total_seconds()),
        )
        issued = int(issued_at) if issued_at is not None else _now_ms()
        return cls(
            access_token=str(access_token),
            refresh_token=str(
                _resolve_payload_value(payload, "refresh_token", "refreshToken", default="")
            ),
            expires_at=issued + int(lifetime) * 1000,
            uid=str(_resolve_payload_value(payload, "uid", default="")),
            terminal_id=_resolve_payload_value(payload, "terminal_id", "terminalId"),
            endpoint=_resolve_payload_value(payload, "endpoint"),
        )

    @classmethod
    def from_storage(cls, data: dict[str, Any]) -> TokenSet:
        """Create a token set from persisted storage."""

        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or "",
            expires_at=int(data["expires_at"]),
            uid=data.get("uid") or "",
            terminal_id=data.get("terminal_id"),
            endpoint=data.get("endpoint"),
        )

    def as_storage(self) -> dict[str, Any]:
        """Serialize the token set for storage."""

        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "uid": self.uid,
            "terminal_id": self.terminal_id,
            "endpoint": self.endpoint,
        }

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token)

    def is_valid(self, now: int | None = None) -> bool:
        """Return True while the token is usable outside the safety margin."""

        if not self.can_refresh:
            return False
        if now is None:
            now = _now_ms()
        margin = int(TOKEN_SAFETY_MARGIN.total_seconds() * 1000)
        return self.expires_at - margin > now

    def with_expiry(self, expires_at: int) -> TokenSet:
        return replace(self, expires_at=expires_at)


class TokenState(Enum):
    """Lifecycle of the linked account's credentials."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHORIZING = "authorizing"
    AUTHORIZED = "authorized"
    REFRESHING = "refreshing"
    INVALID = "invalid"


class TokenRefresher(Protocol):
    """Strategy that produces a new token set from the current one."""

    async def async_refresh(self, tokens: TokenSet) -> TokenSet:
        ...


class RefreshClient(Protocol):
    async def async_refresh_token(self, tokens: TokenSet) -> TokenSet:
        ...


class ServerTokenRefresher:
    """Exchange the refresh token with the provider."""

    def __init__(self, client: RefreshClient) -> None:
        self._client = client

    async def async_refresh(self, tokens: TokenSet) -> TokenSet:
        return await self._client.async_refresh_token(tokens)


class LocalExtensionRefresher:
    """Push the expiry forward without contacting the provider.

    The sharing protocol authenticates every request with the refresh token,
    so a stale access token keeps working there. The signed protocol depends
    on a live access token and cannot use this policy.
    """

    def __init__(
        self,
        protocol: str,
        *,
        extension_ms: int = int(LOCAL_EXTENSION.total_seconds() * 1000),
        now: Callable[[], int] = _now_ms,
    ) -> None:
        if protocol != PROTOCOL_SHARING:
            raise ConfigurationError(
                f"Local token extension is not available for the {protocol} protocol"
            )
        self._extension_ms = extension_ms
        self._now = now

    async def async_refresh(self, tokens: TokenSet) -> TokenSet:
        _LOGGER.debug("Extending token validity locally for %s", tokens.uid)
        return tokens.with_expiry(self._now() + self._extension_ms)


class TokenManager:
    """Own the current token set and keep it valid.

    Concurrent refresh requests share one in-flight task. Every successful
    change is pushed to registered listeners (request clients and the
    credential store).
    """

    def __init__(
        self,
        refresher: TokenRefresher | None = None,
        *,
        tokens: TokenSet | None = None,
        now: Callable[[], int] = _now_ms,
    ) -> None:
        self._refresher = refresher
        self._tokens = tokens
        self._now = now
        self._state = (
            TokenState.AUTHORIZED if tokens is not None else TokenState.UNAUTHENTICATED
        )
        self._listeners: list[TokenListener] = []
        self._refresh_task: asyncio.Task[TokenSet] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._pending_tasks: set[asyncio.Task[Any]] = set()

    @property
    def tokens(self) -> TokenSet | None:
        """Return the current token set."""

        return self._tokens

    @property
    def state(self) -> TokenState:
        return self._state

    def set_refresher(self, refresher: TokenRefresher) -> None:
        self._refresher = refresher

    def is_valid(self) -> bool:
        """Return True when a refreshable token outside the margin is held."""

        return (
            self._tokens is not None
            and self._state is not TokenState.INVALID
            and self._tokens.is_valid(self._now())
        )

    def add_listener(self, listener: TokenListener) -> Callable[[], None]:
        """Register ``listener`` for token changes and return an unsubscribe."""

        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    async def async_authorize(self, login: Awaitable[TokenSet]) -> TokenSet:
        """Run a linking flow and adopt the tokens it yields."""

        previous = self._state
        self._state = TokenState.AUTHORIZING
        try:
            tokens = await login
        except BaseException:
            self._state = previous
            raise
        return await self.async_set_tokens(tokens)

    async def async_set_tokens(self, tokens: TokenSet) -> TokenSet:
        """Adopt ``tokens`` as the authoritative set and notify listeners."""

        self._tokens = tokens
        self._state = TokenState.AUTHORIZED
        self._schedule_proactive_refresh()
        await self._notify(tokens)
        return tokens

    async def async_ensure_valid(self) -> TokenSet:
        """Return a usable token set, refreshing first when needed."""

        tokens = self._tokens
        if tokens is None or self._state is TokenState.UNAUTHENTICATED:
            raise AuthenticationError("No credentials are linked")
        if self._state is TokenState.INVALID:
            raise AuthenticationError("Credentials were rejected; relink the account")
        if not tokens.can_refresh:
            raise AuthenticationError("Credentials cannot be refreshed; relink the account")
        if tokens.is_valid(self._now()):
            return tokens
        return await self.async_refresh()

    async def async_refresh(self) -> TokenSet:
        """Refresh the token set, joining any refresh already in flight."""

        task = self._refresh_task
        if task is None:
            task = asyncio.get_running_loop().create_task(self._async_do_refresh())
            self._refresh_task = task
        return await asyncio.shield(task)

    async def _async_do_refresh(self) -> TokenSet:
        try:
            tokens = self._tokens
            if tokens is None or not tokens.can_refresh:
                raise AuthenticationError("No refresh token available")
            if self._state is TokenState.INVALID:
                raise AuthenticationError("Credentials were rejected; relink the account")
            if self._refresher is None:
                raise ConfigurationError("No token refresh policy configured")
            self._state = TokenState.REFRESHING
            try:
                refreshed = await self._refresher.async_refresh(tokens)
            except AuthenticationError:
                self._state = TokenState.INVALID
                self._cancel_timer()
                _LOGGER.warning("Token refresh rejected for %s", tokens.uid)
                raise
            except BaseException:
                self._state = TokenState.AUTHORIZED
                raise
            _LOGGER.info("Refreshed credentials for %s", refreshed.uid)
            return await self.async_set_tokens(refreshed)
        finally:
            self._refresh_task = None

    async def async_start(self) -> None:
        """Arm the proactive refresh timer for the token set loaded at startup."""

        self._schedule_proactive_refresh()

    async def async_invalidate(self) -> None:
        """Drop credentials, for example after the account was unlinked."""

        self._cancel_timer()
        self._tokens = None
        self._state = TokenState.UNAUTHENTICATED

    async def async_shutdown(self) -> None:
        """Cancel timers and any background refresh."""

        self._cancel_timer()
        for task in list(self._pending_tasks):
            task.cancel()
        self._pending_tasks.clear()

    async def _notify(self, tokens: TokenSet) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(tokens)
                if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
                    await result
            except Exception:  # pylint: disable=broad-except
                _LOGGER.exception("Token listener %s failed", listener)

    def _schedule_proactive_refresh(self) -> None:
        self._cancel_timer()
        tokens = self._tokens
        if tokens is None or not tokens.can_refresh:
            return
        lead = int(TOKEN_REFRESH_LEAD.total_seconds() * 1000)
        delay = max((tokens.expires_at - lead - self._now()) / 1000, 0)
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._fire_proactive_refresh)

    def _fire_proactive_refresh(self) -> None:
        self._timer = None
        task = asyncio.get_running_loop().create_task(self._async_proactive_refresh())
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)

    async def _async_proactive_refresh(self) -> None:
        try:
            await self.async_refresh()
        except Exception as err:  # pylint: disable=broad-except
            _LOGGER.warning("Proactive token refresh failed: %s", err)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
