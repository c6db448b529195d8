"""Persistence of linked-account credentials in Home Assistant storage."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from homeassistant.core import HomeAssistant
from homeassistant.helpers.storage import Store

from .auth import TokenSet
from .const import DOMAIN

_LOGGER = logging.getLogger(__name__)

STORAGE_VERSION = 1
STORAGE_KEY = f"{DOMAIN}_credentials"


@dataclass(frozen=True)
class StoredCredentials:
    """Everything needed to resume a linked session after a restart."""

    user_code: str
    tokens: TokenSet

    @property
    def terminal_id(self) -> str | None:
        return self.tokens.terminal_id

    @property
    def endpoint(self) -> str | None:
        return self.tokens.endpoint

    @classmethod
    def from_storage(cls, data: dict[str, Any]) -> StoredCredentials:
        """Rebuild stored credentials, raising on malformed payloads."""

        token_info = dict(data["token_info"])
        token_info.setdefault("terminal_id", data.get("terminal_id"))
        token_info.setdefault("endpoint", data.get("endpoint"))
        return cls(
            user_code=str(data["user_code"]),
            tokens=TokenSet.from_storage(token_info),
        )

    def as_storage(self) -> dict[str, Any]:
        return {
            "user_code": self.user_code,
            "token_info": self.tokens.as_storage(),
            "terminal_id": self.terminal_id,
            "endpoint": self.endpoint,
        }


class CredentialStore:
    """Load and save the credential payload for one config entry."""

    def __init__(self, hass: HomeAssistant, entry_id: str, user_code: str) -> None:
        self._store = Store(
            hass, STORAGE_VERSION, f"{STORAGE_KEY}.{entry_id}", private=True
        )
        self._user_code = user_code
        self._lock = asyncio.Lock()

    async def async_load(self) -> StoredCredentials | None:
        """Return stored credentials, or None when absent or unreadable."""

        data = await self._store.async_load()
        if not data:
            return None
        try:
            credentials = StoredCredentials.from_storage(data)
        except (KeyError, TypeError, ValueError) as err:
            _LOGGER.debug("Ignoring malformed stored credentials: %s", err)
            return None
        if credentials.user_code != self._user_code:
            _LOGGER.debug("Ignoring stored credentials linked to another user code")
            return None
        return credentials

    async def async_save(self, tokens: TokenSet) -> None:
        """Persist ``tokens``; registered as a token listener."""

        credentials = StoredCredentials(user_code=self._user_code, tokens=tokens)
        async with self._lock:
            await self._store.async_save(credentials.as_storage())

    async def async_remove(self) -> None:
        async with self._lock:
            await self._store.async_remove()
