"""HMAC request signing for the directly-authorised OpenAPI surface."""

from __future__ import annotations

import hashlib
import hmac
import json
import time
import uuid
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

from .errors import AuthenticationError

SIGN_METHOD = "HMAC-SHA256"


def serialize_body(body: Any) -> str:
    """Return the compact JSON text sent on the wire and hashed for signing."""

    if body is None:
        return ""
    return json.dumps(body, separators=(",", ":"))


def build_path(path: str, params: Mapping[str, Any] | None = None) -> str:
    """Append ``params`` to ``path`` sorted by key, skipping ``None`` values."""

    if not params:
        return path
    query = urlencode(
        [(key, params[key]) for key in sorted(params) if params[key] is not None]
    )
    return f"{path}?{query}" if query else path


class SigningEngine:
    """Produce the headers the OpenAPI gateway expects on every request."""

    def __init__(self, client_id: str) -> None:
        self._client_id = client_id

    @property
    def client_id(self) -> str:
        return self._client_id

    @staticmethod
    def string_to_sign(method: str, path: str, body_json: str) -> str:
        """Return the canonical request string covered by the signature."""

        content_hash = hashlib.sha256(body_json.encode("utf-8")).hexdigest()
        return "\n".join((method.upper(), content_hash, "", path))

    def sign(
        self,
        *,
        method: str,
        path: str,
        body_json: str,
        timestamp: str,
        nonce: str,
        access_token: str | None = None,
    ) -> str:
        """Return the uppercase hex HMAC-SHA256 signature for a request."""

        message = (
            self._client_id
            + timestamp
            + (access_token or "")
            + nonce
            + self.string_to_sign(method, path, body_json)
        )
        digest = hmac.new(b"", message.encode("utf-8"), hashlib.sha256)
        return digest.hexdigest().upper()

    def build_headers(
        self,
        method: str,
        path: str,
        body: Any = None,
        access_token: str | None = None,
        *,
        timestamp: str | None = None,
        nonce: str | None = None,
        require_token: bool = True,
    ) -> dict[str, str]:
        """Return signed headers for ``method`` ``path`` carrying ``body``.

        ``path`` must already contain the sorted query string. Authenticated
        requests without an access token fail before any network I/O.
        """

        if require_token and not access_token:
            raise AuthenticationError(f"No access token available for {path}")
        timestamp = timestamp or str(int(time.time() * 1000))
        nonce = nonce or str(uuid.uuid4())
        headers = {
            "client_id": self._client_id,
            "t": timestamp,
            "sign_method": SIGN_METHOD,
            "nonce": nonce,
            "Content-Type": "application/json",
        }
        if access_token:
            headers["access_token"] = access_token
        headers["sign"] = self.sign(
            method=method,
            path=path,
            body_json=serialize_body(body),
            timestamp=timestamp,
            nonce=nonce,
            access_token=access_token,
        )
        return headers
