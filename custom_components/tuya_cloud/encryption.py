"""AES-GCM envelopes and signatures for the sharing (QR-linked) surface."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import secrets
import time
import uuid
from dataclasses import dataclass
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import DecryptionError

NONCE_ALPHABET = "ABCDEFGHJKMNPQRSTWXYZabcdefhijkmnprstwxyz2345678"
NONCE_LENGTH = 12
TAG_LENGTH = 16

_SIGNED_HEADERS = ("X-appKey", "X-requestId", "X-sid", "X-time", "X-token")


def hash_key(request_id: str, refresh_token: str) -> str:
    """Return the per-request MD5 key material."""

    return hashlib.md5((request_id + refresh_token).encode("utf-8")).hexdigest()


def session_code(session_id: str) -> str:
    """Scramble ``session_id`` the way the gateway expects it in the secret."""

    indexes = (ord(char) % 16 for char in session_id[:16])
    return "".join(session_id[index] for index in indexes if index < len(session_id))


def derive_secret(request_id: str, refresh_token: str, session_id: str = "") -> str:
    """Derive the 16 character AES key for one request."""

    message = hash_key(request_id, refresh_token)
    if session_id:
        message = f"{message}_{session_code(session_id)}"
    digest = hmac.new(
        request_id.encode("utf-8"), message.encode("utf-8"), hashlib.sha256
    )
    return digest.hexdigest()[:16]


def generate_nonce() -> str:
    return "".join(secrets.choice(NONCE_ALPHABET) for _ in range(NONCE_LENGTH))


def _to_text(payload: Any) -> str:
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, separators=(",", ":"))


def encrypt(payload: Any, secret: str, nonce: str | None = None) -> str:
    """Encrypt ``payload`` into the request envelope.

    The envelope is ``base64(nonce) + base64(ciphertext || tag)``: two
    independently encoded segments joined together.
    """

    nonce_bytes = (nonce or generate_nonce()).encode("ascii")
    sealed = AESGCM(secret.encode("ascii")).encrypt(
        nonce_bytes, _to_text(payload).encode("utf-8"), None
    )
    return (
        base64.b64encode(nonce_bytes).decode("ascii")
        + base64.b64encode(sealed).decode("ascii")
    )


def decrypt(envelope: str, secret: str) -> Any:
    """Decrypt a response envelope, returning parsed JSON when possible.

    Responses are a single base64 blob of ``nonce || ciphertext || tag``.
    """

    try:
        raw = base64.b64decode(envelope, validate=True)
    except (binascii.Error, ValueError) as err:
        raise DecryptionError("Encrypted payload is not valid base64") from err
    if len(raw) < NONCE_LENGTH + TAG_LENGTH:
        raise DecryptionError("Encrypted payload is too short")
    nonce, sealed = raw[:NONCE_LENGTH], raw[NONCE_LENGTH:]
    try:
        plaintext = AESGCM(secret.encode("ascii")).decrypt(nonce, sealed, None)
    except InvalidTag as err:
        raise DecryptionError("Encrypted payload failed authentication") from err
    text = plaintext.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        return text


def split_request_envelope(envelope: str) -> tuple[bytes, bytes]:
    """Split a request envelope into nonce bytes and ``ciphertext || tag``."""

    # base64 of 12 bytes is always 16 characters without padding
    nonce = base64.b64decode(envelope[:16])
    sealed = base64.b64decode(envelope[16:])
    return nonce, sealed


def decrypt_request_envelope(envelope: str, secret: str) -> Any:
    """Decrypt a request envelope produced by :func:`encrypt`."""

    try:
        nonce, sealed = split_request_envelope(envelope)
    except (binascii.Error, ValueError) as err:
        raise DecryptionError("Encrypted payload is not valid base64") from err
    return decrypt(base64.b64encode(nonce + sealed).decode("ascii"), secret)


def restful_sign(
    headers: dict[str, str], hash_key_value: str, query_envelope: str, body_envelope: str
) -> str:
    """Return the hex HMAC-SHA256 signature over headers and envelopes."""

    parts = [
        f"{name}={headers[name]}" for name in _SIGNED_HEADERS if headers.get(name)
    ]
    message = "||".join(parts) + query_envelope + body_envelope
    digest = hmac.new(
        hash_key_value.encode("utf-8"), message.encode("utf-8"), hashlib.sha256
    )
    return digest.hexdigest()


@dataclass(frozen=True)
class EncryptedRequest:
    """Everything needed to send one sharing request and read its reply."""

    headers: dict[str, str]
    params: dict[str, str] | None
    body: dict[str, str] | None
    secret: str
    request_id: str


class EncryptionEngine:
    """Build encrypted sharing requests and decrypt their responses."""

    def __init__(self, app_key: str) -> None:
        self._app_key = app_key

    def encrypt_request(
        self,
        params: dict[str, Any] | None,
        body: Any,
        *,
        refresh_token: str,
        access_token: str | None = None,
        session_id: str = "",
        request_id: str | None = None,
        timestamp: str | None = None,
    ) -> EncryptedRequest:
        request_id = request_id or str(uuid.uuid4())
        secret = derive_secret(request_id, refresh_token, session_id)
        query_envelope = encrypt(params, secret) if params else ""
        body_envelope = encrypt(body, secret) if body else ""
        headers = {
            "X-appKey": self._app_key,
            "X-requestId": request_id,
            "X-sid": session_id,
            "X-time": timestamp or str(int(time.time() * 1000)),
        }
        if access_token:
            headers["X-token"] = access_token
        headers["X-sign"] = restful_sign(
            headers,
            hash_key(request_id, refresh_token),
            query_envelope,
            body_envelope,
        )
        return EncryptedRequest(
            headers=headers,
            params={"encdata": query_envelope} if query_envelope else None,
            body={"encdata": body_envelope} if body_envelope else None,
            secret=secret,
            request_id=request_id,
        )

    @staticmethod
    def decrypt_result(result: Any, secret: str) -> Any:
        """Decrypt ``result`` when it is an envelope string."""

        if isinstance(result, str) and result:
            return decrypt(result, secret)
        return result
