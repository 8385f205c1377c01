"""Authenticated-encryption envelope for tracker data.

Wire layout of the ``data`` field, shared with the Node writer and the
WebCrypto viewer::

    base64( salt[32] || iv[16] || tag[16] || ciphertext )

The default password is derived from the workspace id, which travels in
plaintext next to the payload. Anyone holding the file can therefore derive
the key: this keeps statistics away from casual inspection and detects
tampering, it is not access control.
"""

from __future__ import annotations

import base64
import binascii
import copy
import hashlib
import json
import logging
import os
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .models import FORMAT_VERSION, TrackerData

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
SALT_LENGTH = 32
IV_LENGTH = 16
TAG_LENGTH = 16
HEADER_LENGTH = SALT_LENGTH + IV_LENGTH + TAG_LENGTH
PBKDF2_ITERATIONS = 100_000
DEFAULT_KEY_SUFFIX = "howdare-default-key"
SUPPORTED_MAJOR_VERSION = 1

SHAPE_NON_OBJECT = "non-object"
SHAPE_UNENCRYPTED_ENVELOPE = "unencrypted-envelope"
SHAPE_MISSING_WORKSPACE_ID = "missing-workspace-id"
SHAPE_UNSUPPORTED_VERSION = "unsupported-version"
SHAPE_INVALID_RECORD = "invalid-record"


class EnvelopeError(RuntimeError):
    """Base class for codec failures."""

    def __init__(self, message: str, *, operation: str) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class DecodeAuthError(EnvelopeError):
    """Raised when an envelope is malformed or fails authentication."""

    def __init__(self, detail: str, *, operation: str = "decode") -> None:
        super().__init__(
            f"cannot load, data may be corrupt or from an incompatible key ({detail})",
            operation=operation,
        )
        self.detail = detail


class FormatUnsupportedError(EnvelopeError):
    """Raised for a recognized record shape that cannot be migrated."""

    def __init__(self, shape: str, detail: str | None = None, *, operation: str = "decode") -> None:
        message = f"unsupported stats format '{shape}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, operation=operation)
        self.shape = shape


class EncryptedEnvelope(BaseModel):
    """Outer record written to ``stats.json`` in encrypted mode."""

    model_config = ConfigDict(populate_by_name=True)

    version: str = FORMAT_VERSION
    encrypted: bool = True
    data: str = Field(..., min_length=1)
    workspace_id: str | None = Field(default=None, alias="workspaceId")


def generate_default_key(workspace_id: str) -> str:
    """Return the hex SHA-256 password every reader can derive from ``workspace_id``."""

    return hashlib.sha256((workspace_id + DEFAULT_KEY_SUFFIX).encode("utf-8")).hexdigest()


def derive_key(password: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(password.encode("utf-8"))


def encrypt(
    plaintext: str,
    password: str,
    *,
    salt: bytes | None = None,
    iv: bytes | None = None,
) -> str:
    """Encrypt ``plaintext`` with AES-256-GCM and return the base64 wire string.

    ``salt`` and ``iv`` are generated fresh unless supplied, which is only
    meant for conformance vectors.
    """

    salt = os.urandom(SALT_LENGTH) if salt is None else salt
    iv = os.urandom(IV_LENGTH) if iv is None else iv
    if len(salt) != SALT_LENGTH or len(iv) != IV_LENGTH:
        raise EnvelopeError("salt and iv must be 32 and 16 bytes", operation="encrypt")

    try:
        key = derive_key(password, salt)
        sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    except (ValueError, TypeError) as exc:
        raise EnvelopeError(type(exc).__name__, operation="encrypt") from exc

    # AESGCM returns ciphertext || tag; the wire format stores the tag first.
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return base64.b64encode(salt + iv + tag + ciphertext).decode("ascii")


def decrypt(encoded: str, password: str) -> str:
    """Reverse :func:`encrypt`. Fails closed on any malformed or forged input."""

    try:
        combined = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeAuthError("malformed base64", operation="decrypt") from exc

    if len(combined) < HEADER_LENGTH:
        raise DecodeAuthError("truncated payload", operation="decrypt")

    salt = combined[:SALT_LENGTH]
    iv = combined[SALT_LENGTH : SALT_LENGTH + IV_LENGTH]
    tag = combined[SALT_LENGTH + IV_LENGTH : HEADER_LENGTH]
    ciphertext = combined[HEADER_LENGTH:]

    key = derive_key(password, salt)
    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as exc:
        raise DecodeAuthError("authentication failed", operation="decrypt") from exc

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeAuthError("payload is not UTF-8", operation="decrypt") from exc


def _version_major(version: Any) -> int | None:
    try:
        return int(str(version).split(".", 1)[0])
    except ValueError:
        return None


def _count(stats: dict[str, Any], key: str) -> int:
    value = stats.get(key, 0)
    return value if isinstance(value, int) and value > 0 else 0


def migrate_record(raw: dict[str, Any]) -> dict[str, Any]:
    """Bring an older plaintext record up to the current shape.

    Pure: the input mapping is not modified.
    """

    record = copy.deepcopy(raw)
    record.pop("encrypted", None)

    version = record.setdefault("version", FORMAT_VERSION)
    major = _version_major(version)
    if major is None or major > SUPPORTED_MAJOR_VERSION:
        raise FormatUnsupportedError(SHAPE_UNSUPPORTED_VERSION, f"version {version!r}")

    if not record.get("workspaceId"):
        raise FormatUnsupportedError(SHAPE_MISSING_WORKSPACE_ID)

    if record.get("files") is None:
        record["files"] = {}
    files = record["files"]
    if not isinstance(files, dict):
        raise FormatUnsupportedError(SHAPE_INVALID_RECORD, "files must be a mapping")
    for stats in files.values():
        if not isinstance(stats, dict):
            continue
        for key in ("humanLines", "aiLines", "humanChars", "aiChars"):
            stats.setdefault(key, 0)
        stats.setdefault("history", [])

    record.setdefault("globalHistory", [])
    record.setdefault("lastUpdated", 0)
    if record.get("dailyStats") is None:
        record["dailyStats"] = []

    if record.get("sessionStats") is None:
        valid = [stats for stats in files.values() if isinstance(stats, dict)]
        record["sessionStats"] = {
            "totalHumanLines": sum(_count(stats, "humanLines") for stats in valid),
            "totalAiLines": sum(_count(stats, "aiLines") for stats in valid),
            "totalHumanChars": sum(_count(stats, "humanChars") for stats in valid),
            "totalAiChars": sum(_count(stats, "aiChars") for stats in valid),
        }
    return record


def _validate(record: dict[str, Any]) -> TrackerData:
    try:
        return TrackerData.from_wire(record)
    except ValidationError as exc:
        raise FormatUnsupportedError(
            SHAPE_INVALID_RECORD, f"{exc.error_count()} validation error(s)"
        ) from exc


def _parse_json(raw: bytes | str, *, operation: str) -> Any:
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise DecodeAuthError("not valid JSON", operation=operation) from exc


def is_envelope(record: dict[str, Any]) -> bool:
    """A record that claims encryption or carries a ``data`` payload is never plaintext."""

    return record.get("encrypted") not in (None, False) or "data" in record


def decode_record(record: Any, password: str | None = None) -> TrackerData:
    """Decode an already-parsed ``stats.json`` document in either mode."""

    if not isinstance(record, dict):
        raise FormatUnsupportedError(SHAPE_NON_OBJECT, type(record).__name__)

    if not is_envelope(record):
        data = _validate(migrate_record(record))
        logger.debug("Loaded plaintext tracker data", extra={"workspace_id": data.workspace_id})
        return data

    claimed = record.get("encrypted")
    if claimed in (None, False):
        raise FormatUnsupportedError(SHAPE_UNENCRYPTED_ENVELOPE)
    if claimed is not True:
        raise DecodeAuthError("malformed envelope")

    try:
        envelope = EncryptedEnvelope.model_validate(record)
    except ValidationError as exc:
        raise DecodeAuthError("malformed envelope") from exc

    if password is None:
        if not envelope.workspace_id:
            raise FormatUnsupportedError(
                SHAPE_MISSING_WORKSPACE_ID, "encrypted envelope carries no workspaceId"
            )
        password = generate_default_key(envelope.workspace_id)

    inner = _parse_json(decrypt(envelope.data, password), operation="decode")
    if not isinstance(inner, dict):
        raise FormatUnsupportedError(SHAPE_NON_OBJECT, "encrypted payload")
    if envelope.workspace_id and not inner.get("workspaceId"):
        inner["workspaceId"] = envelope.workspace_id
    return _validate(migrate_record(inner))


def decode(raw: bytes | str, password: str | None = None) -> TrackerData:
    """Decode the bytes of a ``stats.json`` file, encrypted or plaintext."""

    return decode_record(_parse_json(raw, operation="decode"), password)


def encode(data: TrackerData, password: str | None = None) -> bytes:
    """Encrypt ``data`` into the outer versioned envelope."""

    secret = password if password is not None else generate_default_key(data.workspace_id)
    payload = json.dumps(data.to_wire(), separators=(",", ":"), ensure_ascii=False)
    envelope = EncryptedEnvelope(
        version=FORMAT_VERSION,
        encrypted=True,
        data=encrypt(payload, secret),
        workspace_id=data.workspace_id,
    )
    document = envelope.model_dump(by_alias=True)
    return json.dumps(document, indent=2).encode("utf-8")


def encode_plaintext(data: TrackerData) -> bytes:
    return json.dumps(data.to_wire(), indent=2, ensure_ascii=False).encode("utf-8")


__all__ = [
    "DecodeAuthError",
    "EncryptedEnvelope",
    "EnvelopeError",
    "FormatUnsupportedError",
    "decode",
    "decode_record",
    "decrypt",
    "derive_key",
    "encode",
    "encode_plaintext",
    "encrypt",
    "generate_default_key",
    "is_envelope",
    "migrate_record",
]
