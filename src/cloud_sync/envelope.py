"""Blob layout and backup payload (de)serialization."""

import json
import time
from typing import Any, Iterable

from pydantic import ValidationError

from .errors import (
    InvalidBackupPayloadError,
    MalformedBlobError,
    MissingCriticalTableError,
    UnsupportedEnvelopeVersionError,
)
from .models import ENVELOPE_VERSION, BackupPayload

SALT_SIZE = 16
NONCE_SIZE = 12
HEADER_SIZE = SALT_SIZE + NONCE_SIZE  # 28

# Tables a restore refuses to proceed without.
CRITICAL_TABLES = ("users", "symptoms", "medications", "triggers", "foods")


def encode_envelope(salt: bytes, nonce: bytes, ciphertext: bytes) -> bytes:
    """Concatenate salt | nonce | ciphertext into a blob."""
    if len(salt) != SALT_SIZE:
        raise ValueError(f"salt must be {SALT_SIZE} bytes (got {len(salt)})")
    if len(nonce) != NONCE_SIZE:
        raise ValueError(f"nonce must be {NONCE_SIZE} bytes (got {len(nonce)})")
    return bytes(salt) + bytes(nonce) + bytes(ciphertext)


def decode_envelope(blob: bytes) -> tuple[bytes, bytes, bytes]:
    """Split a blob into (salt, nonce, ciphertext).

    Raises:
        MalformedBlobError: Blob shorter than 28 bytes.
    """
    if blob is None or len(blob) < HEADER_SIZE:
        size = 0 if blob is None else len(blob)
        raise MalformedBlobError(
            f"Blob too small ({size} bytes, minimum {HEADER_SIZE} bytes)"
        )
    blob = bytes(blob)
    return blob[:SALT_SIZE], blob[SALT_SIZE:HEADER_SIZE], blob[HEADER_SIZE:]


def serialize_backup_payload(tables: dict[str, list[dict[str, Any]]], schema_version: int) -> str:
    """Build the JSON snapshot from a table name -> rows map.

    Returns:
        JSON text stamped with the current time (epoch ms) and schema version.
    """
    payload = {
        "version": ENVELOPE_VERSION,
        "timestamp": int(time.time() * 1000),
        "schemaVersion": schema_version,
        "data": {name: list(rows) for name, rows in tables.items()},
    }
    try:
        text = json.dumps(payload, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise InvalidBackupPayloadError(f"Failed to generate valid JSON: {exc}") from exc

    # Rows must survive a parse round trip unchanged.
    if json.loads(text) != payload:
        raise InvalidBackupPayloadError("Exported data does not round-trip through JSON")
    return text


def parse_backup_payload(plaintext: str) -> dict:
    """Parse decrypted plaintext into a dict."""
    try:
        parsed = json.loads(plaintext)
    except json.JSONDecodeError as exc:
        raise InvalidBackupPayloadError(f"Backup is not valid JSON: {exc.msg}") from exc
    if not isinstance(parsed, dict):
        raise InvalidBackupPayloadError("Backup data is not an object")
    return parsed


def validate_backup_payload(
    parsed: dict,
    critical_tables: Iterable[str] = CRITICAL_TABLES,
) -> BackupPayload:
    """Check structural completeness of a parsed payload.

    Does not check that individual rows are semantically valid.

    Raises:
        UnsupportedEnvelopeVersionError: `version` missing or not supported.
        InvalidBackupPayloadError: `data` or `timestamp` malformed.
        MissingCriticalTableError: A critical table is absent.
    """
    version = parsed.get("version")
    if version is None:
        raise UnsupportedEnvelopeVersionError("Missing envelope version")
    if isinstance(version, bool) or version != ENVELOPE_VERSION:
        raise UnsupportedEnvelopeVersionError(
            f"Unsupported envelope version: {version!r} (only version {ENVELOPE_VERSION} supported)"
        )

    data = parsed.get("data")
    if not isinstance(data, dict):
        raise InvalidBackupPayloadError("Missing or invalid data object")

    for table in critical_tables:
        if table not in data:
            raise MissingCriticalTableError(table)

    try:
        return BackupPayload.model_validate(parsed)
    except ValidationError as exc:
        raise InvalidBackupPayloadError(f"Backup structure is invalid: {exc.error_count()} errors") from exc
