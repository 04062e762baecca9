"""Key derivation and AES-256-GCM encryption for Cloud Sync backups."""

import hashlib
import os
import re

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .envelope import NONCE_SIZE, SALT_SIZE, decode_envelope, encode_envelope
from .errors import (
    EmptyPassphraseError,
    EmptyPlaintextError,
    InvalidStorageKeyLengthError,
    WrongPassphraseOrCorruptBlobError,
)
from .models import PassphraseValidation

PBKDF2_ITERATIONS = 100_000
KEY_SIZE = 32
STORAGE_KEY_LENGTH = 64
MIN_PASSPHRASE_LENGTH = 12

_HEX_RE = re.compile(r"[0-9a-fA-F]+")


def zero_bytes(b):
    """Best-effort zeroization for mutable buffers that held secrets."""
    if isinstance(b, bytearray):
        for i in range(len(b)):
            b[i] = 0
    elif isinstance(b, memoryview) and not b.readonly:
        b[:] = b"\x00" * len(b)


def derive_encryption_key(passphrase: str, salt: bytes) -> bytearray:
    """Derive a 256-bit AES key from passphrase + salt using PBKDF2-HMAC-SHA256.

    The caller owns the returned buffer and must zero it when done.
    """
    if not passphrase:
        raise EmptyPassphraseError("Passphrase cannot be empty")

    passphrase_bytes = bytearray(passphrase.encode("utf-8"))
    try:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_SIZE,
            salt=bytes(salt),
            iterations=PBKDF2_ITERATIONS,
        )
        return bytearray(kdf.derive(passphrase_bytes))
    finally:
        zero_bytes(passphrase_bytes)


def derive_storage_key(passphrase: str) -> str:
    """SHA-256 of the passphrase as 64 hex chars; a public blob identifier, never key material."""
    if not passphrase:
        raise EmptyPassphraseError("Passphrase cannot be empty")
    return hashlib.sha256(passphrase.encode("utf-8")).hexdigest()


def check_storage_key(storage_key: str) -> str:
    """Return `storage_key` if it is exactly 64 hex characters."""
    if (
        not isinstance(storage_key, str)
        or len(storage_key) != STORAGE_KEY_LENGTH
        or not _HEX_RE.fullmatch(storage_key)
    ):
        length = len(storage_key) if isinstance(storage_key, str) else 0
        raise InvalidStorageKeyLengthError(
            f"Storage key must be {STORAGE_KEY_LENGTH} hex characters (got {length})"
        )
    return storage_key


def validate_passphrase(passphrase: str, confirmation: str) -> PassphraseValidation:
    """Check a newly chosen passphrase: minimum length, confirmation matches."""
    if not passphrase or len(passphrase) < MIN_PASSPHRASE_LENGTH:
        return PassphraseValidation(
            valid=False,
            error=f"Passphrase must be at least {MIN_PASSPHRASE_LENGTH} characters",
        )
    if passphrase != confirmation:
        return PassphraseValidation(valid=False, error="Passphrases do not match")
    return PassphraseValidation(valid=True)


def encrypt(plaintext: str, passphrase: str) -> bytes:
    """Encrypt `plaintext` with a fresh salt and nonce.

    Returns:
        Envelope bytes: salt (16) | nonce (12) | ciphertext + GCM tag.
    """
    if not plaintext:
        raise EmptyPlaintextError("Cannot encrypt empty data")
    if not passphrase:
        raise EmptyPassphraseError("Passphrase cannot be empty")

    salt = os.urandom(SALT_SIZE)
    nonce = os.urandom(NONCE_SIZE)
    key = derive_encryption_key(passphrase, salt)
    try:
        ciphertext = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    finally:
        zero_bytes(key)

    return encode_envelope(salt, nonce, ciphertext)


def decrypt(blob: bytes, passphrase: str) -> str:
    """Decrypt an envelope produced by `encrypt`.

    Raises:
        MalformedBlobError: Blob shorter than the 28-byte header.
        WrongPassphraseOrCorruptBlobError: Tag verification failed.
    """
    if not passphrase:
        raise EmptyPassphraseError("Passphrase cannot be empty")

    salt, nonce, ciphertext = decode_envelope(blob)
    key = derive_encryption_key(passphrase, salt)
    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext, None)
    except InvalidTag as exc:
        raise WrongPassphraseOrCorruptBlobError(
            "Authentication failed - wrong passphrase or corrupted backup"
        ) from exc
    finally:
        zero_bytes(key)

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise WrongPassphraseOrCorruptBlobError("Decrypted backup is not valid UTF-8") from exc
