"""Searchable encryption for PII columns.

Each protected value is stored twice: an AES-256-GCM ciphertext for
confidentiality and an HMAC-SHA256 search hash of the normalized value for
exact-match lookups. Both are computed from the same normalized input, so
``search_hash(x)`` built at query time equals the hash written by
``protect(x)``.

Ciphertext format (base64url, unpadded): nonce (12 bytes) || ciphertext || tag (16 bytes)
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import os
from dataclasses import dataclass
from enum import StrEnum
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from src.config import Settings, get_settings
from src.security.errors import ConfigurationError, DecryptionFailed, InvalidInput

NONCE_SIZE = 12
MIN_CIPHERTEXT_SIZE = NONCE_SIZE + 16

_ENCRYPTION_INFO = b"cecms/field-encryption/v1"
_SEARCH_HASH_INFO = b"cecms/search-hash/v1"


class FieldKind(StrEnum):
    EMAIL = "email"
    PHONE = "phone"
    NIN = "nin"


@dataclass(frozen=True)
class DataProtectionConfig:
    encryption_key: bytes
    hash_key: bytes

    def __post_init__(self) -> None:
        if len(self.encryption_key) != 32:
            raise ConfigurationError("encryption key must be exactly 32 bytes")
        if not self.hash_key:
            raise ConfigurationError("search hash key must not be empty")

    @classmethod
    def from_secret(cls, secret: str) -> DataProtectionConfig:
        material = secret.encode("utf-8")
        return cls(
            encryption_key=_derive_key(material, _ENCRYPTION_INFO),
            hash_key=_derive_key(material, _SEARCH_HASH_INFO),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> DataProtectionConfig:
        secret = settings.data_protection_key
        if not secret or not secret.strip():
            raise ConfigurationError("DATA_PROTECTION_KEY environment variable is not set")
        return cls.from_secret(secret)


@dataclass(frozen=True)
class ProtectedValue:
    ciphertext: str
    search_hash: str


def _derive_key(material: bytes, info: bytes) -> bytes:
    return HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=info).derive(material)


def _b64encode(value: bytes) -> str:
    return base64.urlsafe_b64encode(value).rstrip(b"=").decode("ascii")


def _b64decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(f"{value}{padding}".encode("ascii"))


@lru_cache(maxsize=1)
def get_data_protection_config() -> DataProtectionConfig:
    return DataProtectionConfig.from_settings(get_settings())


def normalize(raw_value: str, kind: FieldKind | str) -> str:
    kind = FieldKind(kind)
    value = raw_value.strip()
    if kind is FieldKind.EMAIL:
        value = value.lower()
    if not value:
        raise InvalidInput(f"{kind.value} value is empty")
    return value


def detect_login_kind(login: str) -> FieldKind:
    return FieldKind.EMAIL if "@" in login else FieldKind.PHONE


def search_hash(raw_value: str, kind: FieldKind | str, *, config: DataProtectionConfig) -> str:
    normalized = normalize(raw_value, kind)
    return hmac.new(config.hash_key, normalized.encode("utf-8"), hashlib.sha256).hexdigest()


def encrypt(raw_value: str, kind: FieldKind | str, *, config: DataProtectionConfig) -> str:
    normalized = normalize(raw_value, kind)
    nonce = os.urandom(NONCE_SIZE)
    sealed = AESGCM(config.encryption_key).encrypt(nonce, normalized.encode("utf-8"), None)
    return _b64encode(nonce + sealed)


def protect(raw_value: str, kind: FieldKind | str, *, config: DataProtectionConfig) -> ProtectedValue:
    return ProtectedValue(
        ciphertext=encrypt(raw_value, kind, config=config),
        search_hash=search_hash(raw_value, kind, config=config),
    )


def unprotect(ciphertext: str, kind: FieldKind | str, *, config: DataProtectionConfig) -> str:
    FieldKind(kind)
    try:
        payload = _b64decode(ciphertext)
    except (binascii.Error, ValueError) as exc:
        raise DecryptionFailed("ciphertext is not valid base64url") from exc

    if len(payload) < MIN_CIPHERTEXT_SIZE:
        raise DecryptionFailed(
            f"ciphertext too short: {len(payload)} bytes (minimum {MIN_CIPHERTEXT_SIZE})"
        )

    nonce, sealed = payload[:NONCE_SIZE], payload[NONCE_SIZE:]
    try:
        plaintext = AESGCM(config.encryption_key).decrypt(nonce, sealed, None)
    except InvalidTag as exc:
        raise DecryptionFailed("invalid key or tampered ciphertext") from exc

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecryptionFailed("decrypted value is not valid UTF-8") from exc
