"""
Key providers for field encryption.

This module provides:
- KeyVersion: Active key together with its identifier
- KeyProvider: Abstract key source used by FieldCipher
- StaticKeyProvider: Single process-wide key
- KeyRing: Several valid keys, one active for encryption
- UnconfiguredKeyProvider: Fails every call with KeyUnavailableError

Key identifiers are written into every token and bound as associated data, so
retired keys stay usable for decryption after a rotation.
"""

from __future__ import annotations

import base64
import binascii
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional

from .crypto import AES_256_KEY_SIZE, TOKEN_SEPARATOR, SecureKey, generate_random_bytes
from .errors import ConfigError, KeyUnavailableError

if TYPE_CHECKING:
    from .config import Settings

DEFAULT_KEY_ID = "k1"


@dataclass(frozen=True)
class KeyVersion:
    """Key used for new encryptions."""

    key_id: str
    key: SecureKey


class KeyProvider(ABC):
    """
    Abstract source of symmetric keys.

    Providers are read-only during normal operation and may be shared freely
    between tasks and threads.
    """

    @abstractmethod
    def current_key(self) -> KeyVersion:
        """Return the key to encrypt with."""
        ...

    @abstractmethod
    def key_for(self, key_id: str) -> Optional[SecureKey]:
        """Return the key for ``key_id``, or None if it is unknown."""
        ...

    def key_ids(self) -> List[str]:
        """List every key id this provider can decrypt with."""
        return [self.current_key().key_id]


def _check_key_id(key_id: str) -> str:
    if not key_id or TOKEN_SEPARATOR in key_id or "|" in key_id:
        raise ConfigError(f"Invalid key id: {key_id!r}")
    return key_id


def _check_key(key: SecureKey) -> SecureKey:
    if len(key) != AES_256_KEY_SIZE:
        raise ConfigError(
            f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(key)}"
        )
    return key


class StaticKeyProvider(KeyProvider):
    """A single key for the lifetime of the process."""

    def __init__(self, key: SecureKey, key_id: str = DEFAULT_KEY_ID) -> None:
        self._version = KeyVersion(key_id=_check_key_id(key_id), key=_check_key(key))

    def current_key(self) -> KeyVersion:
        return self._version

    def key_for(self, key_id: str) -> Optional[SecureKey]:
        if key_id == self._version.key_id:
            return self._version.key
        return None


class KeyRing(KeyProvider):
    """
    Several concurrently valid keys.

    Only the active key encrypts; every key in the ring decrypts.
    """

    def __init__(self, active_key_id: str, keys: Mapping[str, SecureKey]) -> None:
        self._keys: Dict[str, SecureKey] = {
            _check_key_id(key_id): _check_key(key) for key_id, key in keys.items()
        }
        if active_key_id not in self._keys:
            raise KeyUnavailableError(f"Active key {active_key_id!r} is not in the key ring")
        self._active = KeyVersion(key_id=active_key_id, key=self._keys[active_key_id])

    def current_key(self) -> KeyVersion:
        return self._active

    def key_for(self, key_id: str) -> Optional[SecureKey]:
        return self._keys.get(key_id)

    def key_ids(self) -> List[str]:
        return list(self._keys)


class UnconfiguredKeyProvider(KeyProvider):
    """Stand-in used when no key is configured. Never falls back to plaintext."""

    def current_key(self) -> KeyVersion:
        raise KeyUnavailableError("No encryption key configured")

    def key_for(self, key_id: str) -> Optional[SecureKey]:
        raise KeyUnavailableError("No encryption key configured")

    def key_ids(self) -> List[str]:
        return []


def decode_key_material(encoded: str) -> SecureKey:
    """
    Decode base64 key material.

    Raises:
        ConfigError: If the value is not base64 or not 32 bytes long
    """
    try:
        raw = base64.b64decode(encoded.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigError(f"Key material is not valid base64: {e}")
    return _check_key(SecureKey(raw))


def generate_key_material() -> str:
    """Return fresh base64-encoded 32-byte key material."""
    return base64.standard_b64encode(generate_random_bytes(AES_256_KEY_SIZE)).decode("ascii")


def parse_retired_keys(value: str) -> Dict[str, SecureKey]:
    """
    Parse ``id:base64,id:base64`` into a key mapping.

    Raises:
        ConfigError: On a malformed entry
    """
    keys: Dict[str, SecureKey] = {}
    for entry in value.split(","):
        entry = entry.strip()
        if not entry:
            continue
        key_id, sep, material = entry.partition(TOKEN_SEPARATOR)
        if not sep:
            raise ConfigError(f"Retired key entry must be 'id:base64', got {key_id!r}")
        keys[_check_key_id(key_id.strip())] = decode_key_material(material)
    return keys


def key_provider_from_settings(settings: Settings) -> KeyProvider:
    """
    Build the key provider described by configuration.

    Returns UnconfiguredKeyProvider when no key is set, so that every
    encrypt/decrypt call fails fast instead of storing plaintext.
    """
    if not settings.encryption_key:
        return UnconfiguredKeyProvider()

    active = decode_key_material(settings.encryption_key)
    if not settings.retired_keys:
        return StaticKeyProvider(active, settings.encryption_key_id)

    keys = parse_retired_keys(settings.retired_keys)
    if settings.encryption_key_id in keys:
        raise ConfigError(
            f"Key id {settings.encryption_key_id!r} is both active and retired"
        )
    keys[settings.encryption_key_id] = active
    return KeyRing(settings.encryption_key_id, keys)
