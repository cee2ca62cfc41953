"""
Cryptographic primitives for field-level AES-256-GCM encryption.

This module provides:
- SecureKey: Secure key wrapper with automatic zeroization
- EncryptedData: Encrypted payload with nonce, tag and ciphertext
- AesGcmCipher: AES-256-GCM encryption/decryption operations
- FieldCipher: String-in, string-out codec for individual record fields

Token format produced by FieldCipher:

    <key_id>:<base64(nonce(12) || tag(16) || ciphertext(n))>

The key id and an optional context string (for example
``contributions/<record id>/email``) are bound as Additional Authenticated
Data, so a token moved to another record or field fails to decrypt.
"""

from __future__ import annotations

import base64
import binascii
import secrets
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import CryptoError, DecryptionError, EncryptionError

if TYPE_CHECKING:
    from .keys import KeyProvider

# Cryptographic constants
AES_256_KEY_SIZE: int = 32  # 256 bits
NONCE_SIZE: int = 12  # 96 bits (standard for AES-GCM)
TAG_SIZE: int = 16  # 128 bits (authentication tag)

TOKEN_SEPARATOR = ":"


class SecureKey:
    """
    A 32-byte field key held in a mutable buffer.

    The buffer is overwritten when the object is collected. CPython gives no
    timing guarantee for that, and copies handed out by ``as_bytes`` are not
    wiped.
    """

    __slots__ = ("_material",)

    def __init__(self, material: bytes | bytearray) -> None:
        if not isinstance(material, (bytes, bytearray)):
            raise CryptoError("Key must be bytes or bytearray")
        self._material = bytearray(material)

    @classmethod
    def generate(cls) -> SecureKey:
        return cls(generate_random_bytes(AES_256_KEY_SIZE))

    def as_bytes(self) -> bytes:
        return bytes(self._material)

    def __len__(self) -> int:
        return len(self._material)

    def __repr__(self) -> str:
        return "SecureKey([REDACTED])"

    def __del__(self) -> None:
        material = getattr(self, "_material", None)
        if material is not None:
            material[:] = bytes(len(material))


@dataclass
class EncryptedData:
    """
    Encrypted data container.

    ``ciphertext`` is the AESGCM output, i.e. encrypted bytes followed by the
    16-byte authentication tag. The serialized blob moves the tag in front of
    the encrypted bytes: nonce || tag || ciphertext.
    """

    nonce: bytes  # 12 bytes
    ciphertext: bytes  # Ciphertext + 16-byte auth tag

    @property
    def tag(self) -> bytes:
        return self.ciphertext[-TAG_SIZE:]

    def to_blob(self) -> bytes:
        """Serialize to nonce || tag || encrypted bytes."""
        return self.nonce + self.tag + self.ciphertext[:-TAG_SIZE]

    @classmethod
    def from_blob(cls, blob: bytes) -> EncryptedData:
        """
        Parse from nonce || tag || encrypted bytes.

        Raises:
            DecryptionError: If blob is too small to hold a nonce and a tag
        """
        min_size = NONCE_SIZE + TAG_SIZE
        if len(blob) < min_size:
            raise DecryptionError(
                f"Encrypted blob too small: expected at least {min_size} bytes, got {len(blob)}"
            )
        nonce = blob[:NONCE_SIZE]
        tag = blob[NONCE_SIZE:min_size]
        return cls(nonce=nonce, ciphertext=blob[min_size:] + tag)

    def to_base64(self) -> str:
        """Encode as base64 string."""
        return base64.standard_b64encode(self.to_blob()).decode("ascii")

    @classmethod
    def from_base64(cls, encoded: str) -> EncryptedData:
        """
        Decode from base64 string.

        Only canonical base64 is accepted, so no two distinct strings decode
        to the same blob.

        Raises:
            DecryptionError: If decoding fails or data is invalid
        """
        try:
            decoded = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError(f"Base64 decode error: {e}")

        if base64.standard_b64encode(decoded).decode("ascii") != encoded:
            raise DecryptionError("Non-canonical base64 encoding")

        return cls.from_blob(decoded)


def _aesgcm(key: SecureKey) -> AESGCM:
    if len(key) != AES_256_KEY_SIZE:
        raise CryptoError(
            f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(key)}"
        )
    return AESGCM(key.as_bytes())


class AesGcmCipher:
    """AES-256-GCM over raw bytes; associated data must match on both sides."""

    @staticmethod
    def encrypt(
        key: SecureKey,
        plaintext: bytes,
        aad: Optional[bytes] = None,
    ) -> EncryptedData:
        """Seal ``plaintext`` under a fresh random nonce."""
        aesgcm = _aesgcm(key)
        nonce = generate_random_bytes(NONCE_SIZE)
        try:
            sealed = aesgcm.encrypt(nonce, plaintext, aad)
        except (TypeError, ValueError, OverflowError) as e:
            raise EncryptionError(f"Encryption error: {e}") from e
        return EncryptedData(nonce=nonce, ciphertext=sealed)

    @staticmethod
    def decrypt(
        key: SecureKey,
        encrypted: EncryptedData,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """
        Open a sealed payload.

        Raises:
            CryptoError: If the key is not 32 bytes
            DecryptionError: If the nonce is malformed or authentication
                fails (wrong key, wrong associated data or altered bytes)
        """
        aesgcm = _aesgcm(key)
        if len(encrypted.nonce) != NONCE_SIZE:
            raise DecryptionError(
                f"Invalid nonce size: expected {NONCE_SIZE}, got {len(encrypted.nonce)}"
            )
        try:
            return aesgcm.decrypt(encrypted.nonce, encrypted.ciphertext, aad)
        except InvalidTag:
            # Same message for every authentication failure
            raise DecryptionError("Decryption failed") from None


class FieldCipher:
    """
    Encrypts and decrypts individual string fields.

    Every call draws a fresh nonce, so encrypting the same value twice yields
    two different tokens. Equality search over tokens is therefore impossible
    and callers filter on decrypted values.
    """

    def __init__(self, key_provider: KeyProvider) -> None:
        self._key_provider = key_provider

    @property
    def key_provider(self) -> KeyProvider:
        return self._key_provider

    @staticmethod
    def _aad(key_id: str, context: Optional[str]) -> bytes:
        return f"{key_id}|{context or ''}".encode("utf-8")

    def encrypt(self, plaintext: str, context: Optional[str] = None) -> str:
        """
        Encrypt a string field under the active key.

        Args:
            plaintext: Field value
            context: Optional binding label, e.g. ``contributions/<id>/email``

        Returns:
            Token string ``<key_id>:<base64 blob>``

        Raises:
            KeyUnavailableError: If no key is configured
            EncryptionError: If the value cannot be UTF-8 encoded
        """
        if not isinstance(plaintext, str):
            raise EncryptionError(
                f"Plaintext must be str, got {type(plaintext).__name__}"
            )
        version = self._key_provider.current_key()

        try:
            data = plaintext.encode("utf-8")
        except UnicodeEncodeError as e:
            raise EncryptionError(f"Plaintext is not valid UTF-8: {e.reason}")

        encrypted = AesGcmCipher.encrypt(
            version.key, data, self._aad(version.key_id, context)
        )
        return f"{version.key_id}{TOKEN_SEPARATOR}{encrypted.to_base64()}"

    def decrypt(self, token: str, context: Optional[str] = None) -> str:
        """
        Decrypt a token produced by :meth:`encrypt`.

        Args:
            token: Token string
            context: Binding label used at encryption time

        Returns:
            Original plaintext

        Raises:
            KeyUnavailableError: If no key is configured
            DecryptionError: If the token is malformed, uses an unknown key,
                was altered, or belongs to another context
        """
        if not isinstance(token, str):
            raise DecryptionError(f"Token must be str, got {type(token).__name__}")

        key_id, sep, payload = token.partition(TOKEN_SEPARATOR)
        if not sep or not key_id or not payload:
            raise DecryptionError("Malformed token")

        key = self._key_provider.key_for(key_id)
        if key is None:
            raise DecryptionError("Token references an unknown key")

        encrypted = EncryptedData.from_base64(payload)
        data = AesGcmCipher.decrypt(key, encrypted, self._aad(key_id, context))

        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            raise DecryptionError("Decrypted bytes are not valid UTF-8")

    def key_id_of(self, token: str) -> Optional[str]:
        """Return the key id a token was encrypted under, if well-formed."""
        key_id, sep, _ = token.partition(TOKEN_SEPARATOR)
        return key_id if sep and key_id else None


def generate_random_bytes(length: int) -> bytes:
    """Cryptographically secure random bytes (nonces and key material)."""
    return secrets.token_bytes(length)
