"""Tests for key providers and key configuration."""

from __future__ import annotations

import base64

import pytest

from contribution_vault import (
    ConfigError,
    DecryptionError,
    FieldCipher,
    KeyRing,
    KeyUnavailableError,
    SecureKey,
    Settings,
    StaticKeyProvider,
    UnconfiguredKeyProvider,
    generate_key_material,
    key_provider_from_settings,
)
from contribution_vault.keys import decode_key_material, parse_retired_keys


def _material() -> str:
    return generate_key_material()


def test_generated_material_is_32_bytes():
    assert len(base64.b64decode(generate_key_material())) == 32


def test_static_provider_only_knows_its_key():
    key = SecureKey.generate()
    provider = StaticKeyProvider(key, "main")

    assert provider.current_key().key_id == "main"
    assert provider.key_for("main") is key
    assert provider.key_for("other") is None
    assert provider.key_ids() == ["main"]


@pytest.mark.parametrize("key_id", ["", "a:b", "a|b"])
def test_invalid_key_ids(key_id: str):
    with pytest.raises(ConfigError):
        StaticKeyProvider(SecureKey.generate(), key_id)


def test_short_key_rejected():
    with pytest.raises(ConfigError):
        StaticKeyProvider(SecureKey(b"\x00" * 16))


def test_unconfigured_provider_raises():
    provider = UnconfiguredKeyProvider()
    with pytest.raises(KeyUnavailableError):
        provider.current_key()
    with pytest.raises(KeyUnavailableError):
        provider.key_for("k1")


def test_key_ring_requires_active_key():
    with pytest.raises(KeyUnavailableError):
        KeyRing("k2", {"k1": SecureKey.generate()})


def test_key_ring_decrypts_tokens_from_retired_key():
    old_key = SecureKey.generate()
    old_cipher = FieldCipher(StaticKeyProvider(old_key, "k1"))
    token = old_cipher.encrypt("anna@example.org", "contributions/1/email")

    ring = FieldCipher(KeyRing("k2", {"k1": old_key, "k2": SecureKey.generate()}))

    assert ring.decrypt(token, "contributions/1/email") == "anna@example.org"
    assert ring.key_id_of(ring.encrypt("x")) == "k2"


def test_relabelled_key_id_is_rejected():
    key = SecureKey.generate()
    ring = FieldCipher(KeyRing("k2", {"k1": key, "k2": key}))
    token = ring.encrypt("value")

    # Same key material under another id still fails: the id is authenticated
    with pytest.raises(DecryptionError):
        ring.decrypt("k1" + token[2:])


def test_decode_key_material_errors():
    with pytest.raises(ConfigError):
        decode_key_material("not base64!")
    with pytest.raises(ConfigError):
        decode_key_material(base64.b64encode(b"\x00" * 8).decode())


def test_parse_retired_keys():
    keys = parse_retired_keys(f"old:{_material()}, older:{_material()},")
    assert sorted(keys) == ["old", "older"]

    with pytest.raises(ConfigError):
        parse_retired_keys("missing-separator")


class TestProviderFromSettings:
    def test_no_key_configured(self):
        provider = key_provider_from_settings(Settings())
        assert isinstance(provider, UnconfiguredKeyProvider)

    def test_single_key(self):
        provider = key_provider_from_settings(
            Settings(encryption_key=_material(), encryption_key_id="prod")
        )
        assert isinstance(provider, StaticKeyProvider)
        assert provider.current_key().key_id == "prod"

    def test_with_retired_keys(self):
        provider = key_provider_from_settings(
            Settings(
                encryption_key=_material(),
                encryption_key_id="k2",
                retired_keys=f"k1:{_material()}",
            )
        )
        assert isinstance(provider, KeyRing)
        assert provider.current_key().key_id == "k2"
        assert sorted(provider.key_ids()) == ["k1", "k2"]

    def test_active_id_listed_as_retired(self):
        with pytest.raises(ConfigError):
            key_provider_from_settings(
                Settings(
                    encryption_key=_material(),
                    encryption_key_id="k1",
                    retired_keys=f"k1:{_material()}",
                )
            )
