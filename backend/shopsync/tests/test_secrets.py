"""
Tests for credential encryption and log redaction.
"""

import pytest

from shopsync.platform.secrets import (
    REDACTED_VALUE,
    EncryptionError,
    decrypt_secret,
    encrypt_secret,
    redact_secrets,
)


class TestEncryption:

    def test_round_trip(self):
        ciphertext = encrypt_secret("shpat_abc123")
        assert ciphertext != "shpat_abc123"
        assert decrypt_secret(ciphertext) == "shpat_abc123"

    def test_wrong_key_fails(self):
        ciphertext = encrypt_secret("shpat_abc123", encryption_key="key-one")
        with pytest.raises(EncryptionError):
            decrypt_secret(ciphertext, encryption_key="key-two")

    def test_empty_values(self):
        with pytest.raises(ValueError):
            encrypt_secret("")
        with pytest.raises(EncryptionError):
            decrypt_secret("")

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("ENCRYPTION_KEY", raising=False)
        with pytest.raises(EncryptionError):
            encrypt_secret("shpat_abc123")


class TestRedaction:

    def test_secret_keys_redacted(self):
        redacted = redact_secrets({
            "access_token": "shpat_abc123",
            "shop": "test-store.myshopify.com",
            "nested": [{"password": "hunter2"}],
        })
        assert redacted["access_token"] == REDACTED_VALUE
        assert redacted["shop"] == "test-store.myshopify.com"
        assert redacted["nested"][0]["password"] == REDACTED_VALUE

    def test_non_string_values_pass_through(self):
        assert redact_secrets(42) == 42
        assert redact_secrets(None) is None
