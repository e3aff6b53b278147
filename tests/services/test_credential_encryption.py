"""Tests for AES-256-GCM credential envelopes and key resolution."""

import base64
import os

import pytest

from src.services.credential_encryption import (
    KEY_FILENAME,
    CredentialCipher,
    CredentialDecryptionError,
    decrypt_credentials,
    encrypt_credentials,
    get_or_create_key,
)


@pytest.fixture
def key():
    return os.urandom(32)


class TestEnvelope:

    def test_round_trip_with_aad(self, key):
        envelope = encrypt_credentials(
            {"consumer_key": "ck_live_visible"}, key, aad="store_connection:1"
        )
        assert "ck_live_visible" not in envelope
        assert decrypt_credentials(envelope, key, aad="store_connection:1") == {
            "consumer_key": "ck_live_visible"
        }

    def test_wrong_aad_is_rejected(self, key):
        envelope = encrypt_credentials({"consumer_key": "ck"}, key, aad="store_connection:1")
        with pytest.raises(CredentialDecryptionError):
            decrypt_credentials(envelope, key, aad="store_connection:2")

    def test_wrong_key_is_rejected(self, key):
        envelope = encrypt_credentials({"a": 1}, key)
        with pytest.raises(CredentialDecryptionError):
            decrypt_credentials(envelope, os.urandom(32))

    def test_garbage_is_rejected(self, key):
        with pytest.raises(CredentialDecryptionError):
            decrypt_credentials("not-an-envelope", key)

    def test_nonce_differs_per_encryption(self, key):
        assert encrypt_credentials({"a": 1}, key) != encrypt_credentials({"a": 1}, key)


class TestKeyResolution:

    def test_env_key_takes_precedence(self, monkeypatch, tmp_path):
        raw = os.urandom(32)
        monkeypatch.setenv("STORELOOM_CREDENTIAL_KEY", base64.b64encode(raw).decode())
        assert get_or_create_key(tmp_path) == raw
        assert not (tmp_path / KEY_FILENAME).exists()

    def test_env_key_with_wrong_length_is_rejected(self, monkeypatch, tmp_path):
        monkeypatch.setenv(
            "STORELOOM_CREDENTIAL_KEY", base64.b64encode(b"short").decode()
        )
        with pytest.raises(ValueError, match="invalid length"):
            get_or_create_key(tmp_path)

    def test_key_file_is_generated_once(self, monkeypatch, tmp_path):
        monkeypatch.delenv("STORELOOM_CREDENTIAL_KEY", raising=False)
        first = get_or_create_key(tmp_path)
        second = get_or_create_key(tmp_path)
        assert len(first) == 32
        assert first == second
        assert (tmp_path / KEY_FILENAME).exists()


class TestCredentialCipher:

    def test_seal_and_open(self, key):
        cipher = CredentialCipher(key=key)
        envelope = cipher.seal({"api_key": "secret"}, "generation_key:owner-1")
        assert cipher.open(envelope, "generation_key:owner-1") == {"api_key": "secret"}

    def test_key_is_resolved_lazily(self, monkeypatch, tmp_path):
        monkeypatch.delenv("STORELOOM_CREDENTIAL_KEY", raising=False)
        cipher = CredentialCipher(key_dir=tmp_path)
        assert not (tmp_path / KEY_FILENAME).exists()
        cipher.seal({"a": 1}, "x")
        assert (tmp_path / KEY_FILENAME).exists()
