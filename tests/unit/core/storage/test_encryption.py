"""Tests for the FieldEncryptor (Fernet-based note encryption)."""

from __future__ import annotations

import pytest
from cryptography.fernet import Fernet

from medly.core.storage.encryption import EncryptionError, FieldEncryptor


@pytest.fixture
def encryptor() -> FieldEncryptor:
    return FieldEncryptor(Fernet.generate_key().decode())


class TestNotes:
    @pytest.mark.parametrize("note", [
        "woke up with cramps, called Dr. Smith",
        "douleur pelvienne, jour 2 (épisode)",
        "x" * 5000,
    ])
    def test_note_round_trip(self, encryptor, note):
        token = encryptor.encrypt(note)
        assert note not in token
        assert encryptor.decrypt(token) == note

    def test_structured_values_round_trip(self, encryptor):
        value = {"tags": ["After eating"], "severity": 6, "flag": True}
        assert encryptor.decrypt(encryptor.encrypt(value)) == value

    def test_missing_note(self, encryptor):
        assert encryptor.encrypt(None) == ""
        assert encryptor.decrypt("") is None

    def test_unserializable_value(self, encryptor):
        with pytest.raises(EncryptionError, match="Encryption failed"):
            encryptor.encrypt(object())

    def test_tokens_are_not_deterministic(self, encryptor):
        assert encryptor.encrypt("same note") != encryptor.encrypt("same note")


class TestKeys:
    @pytest.mark.parametrize("key,message", [
        ("", "must not be empty"),
        ("   ", "must not be empty"),
        ("not-a-valid-fernet-key", "Invalid encryption key"),
    ])
    def test_bad_keys_rejected(self, key, message):
        with pytest.raises(EncryptionError, match=message):
            FieldEncryptor(key)

    def test_generated_key_is_usable(self):
        key = FieldEncryptor.generate_key()
        assert len(key) == 44
        enc = FieldEncryptor(key)
        assert enc.decrypt(enc.encrypt("note")) == "note"

    def test_generated_keys_differ(self):
        assert FieldEncryptor.generate_key() != FieldEncryptor.generate_key()


class TestTampering:
    def test_other_key_cannot_read_notes(self, encryptor):
        token = encryptor.encrypt("private note")
        with pytest.raises(EncryptionError, match="invalid token or wrong key"):
            FieldEncryptor(FieldEncryptor.generate_key()).decrypt(token)

    @pytest.mark.parametrize("mangle", [
        lambda t: t[:-5] + "XXXXX",
        lambda t: "not-a-valid-token",
    ])
    def test_corrupt_tokens_raise(self, encryptor, mangle):
        with pytest.raises(EncryptionError):
            encryptor.decrypt(mangle(encryptor.encrypt("private note")))
