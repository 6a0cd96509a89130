"""Tests for the token cipher."""

import pytest

from inbox_bridge import config, crypto
from inbox_bridge.crypto import TokenCipher, get_token_cipher
from inbox_bridge.errors import ConfigurationError, TokenCipherError


class TestTokenCipher:

    @pytest.mark.parametrize("plaintext", [
        "ya29.a0AfH6SMBx",
        "x",
        "ünïcödé tøken ✉",
        "a" * 1000,
    ])
    def test_decrypt_inverts_encrypt(self, cipher, plaintext):
        assert cipher.decrypt(cipher.encrypt(plaintext)) == plaintext

    def test_equal_plaintexts_give_different_ciphertexts(self, cipher):
        first = cipher.encrypt("same-token")
        second = cipher.encrypt("same-token")
        assert first != second
        assert cipher.decrypt(first) == cipher.decrypt(second) == "same-token"

    def test_ciphertext_format_is_hex_iv_and_hex_data(self, cipher):
        iv_hex, sep, data_hex = cipher.encrypt("token").partition(":")
        assert sep == ":"
        assert len(iv_hex) == 32
        bytes.fromhex(iv_hex)
        assert len(bytes.fromhex(data_hex)) % 16 == 0

    @pytest.mark.parametrize("value", ["", None, "not-a-valid-format"])
    def test_unset_or_separatorless_values_decrypt_to_empty(self, cipher, value):
        assert cipher.decrypt(value) == ""

    @pytest.mark.parametrize("value", [
        "zz:zz",                       # not hex
        "00" * 16 + ":abcd",           # not a whole block
        "abcd:" + "00" * 16,           # IV too short
    ])
    def test_corrupted_values_raise(self, cipher, value):
        with pytest.raises(TokenCipherError):
            cipher.decrypt(value)

    def test_cipher_error_is_internal(self):
        assert TokenCipherError("x").status_code == 500

    def test_empty_secret_is_rejected(self):
        with pytest.raises(ConfigurationError):
            TokenCipher("")


class TestGetTokenCipher:

    def test_requires_encryption_key(self, monkeypatch):
        monkeypatch.setattr(crypto, "_cipher", None)
        monkeypatch.setattr(config, "ENCRYPTION_KEY", None)
        with pytest.raises(ConfigurationError):
            get_token_cipher()

    def test_builds_once(self, monkeypatch):
        monkeypatch.setattr(crypto, "_cipher", None)
        monkeypatch.setattr(config, "ENCRYPTION_KEY", "another-key")
        first = get_token_cipher()
        assert get_token_cipher() is first
        assert first.decrypt(first.encrypt("abc")) == "abc"
