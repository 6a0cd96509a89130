"""Symmetric encryption for provider tokens at rest.

Tokens are stored as ``hex(iv):hex(ciphertext)`` using AES-256-CBC with a
key derived from the server secret via scrypt. A fresh IV is generated for
every call to ``encrypt``, so equal plaintexts never produce equal
ciphertexts.
"""

import logging
import os
from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from . import config
from .errors import ConfigurationError, TokenCipherError

logger = logging.getLogger(__name__)

KEY_LENGTH = 32  # AES-256
IV_LENGTH = 16   # AES block size

# scrypt cost parameters (N=16384, r=8, p=1)
SCRYPT_N = 2 ** 14
SCRYPT_R = 8
SCRYPT_P = 1


def derive_key(secret: str, salt: str) -> bytes:
    """Derive a 32-byte AES key from the configured secret."""
    kdf = Scrypt(
        salt=salt.encode("utf-8"),
        length=KEY_LENGTH,
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
    )
    return kdf.derive(secret.encode("utf-8"))


class TokenCipher:
    """Encrypts and decrypts token strings with a key derived once at construction."""

    def __init__(self, secret: str, salt: str = "salt") -> None:
        if not secret:
            raise ConfigurationError("ENCRYPTION_KEY must be configured")
        self._key = derive_key(secret, salt)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a string.

        Args:
            plaintext: Text to encrypt

        Returns:
            ``hex(iv):hex(ciphertext)``

        Raises:
            TokenCipherError: If the cipher backend fails
        """
        try:
            iv = os.urandom(IV_LENGTH)
            padder = padding.PKCS7(algorithms.AES.block_size).padder()
            padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
            encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
            encrypted = encryptor.update(padded) + encryptor.finalize()
        except (ValueError, TypeError) as e:
            raise TokenCipherError(f"Failed to encrypt token: {e!s}") from e
        return f"{iv.hex()}:{encrypted.hex()}"

    def decrypt(self, ciphertext: Optional[str]) -> str:
        """Decrypt a value produced by ``encrypt``.

        Empty values and values without an ``iv:data`` separator decrypt to
        an empty string so that unset token fields read as "no token".

        Raises:
            TokenCipherError: If the value looks encrypted but cannot be
                decrypted (corrupted data, wrong key, bad padding)
        """
        if not ciphertext or ":" not in ciphertext:
            return ""

        iv_hex, _, data_hex = ciphertext.partition(":")
        try:
            iv = bytes.fromhex(iv_hex)
            encrypted = bytes.fromhex(data_hex)
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(encrypted) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except ValueError as e:
            logger.error(f"Token decryption failed: {e!s}")
            raise TokenCipherError(f"Failed to decrypt token: {e!s}") from e


_cipher: Optional[TokenCipher] = None


def get_token_cipher() -> TokenCipher:
    """Return the process-wide cipher, deriving its key on first use."""
    global _cipher
    if _cipher is None:
        if not config.ENCRYPTION_KEY:
            raise ConfigurationError("ENCRYPTION_KEY must be defined in the environment")
        _cipher = TokenCipher(config.ENCRYPTION_KEY, config.ENCRYPTION_SALT)
    return _cipher
