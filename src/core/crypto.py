"""AES-256-CBC encryption for the stored Notion token.

Token format is ``base64(iv):base64(ciphertext)`` so a value can be decrypted
without any side storage. The key is SHA-256 of the configured passphrase.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os
import secrets
from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from core.errors import CryptoFormatError

IV_LENGTH = 16
_SEPARATOR = ":"

__all__ = ["SecretCipher", "generate_secret_key", "IV_LENGTH"]


def _derive_key(passphrase: str) -> bytes:
    return hashlib.sha256(passphrase.encode("utf-8")).digest()


class SecretCipher:
    def __init__(self, passphrase: str) -> None:
        if not passphrase:
            raise ValueError("passphrase must not be empty")
        self._key = _derive_key(passphrase)

    def encrypt(self, plaintext: Optional[str]) -> Optional[str]:
        if not plaintext:
            return None
        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        data = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        encrypted = encryptor.update(data) + encryptor.finalize()
        return (
            base64.b64encode(iv).decode("ascii")
            + _SEPARATOR
            + base64.b64encode(encrypted).decode("ascii")
        )

    def decrypt(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        iv_part, sep, body_part = token.partition(_SEPARATOR)
        if not sep or not iv_part or not body_part:
            raise CryptoFormatError("Invalid encrypted text format")
        try:
            iv = base64.b64decode(iv_part, validate=True)
            encrypted = base64.b64decode(body_part, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise CryptoFormatError("Invalid encrypted text encoding") from exc
        if len(iv) != IV_LENGTH or not encrypted or len(encrypted) % IV_LENGTH:
            raise CryptoFormatError("Invalid encrypted text length")
        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        try:
            data = decryptor.update(encrypted) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plain = unpadder.update(data) + unpadder.finalize()
            return plain.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as exc:
            # wrong passphrase surfaces as a padding error
            raise CryptoFormatError("Unable to decrypt stored secret") from exc


def generate_secret_key() -> str:
    """Random 32-character hex passphrase suitable for ``SECRET_KEY``."""
    return secrets.token_hex(16)
