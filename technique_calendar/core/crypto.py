"""
Authenticated encryption for OAuth tokens stored at rest.

Tokens are sealed with AES-256-GCM. Every call to ``encrypt`` draws a fresh
96-bit IV; the ciphertext (with its 16-byte tag appended) and the IV are
stored base64 encoded in separate columns.
"""
import base64
import binascii
import logging
import os
from functools import lru_cache
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from technique_calendar.core.config import settings
from technique_calendar.schemas.calendar import EncryptedSecret

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
IV_LENGTH = 12
TAG_LENGTH = 16


class DecryptionError(Exception):
    """Raised when a stored secret cannot be authenticated or decoded."""


def _b64decode(value: str, what: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise DecryptionError(f"Malformed {what}") from e


class TokenCipher:
    """AES-GCM cipher bound to one 256-bit key."""

    def __init__(self, key: str):
        try:
            raw_key = base64.b64decode(key, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise ValueError("Token encryption key must be base64 encoded") from e
        if len(raw_key) != KEY_LENGTH:
            raise ValueError(
                f"Token encryption key must decode to {KEY_LENGTH} bytes"
            )
        self._aesgcm = AESGCM(raw_key)

    @staticmethod
    def generate_key() -> str:
        return base64.b64encode(AESGCM.generate_key(bit_length=256)).decode("ascii")

    def encrypt(self, plaintext: str) -> EncryptedSecret:
        iv = os.urandom(IV_LENGTH)
        ciphertext = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        return EncryptedSecret(
            ciphertext=base64.b64encode(ciphertext).decode("ascii"),
            iv=base64.b64encode(iv).decode("ascii"),
        )

    def decrypt(self, ciphertext: str, iv: str) -> str:
        raw_iv = _b64decode(iv, "IV")
        if len(raw_iv) != IV_LENGTH:
            raise DecryptionError("Malformed IV")

        raw_ciphertext = _b64decode(ciphertext, "ciphertext")
        if len(raw_ciphertext) < TAG_LENGTH:
            raise DecryptionError("Ciphertext is truncated")

        try:
            plaintext = self._aesgcm.decrypt(raw_iv, raw_ciphertext, None)
        except InvalidTag as e:
            raise DecryptionError("Ciphertext failed authentication") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted token is not valid UTF-8") from e

    def open_stored(self, ciphertext: Optional[str], iv: Optional[str]) -> Optional[str]:
        """
        Read a token column pair as stored in the database.

        Returns None when nothing is stored. A value without an IV predates
        encryption and is returned as-is.
        """
        if ciphertext is None:
            if iv is not None:
                raise DecryptionError("IV stored without ciphertext")
            return None
        if iv is None:
            # TODO: drop plaintext support once every stored token carries an IV
            logger.warning("Read a token stored without encryption")
            return ciphertext
        return self.decrypt(ciphertext, iv)


def encrypt(plaintext: str, key: str) -> EncryptedSecret:
    return TokenCipher(key).encrypt(plaintext)


def decrypt(ciphertext: str, iv: str, key: str) -> str:
    return TokenCipher(key).decrypt(ciphertext, iv)


@lru_cache(maxsize=1)
def get_token_cipher() -> TokenCipher:
    """Process-wide cipher built from TOKEN_ENCRYPTION_KEY."""
    if not settings.TOKEN_ENCRYPTION_KEY:
        raise RuntimeError("TOKEN_ENCRYPTION_KEY is not configured")
    return TokenCipher(settings.TOKEN_ENCRYPTION_KEY)
