"""Notion token encryption using libsodium (PyNaCl)."""

import base64
import logging

import nacl.exceptions
import nacl.secret
import nacl.utils

from app.config import Settings

logger = logging.getLogger(__name__)


class TokenDecryptionError(Exception):
    """Stored ciphertext could not be decrypted with the configured key."""


class CryptoService:
    """Symmetric encryption using NaCl SecretBox (XSalsa20-Poly1305)."""

    def __init__(self, settings: Settings) -> None:
        key_b64 = settings.encryption_key.get_secret_value()
        if not key_b64:
            if settings.app_env == "production":
                raise RuntimeError("ENCRYPTION_KEY must be set in production")
            # Ephemeral key: stored tokens will not survive a restart
            logger.warning("No encryption key configured; using an ephemeral dev key.")
            key = nacl.utils.random(nacl.secret.SecretBox.KEY_SIZE)
        else:
            key = base64.b64decode(key_b64)
        self._box = nacl.secret.SecretBox(key)

    def encrypt(self, plaintext: str) -> bytes:
        """Encrypt a string and return ciphertext bytes (nonce prepended)."""
        return self._box.encrypt(plaintext.encode("utf-8"))

    def decrypt(self, ciphertext: bytes) -> str:
        try:
            return self._box.decrypt(ciphertext).decode("utf-8")
        except nacl.exceptions.CryptoError as e:
            raise TokenDecryptionError("Stored token could not be decrypted") from e


_crypto_service: CryptoService | None = None


def get_crypto_service(settings: Settings) -> CryptoService:
    global _crypto_service
    if _crypto_service is None:
        _crypto_service = CryptoService(settings)
    return _crypto_service
