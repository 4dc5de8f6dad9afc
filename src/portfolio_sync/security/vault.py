"""Symmetric encryption of broker credentials at rest.

Blobs are ``base64(nonce || ciphertext || tag)`` produced with AES-256-GCM and
a fresh 96-bit nonce per call. The key is injected by the caller and never
persisted here.
"""
import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from portfolio_sync.brokers.core.exceptions import (AuthenticationError,
                                                    ConfigurationError)

KEY_SIZE = 32
NONCE_SIZE = 12
ENCRYPTION_KEY_ENV = "ENCRYPTION_KEY"


class SecretVault:
    """Encrypts and decrypts credential strings with a process-wide key."""

    def __init__(self, key: bytes) -> None:
        """Initialize the vault.

        Args:
            key: Raw 256-bit key.

        Raises:
            ConfigurationError: If the key is not exactly 32 bytes.
        """
        if not key or len(key) != KEY_SIZE:
            raise ConfigurationError(
                f"Encryption key must be {KEY_SIZE} bytes, got {len(key or b'')}"
            )
        self._aead = AESGCM(key)

    @classmethod
    def from_base64(cls, encoded_key: str | None) -> "SecretVault":
        """Build a vault from a base64-encoded key, failing fast if it is absent."""
        if not encoded_key:
            raise ConfigurationError(f"{ENCRYPTION_KEY_ENV} not set in environment")
        try:
            key = base64.b64decode(encoded_key, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ConfigurationError(f"{ENCRYPTION_KEY_ENV} is not valid base64") from exc
        return cls(key)

    @classmethod
    def from_env(cls) -> "SecretVault":
        """Build a vault from the ENCRYPTION_KEY environment variable."""
        return cls.from_base64(os.getenv(ENCRYPTION_KEY_ENV))

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a string and return the transport-safe blob."""
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + ciphertext).decode("ascii")

    def decrypt(self, blob: str) -> str:
        """Decrypt a blob produced by encrypt().

        Raises:
            AuthenticationError: If the blob is malformed, was tampered with,
                or was encrypted with a different key.
        """
        try:
            raw = base64.b64decode(blob, validate=True)
        except (binascii.Error, ValueError, TypeError) as exc:
            raise AuthenticationError("Stored credential is not valid base64") from exc
        if len(raw) <= NONCE_SIZE:
            raise AuthenticationError("Stored credential is truncated")
        nonce, ciphertext = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
        try:
            plaintext = self._aead.decrypt(nonce, ciphertext, None)
        except InvalidTag as exc:
            raise AuthenticationError(
                "Stored credential could not be decrypted, please reconfigure it"
            ) from exc
        return plaintext.decode("utf-8")


def generate_key() -> str:
    """Return a fresh base64-encoded 256-bit key for ENCRYPTION_KEY."""
    return base64.b64encode(AESGCM.generate_key(bit_length=KEY_SIZE * 8)).decode("ascii")
