"""AES-256-GCM encryption for bank account details."""

import os
from functools import lru_cache

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from baytup.config import settings

NONCE_SIZE = 12


class EncryptionService:
    """AES-256-GCM encryption for payout bank account numbers and RIBs."""

    def __init__(self, key: bytes) -> None:
        """Initialize with 32-byte key for AES-256."""
        if len(key) != 32:
            raise ValueError("Encryption key must be 32 bytes for AES-256")
        self._aesgcm = AESGCM(key)

    def encrypt(self, plaintext: str) -> bytes:
        """Encrypt a string and return nonce + ciphertext."""
        nonce = os.urandom(NONCE_SIZE)
        return nonce + self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)

    def decrypt(self, ciphertext: bytes) -> str:
        """Decrypt nonce + ciphertext back to the original string."""
        if len(ciphertext) < NONCE_SIZE:
            raise ValueError("Ciphertext too short")
        nonce, encrypted = ciphertext[:NONCE_SIZE], ciphertext[NONCE_SIZE:]
        return self._aesgcm.decrypt(nonce, encrypted, None).decode("utf-8")


@lru_cache
def get_encryption_service() -> EncryptionService:
    """Get cached encryption service instance."""
    # Pad or truncate the configured key to 32 bytes
    key = settings.encryption_key.encode("utf-8")[:32].ljust(32, b"\0")
    return EncryptionService(key)


def encrypt_sensitive(plaintext: str) -> bytes:
    """Encrypt sensitive data."""
    return get_encryption_service().encrypt(plaintext)


def decrypt_sensitive(ciphertext: bytes) -> str:
    """Decrypt sensitive data."""
    return get_encryption_service().decrypt(ciphertext)
