"""Encryption utilities for stored provider tokens"""
import logging
from functools import lru_cache
from typing import Optional

from cryptography.fernet import Fernet

from dailyreel.core.config import settings

logger = logging.getLogger(__name__)

KEY_HELP = (
    "Generate one with: python -c \"from cryptography.fernet import Fernet; "
    "print(Fernet.generate_key().decode())\""
)


@lru_cache(maxsize=1)
def get_cipher() -> Fernet:
    """Build the Fernet cipher from ENCRYPTION_KEY (validated on first use)"""
    key = settings.ENCRYPTION_KEY
    if not key:
        raise ValueError(f"ENCRYPTION_KEY environment variable is required. {KEY_HELP}")
    try:
        return Fernet(key.encode())
    except ValueError as e:
        raise ValueError(
            f"Invalid ENCRYPTION_KEY format: {e}. "
            f"The key must be 32 bytes, base64-encoded (URL-safe), resulting in 44 characters. {KEY_HELP}"
        )


def encrypt(plaintext: str) -> str:
    """Encrypt a string"""
    if not plaintext:
        return ""
    return get_cipher().encrypt(plaintext.encode()).decode()


def decrypt(ciphertext: str) -> Optional[str]:
    """Decrypt a string

    Raises:
        ValueError: If decryption fails (invalid token, wrong key, corrupted data)
    """
    if not ciphertext:
        return None
    try:
        return get_cipher().decrypt(ciphertext.encode()).decode()
    except Exception as e:
        logger.error(f"Decryption failed: {type(e).__name__}: {str(e)}")
        raise ValueError(f"Decryption failed: {type(e).__name__}: {str(e)}")
