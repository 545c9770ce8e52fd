"""
Credential encryption and log redaction.

Tenant access tokens are stored encrypted with Fernet. The key is derived
from the ENCRYPTION_KEY environment variable with PBKDF2.

Usage:
    from shopsync.platform.secrets import encrypt_secret, decrypt_secret, redact_secrets

    tenant.access_token_encrypted = encrypt_secret(access_token)
    access_token = decrypt_secret(tenant.access_token_encrypted)
    safe = redact_secrets({"access_token": "shpat_...", "shop": "x"})
"""

import base64
import hashlib
import logging
import os
import re
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

_KDF_SALT = b"shopsync-credential-salt"
_KDF_ITERATIONS = 100000

# Keys whose values must never reach logs
SECRET_KEY_PATTERN = re.compile(
    r"(access[_-]?token|api[_-]?key|secret|password|authorization|credentials)",
    re.IGNORECASE,
)

# Shopify token formats
SECRET_VALUE_PATTERNS = [
    re.compile(r"(shpat_[a-fA-F0-9]{32,})"),  # Admin API access tokens
    re.compile(r"(shpss_[a-zA-Z0-9]{24,})"),  # Shared secrets
    re.compile(r"(Bearer\s+[a-zA-Z0-9._-]+)"),
]

REDACTED_VALUE = "[REDACTED]"


class EncryptionError(Exception):
    """Raised when encryption/decryption operations fail."""
    pass


def _derive_key(encryption_key: str) -> bytes:
    derived = hashlib.pbkdf2_hmac(
        "sha256",
        encryption_key.encode(),
        _KDF_SALT,
        _KDF_ITERATIONS,
        dklen=32,  # Fernet requires 32 bytes
    )
    return base64.urlsafe_b64encode(derived)


def _get_fernet(encryption_key: Optional[str] = None) -> Fernet:
    key = encryption_key or os.getenv("ENCRYPTION_KEY")
    if not key:
        raise EncryptionError(
            "No encryption key configured. Set the ENCRYPTION_KEY environment variable."
        )
    return Fernet(_derive_key(key))


def encrypt_secret(plaintext: str, encryption_key: Optional[str] = None) -> str:
    """
    Encrypt a secret for storage.

    Raises:
        ValueError: If plaintext is empty
        EncryptionError: If no key is configured
    """
    if not plaintext:
        raise ValueError("Cannot encrypt empty string")
    return _get_fernet(encryption_key).encrypt(plaintext.encode()).decode()


def decrypt_secret(ciphertext: str, encryption_key: Optional[str] = None) -> str:
    """
    Decrypt a stored secret.

    Raises:
        EncryptionError: If no key is configured or the ciphertext is invalid
    """
    if not ciphertext:
        raise EncryptionError("Cannot decrypt empty value")
    try:
        return _get_fernet(encryption_key).decrypt(ciphertext.encode()).decode()
    except InvalidToken as e:
        logger.error("Failed to decrypt secret - key mismatch or corrupted value")
        raise EncryptionError("Invalid encrypted value") from e


def redact_value(value: str) -> str:
    """Replace token-shaped substrings in a string."""
    for pattern in SECRET_VALUE_PATTERNS:
        value = pattern.sub(REDACTED_VALUE, value)
    return value


def redact_secrets(data: Any) -> Any:
    """
    Recursively redact secrets from dicts, lists and strings before logging.
    """
    if isinstance(data, dict):
        return {
            k: REDACTED_VALUE if SECRET_KEY_PATTERN.search(str(k)) else redact_secrets(v)
            for k, v in data.items()
        }
    if isinstance(data, (list, tuple)):
        return type(data)(redact_secrets(v) for v in data)
    if isinstance(data, str):
        return redact_value(data)
    return data
