"""
Token Encryption

Encrypts stored session tokens with Fernet symmetric encryption
(AES-128 in CBC mode with HMAC-SHA256).

KEY ROTATION SUPPORT:
- DB_ENCRYPTION_KEY: Primary key used for all NEW encryptions
- DB_ENCRYPTION_KEY_OLD: Comma-separated list of previous keys for decryption
  Example: DB_ENCRYPTION_KEY_OLD=oldkey1,oldkey2

Generate a key:
    python -c 'from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())'

Encryption is optional. Without a key, tokens are stored as given.
"""
import logging
from typing import Optional, List

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from launcher.core.errors import StorageError

logger = logging.getLogger(__name__)


def generate_encryption_key() -> str:
    """Generate a new Fernet key."""
    return Fernet.generate_key().decode('utf-8')


class TokenCipher:
    """
    Encrypts with the primary key, decrypts with any known key.

    Usage:
        cipher = TokenCipher(primary_key, old_keys=[previous_key])
        stored = cipher.encrypt(token)
        token = cipher.decrypt(stored)
    """

    def __init__(self, primary_key: str, old_keys: Optional[List[str]] = None):
        try:
            self._primary = Fernet(primary_key.encode('utf-8'))
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid encryption key: {e}") from e

        ciphers = [self._primary]
        for i, old_key in enumerate(old_keys or []):
            try:
                ciphers.append(Fernet(old_key.encode('utf-8')))
            except (ValueError, TypeError) as e:
                raise ValueError(f"Invalid old encryption key at position {i + 1}") from e

        # MultiFernet tries keys in order: encrypts with first, decrypts with any
        self._multi = MultiFernet(ciphers)

        if len(ciphers) > 1:
            logger.info(f"Token encryption initialized with {len(ciphers)} keys (1 primary + {len(ciphers) - 1} old)")
        else:
            logger.info("Token encryption initialized")

    @classmethod
    def from_settings(cls, settings) -> Optional["TokenCipher"]:
        """Build a cipher from Settings, or None when no key is configured."""
        if not settings.db_encryption_key:
            return None
        return cls(settings.db_encryption_key, settings.old_encryption_keys)

    def encrypt(self, value: str) -> str:
        return self._primary.encrypt(value.encode('utf-8')).decode('utf-8')

    def decrypt(self, value: str) -> str:
        """
        Decrypt a stored token.

        Raises:
            StorageError: If no known key can decrypt the value
        """
        try:
            return self._multi.decrypt(value.encode('utf-8')).decode('utf-8')
        except InvalidToken as e:
            logger.error("Failed to decrypt stored token - wrong key or corrupted data")
            raise StorageError("Stored token could not be decrypted") from e
