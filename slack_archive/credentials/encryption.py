"""
Credential encryption utilities.

SECURITY REQUIREMENTS:
- Uses Fernet symmetric encryption keyed from the ENCRYPTION_KEY env var
- No plaintext tokens outside process memory
- Clear error messages without exposing sensitive data

Usage:
    from slack_archive.credentials.encryption import TokenCipher

    cipher = TokenCipher.from_env()

    # Encrypt before storage
    encrypted = cipher.encrypt(access_token)

    # Decrypt for use (in memory only)
    plaintext = cipher.decrypt(encrypted)
"""

import base64
import logging
import os
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes

logger = logging.getLogger(__name__)

ENCRYPTION_KEY_ENV = "ENCRYPTION_KEY"


class CredentialEncryptionError(Exception):
    """Raised when credential encryption/decryption fails."""

    def __init__(self, message: str, operation: str = "unknown"):
        self.operation = operation
        super().__init__(message)


def _derive_fernet_key(secret: str) -> bytes:
    """Derive a 32-byte urlsafe Fernet key from an arbitrary secret string."""
    digest = hashes.Hash(hashes.SHA256())
    digest.update(secret.encode("utf-8"))
    return base64.urlsafe_b64encode(digest.finalize())


class TokenCipher:
    """Fernet cipher for OAuth tokens stored at rest."""

    def __init__(self, secret: str):
        if not secret:
            raise CredentialEncryptionError(
                "Encryption key not configured. Set ENCRYPTION_KEY environment variable.",
                operation="init",
            )
        self._fernet = Fernet(_derive_fernet_key(secret))

    @classmethod
    def from_env(cls, env_var: str = ENCRYPTION_KEY_ENV) -> "TokenCipher":
        return cls(os.getenv(env_var, ""))

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a token for storage.

        Raises:
            ValueError: If plaintext is empty
        """
        if not plaintext:
            raise ValueError("Cannot encrypt empty token")
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a stored token.

        SECURITY: The decrypted value must NEVER be logged.

        Raises:
            CredentialEncryptionError: If the ciphertext is corrupt or the key changed
            ValueError: If ciphertext is empty
        """
        if not ciphertext:
            raise ValueError("Cannot decrypt empty ciphertext")
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except InvalidToken as e:
            logger.error(
                "Token decryption failed",
                extra={"operation": "decrypt_token", "error_type": type(e).__name__}
            )
            raise CredentialEncryptionError(
                "Failed to decrypt token. Token may be corrupted or encryption key changed.",
                operation="decrypt"
            ) from e

    def encrypt_optional(self, plaintext: Optional[str]) -> Optional[str]:
        return self.encrypt(plaintext) if plaintext else None

    def decrypt_optional(self, ciphertext: Optional[str]) -> Optional[str]:
        return self.decrypt(ciphertext) if ciphertext else None
