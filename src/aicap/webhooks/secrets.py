"""At-rest encryption for stored webhook shared secrets (Fernet).

The key comes from WEBHOOK_SECRET_ENCRYPTION_KEY. Decryption happens only
at dispatch time; decrypted values are never logged or returned by list APIs.
"""

from __future__ import annotations

from cryptography.fernet import Fernet, InvalidToken


class SecretDecryptionError(Exception):
    """Stored ciphertext could not be decrypted with the configured key."""


class SecretBox:
    """Symmetric encrypt/decrypt wrapper around a Fernet key."""

    def __init__(self, key: str | bytes) -> None:
        self._fernet = Fernet(key.encode() if isinstance(key, str) else key)

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode()

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, token: str) -> str:
        try:
            return self._fernet.decrypt(token.encode()).decode()
        except InvalidToken as exc:
            raise SecretDecryptionError("Stored webhook secret could not be decrypted") from exc
