"""
Encrypted secret storage for mailbox credentials and sync cursors.

Values are encrypted with Fernet (AES-128-CBC with an HMAC-SHA256 tag), so a
ciphertext that was tampered with, or written under a different key, fails
authentication instead of decrypting to garbage. The Fernet key is derived
from the process-wide ENCRYPTION_KEY with PBKDF2.
"""

from __future__ import annotations

import base64
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from loguru import logger

from outreachmail.application.ports.key_value_store import KeyValueStore
from outreachmail.domain.errors import ConfigurationError, VaultIntegrityError

KDF_ITERATIONS = 100_000


def derive_key(secret: str, salt: str) -> bytes:
    """Derive a urlsafe-base64 Fernet key from a passphrase and salt."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt.encode("utf-8"),
        iterations=KDF_ITERATIONS,
    )
    return base64.urlsafe_b64encode(kdf.derive(secret.encode("utf-8")))


class SecretVault:
    """``put``/``get`` encrypted values keyed by ``(scope, key)``.

    Backed by any ``KeyValueStore``; the stored key is ``f"{key}_{scope}"``.
    """

    def __init__(self, backing: KeyValueStore, encryption_key: str | None, salt: str) -> None:
        if not encryption_key:
            # Never run with secrets unprotected
            raise ConfigurationError("ENCRYPTION_KEY is not set.")
        self.backing = backing
        self._fernet = Fernet(derive_key(encryption_key, salt))

    @staticmethod
    def storage_key(scope: str, key: str) -> str:
        return f"{key}_{scope}"

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as e:
            raise VaultIntegrityError(
                "Stored secret failed authentication; wrong ENCRYPTION_KEY or tampered value"
            ) from e

    def put(self, scope: str, key: str, plaintext: str) -> None:
        self.backing.upsert_setting(self.storage_key(scope, key), self.encrypt(plaintext))

    def get(self, scope: str, key: str) -> Optional[str]:
        stored = self.backing.get_setting(self.storage_key(scope, key))
        if stored is None:
            return None
        try:
            return self.decrypt(stored)
        except VaultIntegrityError:
            logger.error(f"Decryption failed for {self.storage_key(scope, key)}")
            raise

    def delete(self, scope: str, key: str) -> None:
        self.backing.delete_setting(self.storage_key(scope, key))
