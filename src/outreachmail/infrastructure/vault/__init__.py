"""Encrypted secret storage."""

from outreachmail.infrastructure.vault.secret_vault import SecretVault, derive_key

__all__ = ["SecretVault", "derive_key"]
