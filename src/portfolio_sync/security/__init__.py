"""Credential encryption."""
from portfolio_sync.security.vault import SecretVault, generate_key

__all__ = ["SecretVault", "generate_key"]
