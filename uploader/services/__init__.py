"""Service layer for business logic."""

from uploader.services.vault_service import VaultService

__all__ = [
    "VaultService",
]
