"""Repository layer for data access."""

from uploader.repositories.file_repository import FileRepository
from uploader.repositories.pin_repository import PinRepository

__all__ = [
    "FileRepository",
    "PinRepository",
]
