"""Pydantic schemas for API requests and responses."""

from uploader.schemas.files import (
    UploadFolderResponse,
    FileRecordResponse,
    PinDescriptorResponse,
    FileDetailResponse,
    DeleteFileResponse,
)
from uploader.schemas.common import ErrorResponse

__all__ = [
    "UploadFolderResponse",
    "FileRecordResponse",
    "PinDescriptorResponse",
    "FileDetailResponse",
    "DeleteFileResponse",
    "ErrorResponse",
]
