"""Pydantic schemas for upload, listing and deletion endpoints."""

from typing import Any, Optional
from pydantic import BaseModel


class UploadFolderResponse(BaseModel):
    """Response model for folder upload."""
    message: str
    cid: str


class FileRecordResponse(BaseModel):
    """Response model for a ledger record."""
    file_id: str
    filename: str
    cid: str
    size: int
    uploadedAt: str
    ip: str
    replication: Any = None


class PinDescriptorResponse(BaseModel):
    """Response model for a pin index entry."""
    folderName: str
    rootCid: str


class FileDetailResponse(FileRecordResponse):
    """Response model for a single CID with its pin index entry."""
    pin: Optional[PinDescriptorResponse] = None


class DeleteFileResponse(BaseModel):
    """Response model for file deletion."""
    message: str
    deleted_count: int

