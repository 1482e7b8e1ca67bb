"""Folder upload, download, listing and deletion API routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse

from common.constants import MAX_LIST_LIMIT, UPLOAD_FIELD_NAME
from uploader import config
from uploader.dependencies import get_vault_service
from uploader.schemas.common import ErrorResponse
from uploader.schemas.files import (
    DeleteFileResponse,
    FileDetailResponse,
    FileRecordResponse,
    PinDescriptorResponse,
    UploadFolderResponse,
)
from uploader.services.vault_service import VaultService
from uploader.types import FileRecord
from uploader.upload_receiver import FolderUploadReceiver
from uploader.utils import default_folder_name, get_client_ip

router = APIRouter(tags=["Files"])


def _record_response(record: FileRecord, replication) -> FileRecordResponse:
    return FileRecordResponse(
        file_id=record.file_id,
        filename=record.filename,
        cid=record.cid,
        size=record.size,
        uploadedAt=record.uploaded_at.isoformat(),
        ip=record.origin_ip,
        replication=replication,
    )


# Documents the body read by FolderUploadReceiver; FastAPI does not parse it.
UPLOAD_FORM_SCHEMA = {
    "requestBody": {
        "required": True,
        "content": {
            "multipart/form-data": {
                "schema": {
                    "type": "object",
                    "properties": {
                        UPLOAD_FIELD_NAME: {
                            "type": "array",
                            "items": {"type": "string", "format": "binary"},
                            "description": "One part per file; each part's filename is its relative path",
                        },
                        "folderName": {
                            "type": "string",
                            "description": "Root folder name (default: upload-<epoch ms>)",
                        },
                    },
                    "required": [UPLOAD_FIELD_NAME],
                }
            }
        },
    }
}


@router.post(
    "/upload-folder",
    response_model=UploadFolderResponse,
    responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    openapi_extra=UPLOAD_FORM_SCHEMA,
)
async def upload_folder(
    request: Request,
    service: VaultService = Depends(get_vault_service),
):
    """
    Upload a directory tree and pin it on the cluster.

    The body is read part by part into holding files, which are then moved
    into the staged tree, so no file is held in memory and none is copied.
    There is no limit on the number of files unless VAULT_MAX_UPLOAD_FILES
    is set.

    Returns:
        - message: Confirmation text
        - cid: Root CID of the uploaded tree

    Raises:
        - 400: No files received, a malformed body, or a part has a missing/unsafe path
        - 413: Upload larger than the configured ceiling
        - 500: Staging or publishing failed
    """
    origin_ip = get_client_ip(request.headers, request.client.host if request.client else None)

    async with service.assembler.holding_area() as holding:
        receiver = FolderUploadReceiver(
            holding,
            max_upload_bytes=service.assembler.max_upload_bytes,
            max_files=config.MAX_UPLOAD_FILES,
        )
        upload = await receiver.receive(request.headers.get("content-type", ""), request.stream())

        if not upload.entries:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No files received"
            )

        record = await service.upload_folder(
            upload.entries,
            upload.fields.get("folderName") or default_folder_name(),
            origin_ip,
        )

    return UploadFolderResponse(message="Folder uploaded and pinned", cid=record.cid)


@router.get(
    "/download/{cid}",
    responses={500: {"model": ErrorResponse}},
)
async def download(
    cid: str,
    format: Optional[str] = Query(None, pattern="^(tar|car)$", description="Gateway export format for directories"),
    service: VaultService = Depends(get_vault_service),
):
    """
    Stream content by CID from the first healthy gateway.

    Returns:
        - StreamingResponse with Content-Disposition: attachment

    Raises:
        - 500: Every gateway errored or served an HTML error page
    """
    content = await service.download(cid, archive_format=format)

    headers = {"Content-Disposition": content.content_disposition}
    if content.content_length:
        headers["Content-Length"] = content.content_length

    return StreamingResponse(
        content.body,
        media_type=content.content_type,
        headers=headers,
    )


@router.get("/files", response_model=List[FileRecordResponse])
async def list_files(
    limit: int = Query(config.LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
    service: VaultService = Depends(get_vault_service),
):
    """
    Most recent uploads first, each with best-effort live pin status.

    A record whose status could not be fetched carries
    ``replication: {"error": ...}`` instead of failing the listing.
    """
    results = await service.list_files(limit)
    return [_record_response(record, replication) for record, replication in results]


@router.get(
    "/files/{cid}",
    response_model=FileDetailResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_file(
    cid: str,
    service: VaultService = Depends(get_vault_service),
):
    record, descriptor, replication = await service.get_file(cid)

    response = _record_response(record, replication)
    pin = None
    if descriptor is not None:
        pin = PinDescriptorResponse(folderName=descriptor.folder_name, rootCid=descriptor.root_cid)

    return FileDetailResponse(**response.model_dump(), pin=pin)


@router.delete(
    "/files/{cid}",
    response_model=DeleteFileResponse,
    responses={404: {"model": ErrorResponse}},
)
async def delete_file(
    cid: str,
    service: VaultService = Depends(get_vault_service),
):
    """
    Forget a CID and ask the cluster to unpin it.

    Raises:
        - 404: CID not in the ledger
    """
    records = await service.delete_file(cid)
    return DeleteFileResponse(message="File deleted", deleted_count=len(records))
