"""Entry point for the Uploader service."""

import time
import uuid
from typing import Callable, Dict, Tuple, Type

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from common.logging_config import bind_request_id, reset_request_id, setup_logging
from uploader import config
from uploader.database import get_db_connection, init_database
from uploader.dependencies import close_vault_service, open_vault_service
from uploader.exceptions import (
    AllReplicasUnavailableError,
    InvalidReplicationError,
    MalformedUploadError,
    MissingPathError,
    NotFoundError,
    PublishError,
    TransportError,
    UploadTooLargeError,
    VaultException,
)
from uploader.routes.file_routes import router as file_router

logger = setup_logging('uploader')

app = FastAPI(
    title="Folder Vault Uploader",
    description="Folder upload and failover retrieval over an IPFS cluster",
    version="1.0.0"
)

UPLOAD_PATH = "/upload-folder"


@app.middleware("http")
async def enforce_upload_limit(request: Request, call_next):
    """
    Reject uploads whose declared body exceeds the configured ceiling
    before any of it is read.
    """
    if request.method == "POST" and request.url.path == UPLOAD_PATH:
        declared = request.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > config.MAX_UPLOAD_BYTES:
            logger.warning(f"Upload rejected: {declared} bytes exceeds {config.MAX_UPLOAD_BYTES}")
            return JSONResponse(
                status_code=status.HTTP_413_CONTENT_TOO_LARGE,
                content={"detail": f"Upload exceeds {config.MAX_UPLOAD_BYTES} bytes", "code": "UPLOAD_TOO_LARGE"}
            )
    return await call_next(request)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Tag the request with an id, carried by every log line written while it
    is served and echoed back in X-Request-ID.
    """
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    token = bind_request_id(request_id)
    started = time.monotonic()

    try:
        logger.info(f"Request started: {request.method} {request.url.path}")
        response = await call_next(request)
        logger.info(
            f"Request completed: {request.method} {request.url.path} "
            f"status={response.status_code} duration={time.monotonic() - started:.3f}s"
        )
    finally:
        reset_request_id(token)

    response.headers["X-Request-ID"] = request_id
    return response


@app.on_event("startup")
async def startup_event():
    logger.info("Uploader service starting up...")
    init_database()
    logger.info(f"Database initialized [path={config.DATABASE_PATH}]")
    open_vault_service(app)


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Uploader service shutting down...")
    await close_vault_service(app)


# exception type -> (status, code, detail template)
ERROR_RESPONSES: Dict[Type[VaultException], Tuple[int, str, str]] = {
    MissingPathError: (status.HTTP_400_BAD_REQUEST, "MISSING_PATH", "Upload failed: {exc}"),
    MalformedUploadError: (status.HTTP_400_BAD_REQUEST, "MALFORMED_UPLOAD", "Upload failed: {exc}"),
    UploadTooLargeError: (status.HTTP_413_CONTENT_TOO_LARGE, "UPLOAD_TOO_LARGE", "Upload failed: {exc}"),
    InvalidReplicationError: (status.HTTP_500_INTERNAL_SERVER_ERROR, "INVALID_REPLICATION", "Upload failed: {exc}"),
    PublishError: (status.HTTP_500_INTERNAL_SERVER_ERROR, "PUBLISH_FAILED", "Upload failed: {exc}"),
    TransportError: (status.HTTP_500_INTERNAL_SERVER_ERROR, "TRANSPORT_ERROR", "Upload failed: {exc}"),
    NotFoundError: (status.HTTP_404_NOT_FOUND, "FILE_NOT_FOUND", "File not found"),
    AllReplicasUnavailableError: (status.HTTP_500_INTERNAL_SERVER_ERROR, "ALL_REPLICAS_UNAVAILABLE", "Download failed from all nodes"),
    VaultException: (status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", "{exc}"),
}


def _make_handler(exc_type: Type[VaultException]) -> Callable:
    status_code, code, template = ERROR_RESPONSES[exc_type]

    async def handler(request: Request, exc: VaultException):
        detail = template.format(exc=exc)
        if status_code < 500:
            logger.warning(f"{code}: {exc} path={request.url.path}")
        else:
            logger.error(
                f"{code}: {exc} path={request.url.path}",
                exc_info=exc.__cause__ is not None,
            )
        return JSONResponse(status_code=status_code, content={"detail": detail, "code": code})

    handler.__name__ = f"{exc_type.__name__}_handler"
    return handler


for _exc_type in ERROR_RESPONSES:
    app.add_exception_handler(_exc_type, _make_handler(_exc_type))


app.include_router(file_router)


@app.get("/")
async def root():
    return {"message": "Folder Vault Uploader API", "status": "running"}


@app.get("/health")
async def health_check():
    """
    Liveness check for container healthchecks.
    """
    return {"status": "healthy", "service": "uploader"}


@app.get("/ready")
async def ready_check(request: Request):
    """
    Readiness check: the ledger database opens and the cluster API answers.
    """
    try:
        with get_db_connection() as conn:
            conn.execute("SELECT 1 FROM files LIMIT 1")
        db_status = "ok"
    except Exception as e:
        db_status = f"error: {e}"

    service = getattr(request.app.state, "vault_service", None)
    if service is None:
        cluster_status = "error: not initialized"
    elif await service.cluster_client.ping():
        cluster_status = "ok"
    else:
        cluster_status = "error: unreachable"

    ready = db_status == "ok" and cluster_status == "ok"
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"ready": ready, "database": db_status, "cluster": cluster_status}
    )


def main() -> None:
    """
    Start the FastAPI server with uvicorn.
    """
    uvicorn.run(
        "uploader.main:app",
        host=config.UPLOADER_HOST,
        port=config.UPLOADER_PORT,
    )


if __name__ == "__main__":
    main()
