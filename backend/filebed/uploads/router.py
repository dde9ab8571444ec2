"""FastAPI router for chunked and direct uploads.

Endpoints:
    POST /api/chunked-upload/init      - Create an upload session
    GET  /api/chunked-upload/init      - Session snapshot for resume/progress
    POST /api/chunked-upload/chunk     - Upload one chunk (multipart form)
    POST /api/chunked-upload/complete  - Reassemble and commit the file
    POST /upload                       - Direct, non-chunked upload

Errors are reported as ``{"error": "...", "code": "...", ...details}`` with
the status carried by the UploadError subclass.
"""
import logging
from typing import Optional

from fastapi import APIRouter, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .exceptions import InvalidRequest, UploadError
from .schemas import (
    ChunkProgress,
    CompletedUpload,
    CompleteUploadRequest,
    InitUploadRequest,
    InitUploadResponse,
)
from .service import UploadService, get_upload_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["uploads"])


async def upload_error_handler(request: Request, exc: UploadError) -> JSONResponse:
    """Render an UploadError as a JSON error body."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render a malformed request body or form as InvalidRequest (400)."""
    fields = [".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()]
    fields = [f for f in fields if f]
    message = f"Invalid field(s): {', '.join(fields)}" if fields else "Malformed request"
    logger.info("%s %s rejected: %s", request.method, request.url.path, message)
    error = InvalidRequest(message)
    return JSONResponse(error.to_dict(), status_code=error.status_code)


def _get_service() -> Optional[UploadService]:
    service = get_upload_service()
    if service is None:
        logger.warning("[uploads] Upload service not initialised")
    return service


_UNAVAILABLE = {"error": "Upload service not available"}


def _parse_chunk_index(raw: Optional[str]) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise InvalidRequest("chunkIndex must be an integer") from None


@router.post("/api/chunked-upload/init", response_model=InitUploadResponse)
async def init_upload(request: InitUploadRequest):
    """Create a chunked upload session.

    Example::

        POST /api/chunked-upload/init
        { "fileName": "a.png", "fileSize": 12000000, "fileType": "image/png",
          "totalChunks": 3, "storageMode": "r2" }

        200 OK
        { "success": true, "uploadId": "9f2c...", "chunkSize": 5242880 }
    """
    service = _get_service()
    if service is None:
        return JSONResponse(_UNAVAILABLE, status_code=503)

    session_id, chunk_size = await run_in_threadpool(
        service.sessions.create_session,
        request.file_name,
        request.file_size,
        request.total_chunks,
        request.file_type,
        request.storage_mode,
    )
    return InitUploadResponse(upload_id=session_id, chunk_size=chunk_size)


@router.get("/api/chunked-upload/init")
async def get_upload_status(uploadId: Optional[str] = None):
    """Return the session snapshot so the client can resume missing chunks."""
    service = _get_service()
    if service is None:
        return JSONResponse(_UNAVAILABLE, status_code=503)

    session = await run_in_threadpool(service.sessions.get_session, uploadId)
    snapshot = session.model_dump(by_alias=True, mode="json")
    # Resume clients expect the catalog spelling (r2 / telegram).
    snapshot["storageMode"] = session.storage_backend.storage_type
    return {"success": True, **snapshot}


@router.post("/api/chunked-upload/chunk", response_model=ChunkProgress)
async def upload_chunk(
    uploadId: Optional[str] = Form(None),
    chunkIndex: Optional[str] = Form(None),
    chunk: Optional[UploadFile] = File(None),
):
    """Store one chunk. Re-sending an already received index is a no-op."""
    service = _get_service()
    if service is None:
        return JSONResponse(_UNAVAILABLE, status_code=503)
    if not uploadId or chunk is None:
        raise InvalidRequest("uploadId, chunkIndex and chunk are required")

    index = _parse_chunk_index(chunkIndex)
    data = await chunk.read()
    return await run_in_threadpool(service.ingestor.ingest_chunk, uploadId, index, data)


@router.post("/api/chunked-upload/complete", response_model=CompletedUpload)
async def complete_upload(request: CompleteUploadRequest):
    """Reassemble the chunks, commit the file and return its reference."""
    service = _get_service()
    if service is None:
        return JSONResponse(_UNAVAILABLE, status_code=503)

    return await run_in_threadpool(service.completion.complete_session, request.upload_id)


@router.post("/upload")
async def direct_upload(
    file: Optional[UploadFile] = File(None),
    storageMode: Optional[str] = Form(None),
):
    """Upload a small file in one request.

    Returns ``[{"src": "/file/<key>"}]``.
    """
    service = _get_service()
    if service is None:
        return JSONResponse(_UNAVAILABLE, status_code=503)
    if file is None:
        raise InvalidRequest("No file uploaded")

    content = await file.read()
    result = await run_in_threadpool(
        service.upload_file,
        file.filename,
        content,
        file.content_type,
        storageMode,
    )
    logger.info("Direct upload stored %s (%d bytes)", result.file_key, result.file_size)
    return [{"src": result.src}]
