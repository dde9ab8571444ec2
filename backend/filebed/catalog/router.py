"""FastAPI router for catalog management.

Endpoints:
    GET    /api/manage/list              - Page through committed files
    DELETE /api/manage/delete/{file_key} - Delete a file from its backend and the catalog
"""
import logging
from typing import Optional

from fastapi import APIRouter
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from filebed.uploads.service import DeleteRefused, get_upload_service

from .schemas import DEFAULT_LIST_LIMIT, CatalogPage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/manage", tags=["catalog"])


@router.get("/list", response_model=CatalogPage)
async def list_files(
    limit: int = DEFAULT_LIST_LIMIT,
    cursor: Optional[str] = None,
    prefix: Optional[str] = None,
    storage: Optional[str] = None,
):
    """List committed files.

    Args:
        limit:   Page size (default 100, max 1000).
        cursor:  Cursor returned by the previous page.
        prefix:  Key prefix filter (``r2:`` selects blob-backed files).
        storage: ``r2``, ``telegram``/``kv``, or omitted for all.
    """
    service = get_upload_service()
    if service is None:
        return JSONResponse({"error": "Upload service not available"}, status_code=503)

    return await run_in_threadpool(
        service.catalog.list, limit=limit, cursor=cursor, prefix=prefix, storage=storage
    )


@router.delete("/delete/{file_key:path}")
async def delete_file(file_key: str):
    """Delete a committed file.

    Blob-backed files are removed from the bucket first. Relay-backed files
    need the stored Telegram message id; without a confirmed message
    deletion the catalog record is kept and 409 is returned.
    """
    service = get_upload_service()
    if service is None:
        return JSONResponse({"error": "Upload service not available"}, status_code=503)

    logger.info("Deleting file: %s", file_key)
    try:
        record = await run_in_threadpool(service.delete_file, file_key)
    except DeleteRefused as exc:
        return JSONResponse({"success": False, "error": str(exc)}, status_code=409)

    if record is None:
        return JSONResponse({"success": False, "error": "File not found"}, status_code=404)

    return {
        "success": True,
        "fileId": file_key,
        "storageType": record.storage_type,
    }
