"""FileBed Backend Application.

This is the main entry point for the FileBed backend service.
FileBed stores files too large for a single request by accepting them in
chunks, then commits them to an S3-compatible bucket (R2) or to a Telegram
chat used as file storage.

Modules:
    - staging: DuckDB staging store for sessions and chunk blobs
    - uploads: session manager, chunk ingestor, completion engine, routes
    - backends: blob-store and Telegram relay adapters
    - catalog: DuckDB catalog of committed files
"""
import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from filebed.catalog.router import router as catalog_router
from filebed.config import get_config
from filebed.uploads.exceptions import UploadError
from filebed.uploads.router import (
    request_validation_handler,
    router as uploads_router,
    upload_error_handler,
)
from filebed.uploads.service import UploadService, get_upload_service, set_upload_service

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
# botocore.auth logs the full SigV4 canonical request, and httpx logs every
# request URL, which for the Bot API includes the bot token.
for _noisy in (
    "botocore",
    "boto3",
    "urllib3",
    "urllib3.connectionpool",
    "httpx",
    "httpcore",
    "httpcore.http11",
    "httpcore.connection",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


async def _sweep_staging(service: UploadService, interval_seconds: int) -> None:
    """Drop expired staging rows periodically."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(service.store.purge_expired)
        except Exception as exc:
            logger.warning("Staging sweep failed: %s", exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in filebed.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    sweeper = None
    if get_upload_service() is None:
        service = UploadService.from_config(config)
        set_upload_service(service)
        sweeper = asyncio.create_task(
            _sweep_staging(service, max(60, config.upload.staging_ttl_seconds // 4))
        )
        logger.info(
            "Upload service ready: chunk_size=%d max_file_size=%d ttl=%ds",
            config.upload.chunk_size,
            config.upload.max_file_size,
            config.upload.staging_ttl_seconds,
        )

    yield  # Application runs here

    # Shutdown
    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        service = get_upload_service()
        if service is not None:
            service.close()
        set_upload_service(None)
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="FileBed API",
    description="Chunked file uploads committed to R2 or Telegram",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.allowed_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(UploadError, upload_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)

# Register all routers
app.include_router(uploads_router)
app.include_router(catalog_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}


def run() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    config = get_config()
    uvicorn.run(
        "filebed.main:app",
        host=config.server.host,
        port=config.server.port,
        reload=config.server.debug,
        log_level=config.logging.level.lower(),
    )
