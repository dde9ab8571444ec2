"""Pydantic schemas for the chunked-upload lifecycle.

This module defines:
- StorageBackend: the closed set of durable backends a session commits to
- UploadSession: the staged record of one in-progress chunked upload
- InitUploadRequest / InitUploadResponse: create-session wire models
- ChunkProgress: ingest-chunk result
- CompletedUpload: complete-session result

Wire names are camelCase (``uploadId``, ``totalChunks``, ...) to match the
browser uploader; Python code uses the snake_case field names.
"""
import time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class StorageBackend(str, Enum):
    """Durable storage destinations.

    - BLOB: S3-compatible object store (R2)
    - RELAY: Telegram Bot API
    """
    BLOB = "blob"
    RELAY = "relay"

    @classmethod
    def parse(cls, value: Optional[str]) -> "StorageBackend":
        """Map a client-supplied storage mode to a backend.

        Accepts the canonical names plus the legacy ``r2`` / ``telegram``
        spellings. Anything else (including None) selects RELAY.
        """
        normalized = (value or "").strip().lower()
        if normalized in ("blob", "r2"):
            return cls.BLOB
        return cls.RELAY

    @property
    def storage_type(self) -> str:
        """Catalog spelling of the backend (``r2`` / ``telegram``)."""
        return "r2" if self is StorageBackend.BLOB else "telegram"


class SessionStatus(str, Enum):
    PENDING = "pending"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadSession(_CamelModel):
    """One in-progress chunked upload as stored in staging."""
    session_id: str = Field(..., alias="uploadId")
    file_name: str
    file_size: int
    content_type: str = Field("application/octet-stream", alias="fileType")
    total_chunks: int
    storage_backend: StorageBackend = Field(StorageBackend.RELAY, alias="storageMode")
    uploaded_chunks: List[int] = Field(default_factory=list)
    status: SessionStatus = SessionStatus.PENDING
    created_at: int = Field(default_factory=lambda: int(time.time() * 1000))
    relay_message_id: Optional[int] = None

    @property
    def progress(self) -> float:
        if self.total_chunks <= 0:
            return 0.0
        return round(len(self.uploaded_chunks) / self.total_chunks * 100, 1)

    def missing_chunks(self) -> List[int]:
        received = set(self.uploaded_chunks)
        return [i for i in range(self.total_chunks) if i not in received]


class InitUploadRequest(_CamelModel):
    """Request body for POST /api/chunked-upload/init.

    Every field is optional at the schema level; the session manager reports
    missing values as InvalidRequest.
    """
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    total_chunks: Optional[int] = None
    storage_mode: Optional[str] = None


class InitUploadResponse(_CamelModel):
    success: bool = True
    upload_id: str
    chunk_size: int


class CompleteUploadRequest(_CamelModel):
    upload_id: Optional[str] = None


class ChunkProgress(_CamelModel):
    """Result of ingesting one chunk."""
    success: bool = True
    chunk_index: int
    uploaded_chunks: List[int]
    progress: float
    duplicate: bool = False


class CompletedUpload(_CamelModel):
    """Durable reference returned once a session is committed."""
    success: bool = True
    file_key: str
    src: str
    file_name: str
    file_size: int
