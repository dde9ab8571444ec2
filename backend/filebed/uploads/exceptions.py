"""Error taxonomy for the chunked-upload lifecycle.

Every error carries the HTTP status the router reports and enough structured
detail for the client to pick its next action (resend the listed chunks,
restart the upload, retry completion).
"""
from typing import Any, Dict, List


class UploadError(Exception):
    """Base exception for upload errors."""
    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "code": type(self).__name__}
        body.update(self.details())
        return body


class InvalidRequest(UploadError):
    """Raised for malformed or missing input."""
    def __init__(self, message: str = "Missing required parameters"):
        super().__init__(message, status_code=400)


class SessionNotFound(UploadError):
    """Raised when an upload session is absent or expired."""
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__("Upload session does not exist or has expired", status_code=404)


class FileTooLarge(UploadError):
    """Raised when the declared file size exceeds the configured maximum."""
    def __init__(self, file_size: int, max_file_size: int):
        self.file_size = file_size
        self.max_file_size = max_file_size
        super().__init__(
            f"File size exceeds limit (max {max_file_size // (1024 * 1024)}MB)",
            status_code=413,
        )

    def details(self) -> Dict[str, Any]:
        return {"maxFileSize": self.max_file_size}


class IncompleteUpload(UploadError):
    """Raised on completion when some chunk indices were never received."""
    def __init__(self, missing_chunks: List[int], uploaded: int, total: int):
        self.missing_chunks = missing_chunks
        self.uploaded = uploaded
        self.total = total
        super().__init__("Not all chunks have been uploaded", status_code=400)

    def details(self) -> Dict[str, Any]:
        return {
            "uploaded": self.uploaded,
            "total": self.total,
            "missingChunks": self.missing_chunks,
        }


class ChunkLost(UploadError):
    """Raised when a recorded chunk blob is gone from staging at read time."""
    def __init__(self, chunk_index: int):
        self.chunk_index = chunk_index
        super().__init__(f"Chunk {chunk_index} data lost", status_code=500)

    def details(self) -> Dict[str, Any]:
        return {"chunkIndex": self.chunk_index}


class BackendUnavailable(UploadError):
    """Raised when a storage backend is unconfigured or unreachable."""
    def __init__(self, message: str):
        super().__init__(message, status_code=503)


class BackendUploadFailed(UploadError):
    """Raised when a storage backend rejects the file."""
    def __init__(self, message: str):
        super().__init__(message, status_code=502)
