"""Session manager: creates and reads upload sessions in the staging store."""
import logging
import secrets
from typing import Optional, Tuple

from filebed.config import UploadSettings
from filebed.staging import StagingStore

from .exceptions import FileTooLarge, InvalidRequest, SessionNotFound
from .schemas import StorageBackend, UploadSession

logger = logging.getLogger(__name__)


def generate_session_id() -> str:
    """Return a 32-character hex token from 16 random bytes."""
    return secrets.token_hex(16)


class SessionManager:
    """Owns the shape and size constraints of upload sessions.

    Args:
        store:    Staging store holding the session records.
        settings: Chunk size hint, size limit and staging TTL.
    """

    def __init__(self, store: StagingStore, settings: UploadSettings) -> None:
        self._store = store
        self._settings = settings

    @property
    def ttl_seconds(self) -> int:
        return self._settings.staging_ttl_seconds

    def create_session(
        self,
        file_name: Optional[str],
        file_size: Optional[int],
        total_chunks: Optional[int],
        content_type: Optional[str] = None,
        storage_backend: Optional[str] = None,
    ) -> Tuple[str, int]:
        """Register a new chunked upload.

        Args:
            file_name:       Declared file name.
            file_size:       Declared size in bytes (not verified later).
            total_chunks:    Number of chunks the client will send.
            content_type:    Declared MIME type.
            storage_backend: ``blob``/``r2`` or ``relay``/``telegram``;
                             anything else selects the relay backend.

        Returns:
            ``(session_id, chunk_size_hint)``

        Raises:
            InvalidRequest: A required field is missing, zero or malformed.
            FileTooLarge:   ``file_size`` exceeds the configured maximum.
        """
        if not file_name or not file_size or not total_chunks:
            raise InvalidRequest("fileName, fileSize and totalChunks are required")
        if file_size < 0 or total_chunks < 0:
            raise InvalidRequest("fileSize and totalChunks must be positive")
        if file_size > self._settings.max_file_size:
            raise FileTooLarge(file_size, self._settings.max_file_size)

        session = UploadSession(
            session_id=generate_session_id(),
            file_name=file_name,
            file_size=file_size,
            content_type=content_type or "application/octet-stream",
            total_chunks=total_chunks,
            storage_backend=StorageBackend.parse(storage_backend),
        )
        self._store.put_session(
            session.session_id, session.model_dump(mode="json"), self.ttl_seconds
        )

        logger.info(
            "Initialized upload session %s for %s (%d bytes, %d chunks, backend=%s)",
            session.session_id,
            file_name,
            file_size,
            total_chunks,
            session.storage_backend.value,
        )
        return session.session_id, self._settings.chunk_size

    def get_session(self, session_id: Optional[str]) -> UploadSession:
        """Return a snapshot of a live session.

        Raises:
            InvalidRequest:  ``session_id`` is empty.
            SessionNotFound: The session is absent or expired.
        """
        if not session_id:
            raise InvalidRequest("uploadId is required")
        record = self._store.get_session(session_id)
        if record is None:
            raise SessionNotFound(session_id)
        return UploadSession.model_validate(record)
