"""Completion engine: reassembles a finished session and commits it.

Completion runs in four stages:

1. Verify every index in ``[0, total_chunks)`` was recorded.
2. Read the staged blobs in ascending index order and concatenate them.
3. Commit the assembled file to the session's backend and write the
   catalog record.
4. Purge the staging state (best-effort).

A failure in stages 1-3 leaves the staging state untouched so the client can
resend missing chunks or retry completion. Completion is not idempotent: once
the purge has run, a repeated call reports SessionNotFound.
"""
import logging
from typing import List, Mapping, Optional

from filebed.backends.base import AssembledFile, StorageAdapter
from filebed.catalog import CatalogRecord, CatalogService
from filebed.staging import StagingStore

from .exceptions import BackendUnavailable, ChunkLost, IncompleteUpload
from .schemas import CompletedUpload, StorageBackend, UploadSession
from .sessions import SessionManager

logger = logging.getLogger(__name__)

FILE_URL_PREFIX = "/file/"


class CompletionEngine:
    """Turns a fully received session into a committed, catalogued file.

    Args:
        store:    Staging store holding sessions and chunks.
        sessions: Session manager used to load the session.
        catalog:  Catalog receiving the final record.
        adapters: One adapter per configured backend.
    """

    def __init__(
        self,
        store: StagingStore,
        sessions: SessionManager,
        catalog: CatalogService,
        adapters: Mapping[StorageBackend, StorageAdapter],
    ) -> None:
        self._store = store
        self._sessions = sessions
        self._catalog = catalog
        self._adapters = adapters

    def complete_session(self, session_id: Optional[str]) -> CompletedUpload:
        """Complete a chunked upload.

        Raises:
            InvalidRequest:      ``session_id`` is empty.
            SessionNotFound:     The session is absent, expired or already completed.
            IncompleteUpload:    Some indices were never received.
            ChunkLost:           A recorded chunk is gone from staging.
            BackendUnavailable:  Backend unconfigured or unreachable.
            BackendUploadFailed: Backend rejected the file.
        """
        session = self._sessions.get_session(session_id)

        missing = session.missing_chunks()
        if missing or len(session.uploaded_chunks) != session.total_chunks:
            logger.info("Session %s missing chunks: %s", session.session_id, missing)
            raise IncompleteUpload(
                missing_chunks=missing,
                uploaded=len(session.uploaded_chunks),
                total=session.total_chunks,
            )

        assembled = self.reassemble(session)
        if assembled.size != session.file_size:
            logger.warning(
                "Session %s assembled %d bytes but declared %d",
                session.session_id,
                assembled.size,
                session.file_size,
            )

        adapter = self._adapters.get(session.storage_backend)
        if adapter is None:
            raise BackendUnavailable(
                f"Storage backend '{session.storage_backend.value}' is not configured"
            )

        result = adapter.commit(assembled)
        if result.relay_message_id is not None:
            session.relay_message_id = result.relay_message_id

        record = self._catalog.put(CatalogRecord(
            key=result.backend_ref,
            file_name=session.file_name,
            file_size=session.file_size,
            storage_type=session.storage_backend.storage_type,
            r2_key=result.blob_key,
            telegram_message_id=session.relay_message_id,
            chunked=True,
            total_chunks=session.total_chunks,
        ))

        failures = self.purge(session.session_id, session.total_chunks)
        logger.info(
            "Completed session %s -> %s via %s (%d purge failure(s))",
            session.session_id,
            record.key,
            adapter.name,
            len(failures),
        )

        return CompletedUpload(
            file_key=record.key,
            src=f"{FILE_URL_PREFIX}{record.key}",
            file_name=session.file_name,
            file_size=session.file_size,
        )

    def reassemble(self, session: UploadSession) -> AssembledFile:
        """Concatenate the staged chunks in strict ascending index order.

        Raises:
            ChunkLost: A chunk blob is missing at read time.
        """
        parts: List[bytes] = []
        for index in range(session.total_chunks):
            data = self._store.get_chunk(session.session_id, index)
            if data is None:
                logger.error("Chunk %d of session %s lost from staging", index, session.session_id)
                raise ChunkLost(index)
            parts.append(data)

        return AssembledFile(
            name=session.file_name,
            data=b"".join(parts),
            content_type=session.content_type,
        )

    def purge(self, session_id: str, total_chunks: int) -> List[str]:
        """Delete the session record and every chunk blob, best-effort.

        Each deletion is attempted independently; failures are logged and
        returned, never raised. Leftovers expire with the staging TTL.

        Returns:
            Descriptions of the deletions that failed.
        """
        failures: List[str] = []

        try:
            self._store.delete_session(session_id)
        except Exception as exc:
            logger.warning("Failed to delete session record %s: %s", session_id, exc)
            failures.append(f"session:{session_id}")

        for index in range(total_chunks):
            try:
                self._store.delete_chunk(session_id, index)
            except Exception as exc:
                logger.warning("Failed to delete chunk %d of %s: %s", index, session_id, exc)
                failures.append(f"chunk:{session_id}:{index}")

        return failures
