"""Chunk ingestor: persists one chunk and records it on its session.

Ingestion is idempotent by index, not by content: once an index has been
recorded, later submissions for it are acknowledged without touching the
stored blob.
"""
import logging
import time
from typing import Optional

from filebed.staging import StagingStore
from filebed.staging.store import SessionRecord

from .exceptions import InvalidRequest, SessionNotFound
from .schemas import ChunkProgress, UploadSession
from .sessions import SessionManager

logger = logging.getLogger(__name__)


class ChunkIngestor:
    """Validates and stores chunks for live sessions."""

    def __init__(self, store: StagingStore, sessions: SessionManager) -> None:
        self._store = store
        self._sessions = sessions

    def ingest_chunk(
        self,
        session_id: Optional[str],
        chunk_index: Optional[int],
        data: Optional[bytes],
    ) -> ChunkProgress:
        """Store one chunk and return the session's progress.

        Chunks may arrive in any order and concurrently. The session's index
        set is updated through the store's serialized read-modify-write, so
        concurrent ingestions never lose or duplicate an index.

        Raises:
            InvalidRequest:  Missing fields, empty payload, or an index
                             outside ``[0, total_chunks)``.
            SessionNotFound: The session is absent or expired.
        """
        if not session_id or chunk_index is None or not data:
            raise InvalidRequest("uploadId, chunkIndex and chunk are required")

        session = self._sessions.get_session(session_id)

        if chunk_index in session.uploaded_chunks:
            logger.debug("Chunk %d of %s already received", chunk_index, session_id)
            return self._progress(session, chunk_index, duplicate=True)

        if not 0 <= chunk_index < session.total_chunks:
            raise InvalidRequest(
                f"chunkIndex must be between 0 and {session.total_chunks - 1}"
            )

        stored = self._store.put_chunk(
            session_id,
            chunk_index,
            data,
            ttl_seconds=self._sessions.ttl_seconds,
            metadata={
                "type": "chunk",
                "uploadId": session_id,
                "chunkIndex": chunk_index,
                "size": len(data),
                "createdAt": int(time.time() * 1000),
            },
        )
        if not stored:
            logger.info(
                "Chunk %d of %s already staged; keeping the first payload",
                chunk_index,
                session_id,
            )

        def _record_index(record: SessionRecord) -> Optional[SessionRecord]:
            uploaded = record.get("uploaded_chunks", [])
            if chunk_index in uploaded:
                return None
            record["uploaded_chunks"] = sorted([*uploaded, chunk_index])
            return record

        updated = self._store.update_session(session_id, _record_index)
        if updated is None:
            raise SessionNotFound(session_id)

        session = UploadSession.model_validate(updated)
        logger.info(
            "Uploaded chunk %d (%d bytes) for session %s: %d/%d",
            chunk_index,
            len(data),
            session_id,
            len(session.uploaded_chunks),
            session.total_chunks,
        )
        return self._progress(session, chunk_index)

    @staticmethod
    def _progress(session: UploadSession, chunk_index: int, duplicate: bool = False) -> ChunkProgress:
        return ChunkProgress(
            chunk_index=chunk_index,
            uploaded_chunks=list(session.uploaded_chunks),
            progress=session.progress,
            duplicate=duplicate,
        )
