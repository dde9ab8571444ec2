"""DuckDB-backed staging store for in-flight chunked uploads.

The store is a two-level addressable key-value store with per-key expiry:

Database Schema:
    upload_sessions table:
        - session_id: Primary key
        - payload: JSON-encoded session record
        - expires_at: Epoch seconds after which the row is treated as absent
    upload_chunks table:
        - (session_id, chunk_index): Composite primary key
        - data: Raw chunk bytes
        - metadata: Optional JSON-encoded metadata
        - expires_at: Epoch seconds after which the row is treated as absent

Expired rows are invisible to every read and are physically removed by
``purge_expired()``.

Thread Safety:
    The DuckDB connection is NOT thread-safe. FastAPI runs sync handlers on a
    thread pool, so every statement runs under one re-entrant lock. The lock
    is also what makes ``update_session()`` a per-key serialized
    read-modify-write.
"""
import json
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

import duckdb

logger = logging.getLogger(__name__)

SessionRecord = Dict[str, Any]

_CREATE_SESSIONS = """
CREATE TABLE IF NOT EXISTS upload_sessions (
    session_id  VARCHAR PRIMARY KEY,
    payload     VARCHAR NOT NULL,
    expires_at  DOUBLE NOT NULL
)
"""

_CREATE_CHUNKS = """
CREATE TABLE IF NOT EXISTS upload_chunks (
    session_id   VARCHAR NOT NULL,
    chunk_index  INTEGER NOT NULL,
    data         BLOB NOT NULL,
    metadata     VARCHAR,
    expires_at   DOUBLE NOT NULL,
    PRIMARY KEY (session_id, chunk_index)
)
"""


class StagingStore:
    """Short-lived storage for session records and chunk blobs.

    Args:
        db_path: Path to the DuckDB file (``":memory:"`` for an in-process store).
        clock:   Returns the current time in epoch seconds. Injected by tests.
    """

    def __init__(self, db_path: str = "staging.duckdb", clock: Callable[[], float] = time.time) -> None:
        self._db_path = db_path
        self._clock = clock
        self._lock = threading.RLock()
        self._conn = duckdb.connect(db_path)
        self._conn.execute(_CREATE_SESSIONS)
        self._conn.execute(_CREATE_CHUNKS)
        logger.info("[StagingStore] Initialized with db=%s", db_path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # -----------------------------------------------------------------------
    # Session table
    # -----------------------------------------------------------------------

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        """Return the live session record, or None if absent or expired."""
        with self._lock:
            return self._read_session(session_id)

    def put_session(self, session_id: str, record: SessionRecord, ttl_seconds: int) -> None:
        """Create or replace a session record with a fresh expiry."""
        expires_at = self._clock() + ttl_seconds
        with self._lock:
            self._conn.execute(
                "DELETE FROM upload_sessions WHERE session_id = ?", [session_id]
            )
            self._conn.execute(
                "INSERT INTO upload_sessions (session_id, payload, expires_at) VALUES (?, ?, ?)",
                [session_id, json.dumps(record), expires_at],
            )

    def update_session(
        self,
        session_id: str,
        mutate: Callable[[SessionRecord], Optional[SessionRecord]],
    ) -> Optional[SessionRecord]:
        """Atomically read, mutate and write back one session record.

        ``mutate`` receives the current record and returns the new record, or
        None to leave the stored record untouched. The expiry is preserved.

        Returns:
            The record as stored after the call, or None if the session is
            absent or expired.
        """
        with self._lock:
            self._conn.execute("BEGIN TRANSACTION")
            try:
                current = self._read_session(session_id)
                if current is None:
                    self._conn.execute("ROLLBACK")
                    return None
                updated = mutate(current)
                if updated is None:
                    self._conn.execute("ROLLBACK")
                    return current
                self._conn.execute(
                    "UPDATE upload_sessions SET payload = ? WHERE session_id = ?",
                    [json.dumps(updated), session_id],
                )
                self._conn.execute("COMMIT")
                return updated
            except Exception:
                self._conn.execute("ROLLBACK")
                raise

    def delete_session(self, session_id: str) -> bool:
        """Delete a session record. Returns True if a row was removed."""
        with self._lock:
            exists = self._conn.execute(
                "SELECT 1 FROM upload_sessions WHERE session_id = ?", [session_id]
            ).fetchone()
            if not exists:
                return False
            self._conn.execute(
                "DELETE FROM upload_sessions WHERE session_id = ?", [session_id]
            )
            return True

    def _read_session(self, session_id: str) -> Optional[SessionRecord]:
        row = self._conn.execute(
            "SELECT payload FROM upload_sessions WHERE session_id = ? AND expires_at > ?",
            [session_id, self._clock()],
        ).fetchone()
        if not row:
            return None
        return json.loads(row[0])

    # -----------------------------------------------------------------------
    # Chunk table
    # -----------------------------------------------------------------------

    def put_chunk(
        self,
        session_id: str,
        chunk_index: int,
        data: bytes,
        ttl_seconds: int,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Store a chunk blob unless a live blob already exists for the key.

        Returns:
            True if the blob was written, False if a live blob was kept.
        """
        now = self._clock()
        with self._lock:
            row = self._conn.execute(
                "SELECT expires_at FROM upload_chunks WHERE session_id = ? AND chunk_index = ?",
                [session_id, chunk_index],
            ).fetchone()
            if row is not None:
                if row[0] > now:
                    return False
                self._conn.execute(
                    "DELETE FROM upload_chunks WHERE session_id = ? AND chunk_index = ?",
                    [session_id, chunk_index],
                )
            self._conn.execute(
                """
                INSERT INTO upload_chunks (session_id, chunk_index, data, metadata, expires_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    session_id,
                    chunk_index,
                    bytes(data),
                    json.dumps(metadata) if metadata is not None else None,
                    now + ttl_seconds,
                ],
            )
            return True

    def get_chunk(self, session_id: str, chunk_index: int) -> Optional[bytes]:
        """Return the live chunk blob, or None if absent or expired."""
        with self._lock:
            row = self._conn.execute(
                """
                SELECT data FROM upload_chunks
                WHERE session_id = ? AND chunk_index = ? AND expires_at > ?
                """,
                [session_id, chunk_index, self._clock()],
            ).fetchone()
        if not row:
            return None
        return bytes(row[0])

    def delete_chunk(self, session_id: str, chunk_index: int) -> bool:
        """Delete one chunk blob. Returns True if a row was removed."""
        with self._lock:
            exists = self._conn.execute(
                "SELECT 1 FROM upload_chunks WHERE session_id = ? AND chunk_index = ?",
                [session_id, chunk_index],
            ).fetchone()
            if not exists:
                return False
            self._conn.execute(
                "DELETE FROM upload_chunks WHERE session_id = ? AND chunk_index = ?",
                [session_id, chunk_index],
            )
            return True

    def list_chunk_indices(self, session_id: str) -> List[int]:
        """List the indices of every live chunk stored for a session."""
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT chunk_index FROM upload_chunks
                WHERE session_id = ? AND expires_at > ?
                ORDER BY chunk_index ASC
                """,
                [session_id, self._clock()],
            ).fetchall()
        return [r[0] for r in rows]

    # -----------------------------------------------------------------------
    # Expiry
    # -----------------------------------------------------------------------

    def purge_expired(self) -> int:
        """Physically remove expired sessions and chunks.

        Returns:
            Number of rows removed across both tables.
        """
        now = self._clock()
        with self._lock:
            sessions = self._conn.execute(
                "SELECT COUNT(*) FROM upload_sessions WHERE expires_at <= ?", [now]
            ).fetchone()[0]
            chunks = self._conn.execute(
                "SELECT COUNT(*) FROM upload_chunks WHERE expires_at <= ?", [now]
            ).fetchone()[0]
            self._conn.execute("DELETE FROM upload_sessions WHERE expires_at <= ?", [now])
            self._conn.execute("DELETE FROM upload_chunks WHERE expires_at <= ?", [now])

        if sessions or chunks:
            logger.info(
                "[StagingStore] Purged %d expired session(s) and %d chunk(s)",
                sessions,
                chunks,
            )
        return sessions + chunks
