"""DuckDB-based catalog of committed files.

Database Schema:
    file_catalog table:
        - key: Durable file key (primary key)
        - file_name: Original file name
        - file_size: Declared size in bytes
        - storage_type: 'r2' or 'telegram'
        - r2_key: Object key inside the bucket (r2 only)
        - telegram_message_id: Message holding the file (telegram only)
        - chunked: Whether the file arrived through a chunked upload
        - total_chunks: Chunk count for chunked uploads
        - created_at: Epoch milliseconds
        - list_type, label, liked: Listing flags shown by the file manager

Usage:
    catalog = CatalogService.get_instance()
    catalog.put(CatalogRecord(key="r2:r2_1_abc.png", ...))
    page = catalog.list(limit=50, storage="r2")
"""
import logging
import threading
from typing import List, Optional

import duckdb

from .schemas import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT, CatalogPage, CatalogRecord

logger = logging.getLogger(__name__)

_COLUMNS = (
    "key, file_name, file_size, storage_type, r2_key, "
    "telegram_message_id, chunked, total_chunks, created_at, "
    "list_type, label, liked"
)


def _row_to_record(row: tuple) -> CatalogRecord:
    return CatalogRecord(
        key=row[0],
        file_name=row[1],
        file_size=row[2],
        storage_type=row[3],
        r2_key=row[4],
        telegram_message_id=row[5],
        chunked=bool(row[6]),
        total_chunks=row[7],
        created_at=row[8],
        list_type=row[9],
        label=row[10],
        liked=bool(row[11]),
    )


class CatalogService:
    """Singleton service for the file catalog in DuckDB."""

    _instance: Optional["CatalogService"] = None
    _db_path: str = "catalog.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        if db_path:
            self._db_path = db_path
        self._lock = threading.RLock()
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._initialize_db()

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "CatalogService":
        """Get or create the singleton instance."""
        if cls._instance is None:
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance (for testing)."""
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    def _initialize_db(self) -> None:
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS file_catalog (
                key VARCHAR PRIMARY KEY,
                file_name VARCHAR NOT NULL,
                file_size BIGINT NOT NULL,
                storage_type VARCHAR NOT NULL,
                r2_key VARCHAR,
                telegram_message_id BIGINT,
                chunked BOOLEAN NOT NULL DEFAULT FALSE,
                total_chunks INTEGER,
                created_at BIGINT NOT NULL,
                list_type VARCHAR NOT NULL DEFAULT 'None',
                label VARCHAR NOT NULL DEFAULT 'None',
                liked BOOLEAN NOT NULL DEFAULT FALSE
            )
        """)

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    # -----------------------------------------------------------------------
    # Records
    # -----------------------------------------------------------------------

    def put(self, record: CatalogRecord) -> CatalogRecord:
        """Write a catalog record, replacing any record with the same key."""
        with self._lock:
            self._get_connection().execute(
                f"INSERT OR REPLACE INTO file_catalog ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    record.key,
                    record.file_name,
                    record.file_size,
                    record.storage_type,
                    record.r2_key,
                    record.telegram_message_id,
                    record.chunked,
                    record.total_chunks,
                    record.created_at,
                    record.list_type,
                    record.label,
                    record.liked,
                ],
            )
        logger.info("[catalog] Recorded %s (%s, %d bytes)", record.key, record.storage_type, record.file_size)
        return record

    def get(self, key: str) -> Optional[CatalogRecord]:
        with self._lock:
            row = self._get_connection().execute(
                f"SELECT {_COLUMNS} FROM file_catalog WHERE key = ?", [key]
            ).fetchone()
        return _row_to_record(row) if row else None

    def list(
        self,
        limit: int = DEFAULT_LIST_LIMIT,
        cursor: Optional[str] = None,
        prefix: Optional[str] = None,
        storage: Optional[str] = None,
    ) -> CatalogPage:
        """List records in key order.

        Args:
            limit:   Page size; non-positive → default, capped at 1000.
            cursor:  Key of the last record of the previous page.
            prefix:  Only keys starting with this prefix.
            storage: ``r2`` for blob records; ``telegram`` (or ``kv``) for
                     relay records; None for all.
        """
        if limit <= 0:
            limit = DEFAULT_LIST_LIMIT
        limit = min(limit, MAX_LIST_LIMIT)

        clauses: List[str] = []
        params: list = []
        if cursor:
            clauses.append("key > ?")
            params.append(cursor)
        if prefix:
            clauses.append("starts_with(key, ?)")
            params.append(prefix)
        if storage == "r2":
            clauses.append("storage_type = 'r2'")
        elif storage in ("telegram", "kv"):
            clauses.append("storage_type = 'telegram'")

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._lock:
            rows = self._get_connection().execute(
                f"SELECT {_COLUMNS} FROM file_catalog {where} ORDER BY key ASC LIMIT ?",
                [*params, limit + 1],
            ).fetchall()

        records = [_row_to_record(r) for r in rows[:limit]]
        complete = len(rows) <= limit
        return CatalogPage(
            keys=records,
            list_complete=complete,
            cursor=None if complete else records[-1].key,
        )

    def delete(self, key: str) -> bool:
        with self._lock:
            conn = self._get_connection()
            exists = conn.execute("SELECT 1 FROM file_catalog WHERE key = ?", [key]).fetchone()
            if not exists:
                return False
            conn.execute("DELETE FROM file_catalog WHERE key = ?", [key])
        logger.info("[catalog] Deleted %s", key)
        return True
