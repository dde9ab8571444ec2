"""UploadService: wires the upload components together.

Owns the staging store, the session manager, the chunk ingestor, the
completion engine and the backend registry. It also serves the two
non-chunked operations that reuse the backends: direct upload and delete.

A module-level singleton is initialised in ``filebed/main.py`` from config.
"""
import logging
from typing import Dict, Optional

from filebed.backends import AssembledFile, StorageAdapter, build_adapters
from filebed.catalog import CatalogRecord, CatalogService
from filebed.config import FileBedConfig, UploadSettings
from filebed.staging import StagingStore

from .completion import FILE_URL_PREFIX, CompletionEngine
from .exceptions import BackendUnavailable, FileTooLarge, InvalidRequest
from .ingest import ChunkIngestor
from .schemas import CompletedUpload, StorageBackend
from .sessions import SessionManager

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_service: Optional["UploadService"] = None


def get_upload_service() -> Optional["UploadService"]:
    """Return the global UploadService, or None if not yet initialised."""
    return _service


def set_upload_service(service: Optional["UploadService"]) -> None:
    """Set (or replace) the global UploadService instance."""
    global _service
    _service = service


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class DeleteRefused(Exception):
    """Raised when a backend refuses to delete a file."""


class UploadService:
    """Facade over the chunked-upload components.

    Args:
        store:    Staging store.
        catalog:  File catalog.
        adapters: Backend registry.
        settings: Upload policy.
    """

    def __init__(
        self,
        store: StagingStore,
        catalog: CatalogService,
        adapters: Dict[StorageBackend, StorageAdapter],
        settings: UploadSettings,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.adapters = adapters
        self.settings = settings
        self.sessions = SessionManager(store, settings)
        self.ingestor = ChunkIngestor(store, self.sessions)
        self.completion = CompletionEngine(store, self.sessions, catalog, adapters)

    @classmethod
    def from_config(cls, config: FileBedConfig) -> "UploadService":
        store = StagingStore(config.upload.staging_db_path)
        catalog = CatalogService.get_instance(config.catalog.db_path)
        return cls(store, catalog, build_adapters(config), config.upload)

    def close(self) -> None:
        self.store.close()

    # -----------------------------------------------------------------------
    # Direct upload
    # -----------------------------------------------------------------------

    def upload_file(
        self,
        file_name: Optional[str],
        data: bytes,
        content_type: Optional[str] = None,
        storage_mode: Optional[str] = None,
    ) -> CompletedUpload:
        """Commit a small file in one request, bypassing staging.

        Raises:
            InvalidRequest:      No file or an empty file.
            FileTooLarge:        Larger than ``direct_max_file_size``.
            BackendUnavailable / BackendUploadFailed: From the adapter.
        """
        if not data:
            raise InvalidRequest("No file uploaded")
        if len(data) > self.settings.direct_max_file_size:
            raise FileTooLarge(len(data), self.settings.direct_max_file_size)

        backend = StorageBackend.parse(storage_mode)
        adapter = self._adapter_for(backend)
        name = file_name or "unnamed"

        result = adapter.commit(AssembledFile(name=name, data=data, content_type=content_type))
        record = self.catalog.put(CatalogRecord(
            key=result.backend_ref,
            file_name=name,
            file_size=len(data),
            storage_type=backend.storage_type,
            r2_key=result.blob_key,
            telegram_message_id=result.relay_message_id,
        ))
        return CompletedUpload(
            file_key=record.key,
            src=f"{FILE_URL_PREFIX}{record.key}",
            file_name=name,
            file_size=len(data),
        )

    # -----------------------------------------------------------------------
    # Delete
    # -----------------------------------------------------------------------

    def delete_file(self, file_key: str) -> Optional[CatalogRecord]:
        """Delete a file from its backend, then drop its catalog record.

        Relay-backed files are only removed from the catalog once Telegram
        confirms the message deletion.

        Returns:
            The deleted record, or None if the key is not catalogued.

        Raises:
            DeleteRefused: The backend did not confirm the deletion.
            BackendUnavailable / BackendUploadFailed: From the adapter.
        """
        record = self.catalog.get(file_key)
        if record is None:
            return None

        backend = StorageBackend.BLOB if record.storage_type == "r2" else StorageBackend.RELAY
        adapter = self._adapter_for(backend)
        if not adapter.delete(record.model_dump(by_alias=True)):
            raise DeleteRefused(
                f"{adapter.name} backend refused to delete {file_key} "
                "or the record has no message id"
            )

        self.catalog.delete(file_key)
        logger.info("Deleted %s from %s backend and catalog", file_key, adapter.name)
        return record

    def _adapter_for(self, backend: StorageBackend) -> StorageAdapter:
        adapter = self.adapters.get(backend)
        if adapter is None:
            raise BackendUnavailable(f"Storage backend '{backend.value}' is not configured")
        return adapter
