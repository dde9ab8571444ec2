"""Shared test fixtures and configuration for backend tests."""
from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient

from filebed.backends.base import AssembledFile, CommitResult, StorageAdapter
from filebed.catalog import CatalogService
from filebed.config import UploadSettings
from filebed.main import app
from filebed.staging import StagingStore
from filebed.uploads.exceptions import BackendUploadFailed
from filebed.uploads.schemas import StorageBackend
from filebed.uploads.service import UploadService, set_upload_service


class FakeAdapter(StorageAdapter):
    """In-memory adapter recording every committed file.

    Set ``fail_with`` to an exception instance to make the next commits fail.
    """

    def __init__(self, backend_name: str) -> None:
        self._name = backend_name
        self.committed: List[AssembledFile] = []
        self.deleted: List[Dict[str, Any]] = []
        self.fail_with: Exception | None = None
        self.delete_result = True

    @property
    def name(self) -> str:
        return self._name

    def commit(self, file: AssembledFile) -> CommitResult:
        if self.fail_with is not None:
            raise self.fail_with
        self.committed.append(file)
        n = len(self.committed)
        if self._name == "blob":
            key = f"r2_test_{n}.{file.extension}"
            return CommitResult(backend_ref=f"r2:{key}", blob_key=key)
        return CommitResult(backend_ref=f"file-id-{n}.{file.extension}", relay_message_id=100 + n)

    def delete(self, record: Dict[str, Any]) -> bool:
        self.deleted.append(record)
        return self.delete_result


@pytest.fixture
def staging_store(tmp_path):
    store = StagingStore(str(tmp_path / "staging.duckdb"))
    yield store
    store.close()


@pytest.fixture
def catalog(tmp_path):
    service = CatalogService(db_path=str(tmp_path / "catalog.duckdb"))
    yield service
    service.close()


@pytest.fixture
def upload_settings():
    return UploadSettings(
        chunk_size=4 * 1024 * 1024,
        max_file_size=100 * 1024 * 1024,
        direct_max_file_size=1024 * 1024,
        staging_ttl_seconds=3600,
    )


@pytest.fixture
def blob_adapter():
    return FakeAdapter("blob")


@pytest.fixture
def relay_adapter():
    return FakeAdapter("relay")


@pytest.fixture
def upload_service(staging_store, catalog, blob_adapter, relay_adapter, upload_settings):
    """An UploadService on temp DuckDB files, installed as the global service."""
    service = UploadService(
        staging_store,
        catalog,
        {StorageBackend.BLOB: blob_adapter, StorageBackend.RELAY: relay_adapter},
        upload_settings,
    )
    set_upload_service(service)
    yield service
    set_upload_service(None)


@pytest.fixture
def api_client(upload_service):
    """Provide a TestClient for the main FastAPI app."""
    return TestClient(app)


@pytest.fixture
def failing_blob(blob_adapter):
    blob_adapter.fail_with = BackendUploadFailed("Object store rejected upload (InternalError)")
    return blob_adapter
