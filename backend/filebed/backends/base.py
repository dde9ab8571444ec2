"""Abstract StorageAdapter interface.

Every durable backend (object store, Telegram relay, ...) implements this
interface so the completion engine and the direct-upload path stay
backend-agnostic. Adding a backend means adding an adapter and registering
it under a new ``StorageBackend`` member.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass
class AssembledFile:
    """A complete file ready to be committed to a backend."""
    name: str
    data: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        if "." not in self.name:
            return "bin"
        return self.name.rsplit(".", 1)[-1].lower() or "bin"

    @property
    def effective_content_type(self) -> str:
        return self.content_type or DEFAULT_CONTENT_TYPE


@dataclass
class CommitResult:
    """Outcome of a successful commit.

    Attributes:
        backend_ref:      Durable file key (also the catalog key).
        blob_key:         Object key inside the bucket (blob backend only).
        relay_message_id: Telegram message id (relay backend only); needed to
                          delete the file later.
    """
    backend_ref: str
    blob_key: Optional[str] = None
    relay_message_id: Optional[int] = None


class StorageAdapter(ABC):
    """Abstract base class for storage backends.

    Implementations must be thread-safe: FastAPI may call ``commit()`` from
    several worker threads at once.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name used in logs."""

    @abstractmethod
    def commit(self, file: AssembledFile) -> CommitResult:
        """Persist ``file`` durably and return its reference.

        Raises:
            BackendUnavailable:  Backend unreachable, unconfigured or timed out.
            BackendUploadFailed: Backend rejected the file.
        """

    @abstractmethod
    def delete(self, record: Dict[str, Any]) -> bool:
        """Remove a previously committed file.

        Args:
            record: Catalog metadata of the file.

        Returns:
            True if the backend confirmed the deletion.
        """
