"""Durable storage backends.

Each backend implements StorageAdapter; the registry built by
``build_adapters()`` maps a StorageBackend to its adapter.
"""
from .base import AssembledFile, CommitResult, StorageAdapter
from .blob import BlobStoreAdapter
from .factory import build_adapters
from .relay import TelegramRelayAdapter

__all__ = [
    "AssembledFile",
    "CommitResult",
    "StorageAdapter",
    "BlobStoreAdapter",
    "TelegramRelayAdapter",
    "build_adapters",
]
