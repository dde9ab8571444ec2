"""Staging storage for chunked uploads.

Holds session records and raw chunk blobs until a session is completed
(and purged) or expires.
"""
from .store import StagingStore

__all__ = ["StagingStore"]
