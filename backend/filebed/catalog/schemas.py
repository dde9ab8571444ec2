"""Pydantic schemas for the file catalog.

A CatalogRecord is the permanent entry for a committed file. Listing and
deletion read these field names, so the wire spelling (``fileName``,
``storageType``, ``r2Key``, ``telegramMessageId``, ``TimeStamp``, ``ListType``,
``Label``, ``liked``) is fixed.
"""
import time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MAX_LIST_LIMIT = 1000
DEFAULT_LIST_LIMIT = 100


class CatalogRecord(BaseModel):
    """Metadata for one committed file, keyed by its durable file key."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    key: str = Field(..., description="Durable file key (r2:<object> or <file_id>.<ext>)")
    file_name: str
    file_size: int
    storage_type: str = Field(..., description="'r2' or 'telegram'")
    r2_key: Optional[str] = Field(None, alias="r2Key")
    telegram_message_id: Optional[int] = None
    chunked: bool = False
    total_chunks: Optional[int] = None
    created_at: int = Field(
        default_factory=lambda: int(time.time() * 1000), alias="TimeStamp"
    )
    list_type: str = Field("None", alias="ListType")
    label: str = Field("None", alias="Label")
    liked: bool = False


class CatalogPage(BaseModel):
    """One page of catalog keys, ordered by key."""
    model_config = ConfigDict(populate_by_name=True)

    keys: List[CatalogRecord]
    list_complete: bool
    cursor: Optional[str] = None
