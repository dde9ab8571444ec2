"""Catalog of committed files.

Every file committed to a backend (through chunked or direct upload) gets
exactly one CatalogRecord, keyed by its durable file key.
"""
from .schemas import CatalogPage, CatalogRecord
from .service import CatalogService

__all__ = ["CatalogPage", "CatalogRecord", "CatalogService"]
