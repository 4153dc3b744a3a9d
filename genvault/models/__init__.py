"""
Data Models Layer.

This package contains Pydantic models that define the core data structures
used throughout the application, such as configuration, the archive manifest
and run statistics.
"""

from .config import SourceMode, SyncConfig
from .manifest import ArchiveManifest, CatalogItem, ItemStatus
from .stats import SyncStats

__all__ = [
    "ArchiveManifest",
    "CatalogItem",
    "ItemStatus",
    "SourceMode",
    "SyncConfig",
    "SyncStats",
]
