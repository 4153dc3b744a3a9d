"""
Storage Layer.

This package handles all data persistence: the configuration file, the
archive manifest and the staging area for freshly acquired artifacts.
"""

from .config_manager import ConfigManager
from .manifest_store import ManifestStore
from .staging import StagingArea

__all__ = ["ConfigManager", "ManifestStore", "StagingArea"]
