"""
Media Layer.

This package is responsible for writing downloaded payloads to disk and
validating that they are genuine audio.
"""

from .downloader import Downloader
from .integrity import FileIntegrityChecker

__all__ = ["Downloader", "FileIntegrityChecker"]
