"""
Provides checks that a downloaded payload is a real audio file and not a
captured error page.
"""

import logging
from pathlib import Path

from mutagen import File as MutagenFile
from mutagen import MutagenError

from genvault.exceptions import PayloadIntegrityError

log = logging.getLogger(__name__)

AUDIO_CONTENT_MARKERS = ("audio", "octet-stream")


class FileIntegrityChecker:
    """A collection of static methods for validating acquired payloads."""

    @staticmethod
    def is_audio_content_type(content_type: str) -> bool:
        """True for `audio/*` and generic binary content types."""
        lowered = (content_type or "").lower()
        return any(marker in lowered for marker in AUDIO_CONTENT_MARKERS)

    @staticmethod
    def check_content_type(content_type: str, snippet: str = "") -> None:
        """
        Raises:
            PayloadIntegrityError: If the declared content type is not audio/binary.
        """
        if not FileIntegrityChecker.is_audio_content_type(content_type):
            detail = f": {snippet[:100]}" if snippet else ""
            raise PayloadIntegrityError(f"Not audio ({content_type or 'unknown'}){detail}")

    @staticmethod
    def check_size(size_bytes: int, min_bytes: int) -> None:
        """
        Raises:
            PayloadIntegrityError: If the payload is not larger than `min_bytes`.
        """
        if size_bytes <= min_bytes:
            raise PayloadIntegrityError(f"File too small ({size_bytes} bytes)")

    @staticmethod
    def check_audio_file(filepath: Path) -> bool:
        """
        Checks that mutagen recognizes the file as audio with a positive length.

        Args:
            filepath: Path to the staged file.

        Returns:
            True if the file appears to be valid audio, False otherwise.
        """
        try:
            audio = MutagenFile(filepath)
        except MutagenError as e:
            log.warning(f"Audio integrity check failed for '{filepath.name}': {e}")
            return False
        if audio is None:
            log.warning(
                f"Audio integrity check failed for '{filepath.name}': unknown format."
            )
            return False
        if audio.info is None or getattr(audio.info, "length", 0) <= 0:
            log.warning(
                f"Audio integrity check failed for '{filepath.name}': "
                "no valid stream info."
            )
            return False
        return True
