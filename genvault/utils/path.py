"""
Utilities for artifact file names and output directory scans.
"""

import logging
import re
from pathlib import Path
from typing import Optional

from pathvalidate import sanitize_filename

log = logging.getLogger(__name__)

_EXTRA_UNSAFE = re.compile(r"[%]")
_WHITESPACE = re.compile(r"\s+")

MAX_NAME_LENGTH = 255


def sanitize_artifact_name(name: str, max_len: int = MAX_NAME_LENGTH) -> str:
    """
    Makes a human-readable name safe as a file name.

    Runs of whitespace (tabs and newlines included) collapse to a single space
    first; path separators and reserved characters then become '-'.
    """
    collapsed = _WHITESPACE.sub(" ", name).strip()
    cleaned = sanitize_filename(
        collapsed, replacement_text="-", platform="universal", max_len=max_len
    )
    return _EXTRA_UNSAFE.sub("-", cleaned).strip()


def id_artifact_name(item_id: str, file_extension: str) -> str:
    return f"{item_id}{file_extension}"


def label_artifact_name(label: str, title: str, file_extension: str) -> str:
    """The '<label> - <title>.<ext>' form used by manually populated archives."""
    stem = sanitize_artifact_name(
        f"{label} - {title}", max_len=MAX_NAME_LENGTH - len(file_extension)
    )
    return f"{stem}{file_extension}"


def list_artifacts(output_dir: Path, file_extension: str) -> Optional[set[str]]:
    """
    Lists artifact file names with the given extension in the output directory.

    Returns:
        The set of names, or None if the directory cannot be read.
    """
    try:
        return {
            entry.name
            for entry in output_dir.iterdir()
            if entry.name.endswith(file_extension) and entry.is_file()
        }
    except OSError as e:
        log.debug(f"Cannot list output directory '{output_dir}': {e}")
        return None
