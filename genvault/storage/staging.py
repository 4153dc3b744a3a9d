"""
Temporary holding area for freshly acquired artifacts, and their promotion
into the final output directory.
"""

import asyncio
import logging
import os
import shutil
from pathlib import Path

from genvault.exceptions import PromotionError

log = logging.getLogger(__name__)


class StagingArea:
    """Owns the staging directory and moves validated artifacts into the output."""

    def __init__(self, staging_dir: Path, output_dir: Path, file_extension: str):
        self.staging_dir = Path(staging_dir)
        self.output_dir = Path(output_dir)
        self.file_extension = file_extension

    def prepare(self) -> None:
        self.staging_dir.mkdir(parents=True, exist_ok=True)

    def artifact_name(self, item_id: str) -> str:
        """Final (and staged) file name of an item's artifact."""
        return f"{item_id}{self.file_extension}"

    def staged_path(self, item_id: str) -> Path:
        return self.staging_dir / self.artifact_name(item_id)

    def size_of(self, path: Path) -> int:
        """Size in bytes of a staged file, or -1 when there is none."""
        try:
            return path.stat().st_size
        except OSError:
            return -1

    def discard(self, path: Path) -> None:
        """Removes an unusable staged file, if present."""
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            log.debug(f"Could not remove staged file '{path.name}': {e}")

    def _promote_sync(self, staged: Path, final_name: str) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        destination = self.output_dir / final_name
        partial = destination.with_name(f".{final_name}.part")
        try:
            shutil.copyfile(staged, partial)
            os.replace(partial, destination)
        except OSError:
            if partial.exists():
                partial.unlink()
            raise
        # Only drop the staged copy once the output copy is in place.
        self.discard(staged)
        return destination

    async def promote(self, item_id: str) -> Path:
        """
        Copies a staged artifact into the output directory and removes the staged copy.

        Raises:
            PromotionError: If the copy fails. The staged file is left untouched so
            the bytes can be recovered manually or on the next run.
        """
        staged = self.staged_path(item_id)
        try:
            return await asyncio.to_thread(
                self._promote_sync, staged, self.artifact_name(item_id)
            )
        except OSError as e:
            raise PromotionError(str(e)) from e
