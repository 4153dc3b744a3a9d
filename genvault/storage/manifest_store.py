"""
Manages the JSON manifest that records every remote item and its download status.
"""

import asyncio
import json
import logging
import os
from datetime import datetime
from pathlib import Path

import aiofiles
from pydantic import ValidationError

from genvault.models.config import SourceMode
from genvault.models.manifest import ArchiveManifest, utc_now_iso

log = logging.getLogger(__name__)


class ManifestStore:
    """
    Durable load/save of the archive manifest.

    Saves are atomic: the JSON is written to a sibling temporary file and then
    renamed over the manifest, so a concurrent reader sees either the previous
    or the new document, never a partial one.
    """

    def __init__(self, manifest_path: Path, default_source_mode: SourceMode):
        self.manifest_path = Path(manifest_path)
        self.default_source_mode = default_source_mode

    def _empty(self) -> ArchiveManifest:
        return ArchiveManifest(source_mode=self.default_source_mode)

    def _quarantine_corrupt_file(self) -> None:
        """Moves an unreadable manifest aside so the next save cannot overwrite it."""
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        backup = self.manifest_path.with_name(
            f"{self.manifest_path.name}.corrupt-{stamp}"
        )
        try:
            os.replace(self.manifest_path, backup)
            log.warning(
                f"[yellow]Manifest at '{self.manifest_path}' was unreadable; "
                f"moved to '{backup.name}' and starting from an empty manifest.[/yellow]"
            )
        except OSError as e:
            log.warning(
                f"[yellow]Manifest at '{self.manifest_path}' was unreadable and could "
                f"not be moved aside ({e}); starting from an empty manifest.[/yellow]"
            )

    async def load(self, quarantine: bool = True) -> ArchiveManifest:
        """
        Loads the manifest from disk.

        A missing file yields a fresh, empty manifest. So does a corrupt or
        schema-invalid one; that path is recoverable and never raises.

        Args:
            quarantine: Move a corrupt file aside. Read-only callers pass False
                and leave the file where it is.
        """
        if not self.manifest_path.is_file():
            log.debug(f"No manifest at '{self.manifest_path}', starting fresh.")
            return self._empty()

        try:
            async with aiofiles.open(self.manifest_path, encoding="utf-8") as f:
                raw = await f.read()
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("manifest root is not an object")
            data.setdefault("sourceMode", self.default_source_mode.value)
            return ArchiveManifest.model_validate(data)
        except (OSError, UnicodeDecodeError, ValueError, ValidationError) as e:
            log.debug(f"Manifest load failed: {e}")
            if not quarantine:
                log.warning(
                    f"[yellow]Manifest at '{self.manifest_path}' is unreadable.[/yellow]"
                )
                return self._empty()
            await asyncio.to_thread(self._quarantine_corrupt_file)
            return self._empty()

    async def save(self, manifest: ArchiveManifest) -> None:
        """Stamps `last_run_at` and atomically writes the full manifest."""
        manifest.last_run_at = utc_now_iso()
        payload = json.dumps(manifest.to_json_dict(), indent=2, ensure_ascii=False)

        self.manifest_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.manifest_path.with_name(f".{self.manifest_path.name}.tmp")
        try:
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(payload)
                await f.flush()
            await asyncio.to_thread(os.replace, temp_path, self.manifest_path)
        except OSError:
            if temp_path.exists():
                temp_path.unlink()
            raise
        log.debug(
            f"Saved manifest with {len(manifest.items)} items to '{self.manifest_path}'."
        )
