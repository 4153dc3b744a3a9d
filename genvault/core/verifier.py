"""
Audits acquired items against the files actually present in the output directory.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from rich.markup import escape

from genvault.models.manifest import ArchiveManifest, ItemStatus
from genvault.utils.formatting import describe_item
from genvault.utils.path import id_artifact_name, label_artifact_name, list_artifacts

log = logging.getLogger(__name__)

MISSING_ARTIFACT_REASON = "Artifact missing from output directory (detected by verification)"


@dataclass(frozen=True)
class VerificationResult:
    verified: int = 0
    missing: int = 0

    @property
    def changed(self) -> bool:
        return self.missing > 0


def verify(
    manifest: ArchiveManifest, output_dir: Path, *, file_extension: str
) -> VerificationResult:
    """
    Resets every acquired item whose artifact is gone back to pending.

    An artifact counts as present under its id-based name, its label-based
    name or the name recorded at acquisition. Nothing on disk is touched. If
    the output directory itself cannot be read, nothing is changed.
    """
    acquired = [
        item for item in manifest.items.values() if item.status == ItemStatus.ACQUIRED
    ]
    if not acquired:
        log.info("No items marked as acquired, nothing to verify.")
        return VerificationResult()

    present = list_artifacts(Path(output_dir), file_extension)
    if present is None:
        log.warning(
            f"[yellow]Output directory not accessible: {output_dir}. "
            "Skipping verification.[/yellow]"
        )
        return VerificationResult()

    log.info(f"Verifying {len(acquired)} items marked as acquired...")
    missing = 0
    for item in acquired:
        candidates = {
            id_artifact_name(item.id, file_extension),
            label_artifact_name(item.creator_label, item.title, file_extension),
        }
        if item.local_artifact_name:
            candidates.add(item.local_artifact_name)
        if candidates & present:
            continue

        log.warning(
            "[yellow]  MISSING: "
            f"{escape(describe_item(item.title, item.creator_label, item.id))}[/yellow]"
        )
        item.reset_to_pending(MISSING_ARTIFACT_REASON)
        missing += 1

    result = VerificationResult(verified=len(acquired) - missing, missing=missing)
    if missing:
        log.info(f"{missing} artifact(s) missing, marked as pending for re-acquisition.")
    else:
        log.info("[green]All acquired items verified in output directory.[/green]")
    return result
