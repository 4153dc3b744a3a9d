"""
Merges a fetched remote listing into the persisted manifest.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

from rich.markup import escape

from genvault.api.listing import RemoteItem
from genvault.models.manifest import ArchiveManifest, CatalogItem, ItemStatus
from genvault.utils.formatting import describe_item
from genvault.utils.path import id_artifact_name, label_artifact_name, list_artifacts

log = logging.getLogger(__name__)

UNKNOWN_LABEL = "Unknown"


def item_uri(remote_base_uri: str, item_id: str) -> str:
    """Canonical page address of an item."""
    return f"{remote_base_uri.rstrip('/')}/song/{item_id}"


def _descriptive_fields(
    remote: RemoteItem, labels: dict[str, str], remote_base_uri: str
) -> dict:
    creator_id = remote.author_id or ""
    return {
        "title": remote.title or "Untitled",
        "creator_label": labels.get(creator_id, UNKNOWN_LABEL),
        "creator_id": creator_id,
        "category": remote.sound or "Unknown",
        "prompt": remote.prompt,
        "lyrics": remote.lyrics,
        "model": remote.model_display_name,
        "seed": remote.seed,
        "play_count": remote.play_count,
        "favorite_count": remote.favorite_count,
        "created_at": remote.created_at,
        "remote_uri": item_uri(remote_base_uri, remote.id),
    }


class _OutputIndex:
    """Lazily lists the output directory once per merge."""

    def __init__(self, output_dir: Path, file_extension: str):
        self.output_dir = output_dir
        self.file_extension = file_extension
        self._names: Optional[set[str]] = None

    @property
    def names(self) -> set[str]:
        if self._names is None:
            listed = list_artifacts(self.output_dir, self.file_extension)
            self._names = listed if listed is not None else set()
        return self._names


def _find_existing_artifact(
    fields: dict,
    item_id: str,
    index: _OutputIndex,
    claimed: set[str],
    file_extension: str,
) -> Optional[str]:
    id_name = id_artifact_name(item_id, file_extension)
    if id_name in index.names:
        return id_name

    label_name = label_artifact_name(
        fields["creator_label"], fields["title"], file_extension
    )
    if label_name not in index.names:
        return None
    if label_name in claimed:
        log.warning(
            f"[yellow]{escape(repr(label_name))} already belongs to another item; "
            f"{escape(describe_item(fields['title'], fields['creator_label'], item_id))} "
            "stays pending.[/yellow]"
        )
        return None
    return label_name


def merge(
    manifest: ArchiveManifest,
    remote_items: Iterable[RemoteItem],
    labels: dict[str, str],
    output_dir: Path,
    *,
    file_extension: str,
    remote_base_uri: str,
) -> int:
    """
    Creates manifest entries for unseen items and refreshes descriptive
    metadata of known ones.

    A new item whose artifact is already in the output directory (named by id,
    or by the '<label> - <title>' form) is recorded as acquired right away.
    Known items keep their status, artifact and attempt history. Merging the
    same listing twice changes nothing the second time.

    Returns:
        The number of newly created items.
    """
    index = _OutputIndex(Path(output_dir), file_extension)
    claimed = {
        item.local_artifact_name
        for item in manifest.items.values()
        if item.local_artifact_name
    }
    new_count = 0

    for remote in remote_items:
        fields = _descriptive_fields(remote, labels, remote_base_uri)
        existing = manifest.items.get(remote.id)

        if existing is not None:
            for name, value in fields.items():
                if getattr(existing, name) != value:
                    setattr(existing, name, value)
            continue

        item = CatalogItem(id=remote.id, **fields)
        artifact = _find_existing_artifact(
            fields, remote.id, index, claimed, file_extension
        )
        if artifact:
            item.status = ItemStatus.ACQUIRED
            item.local_artifact_name = artifact
            claimed.add(artifact)
            log.debug(f"  Already in output: {escape(item.title)} -> {escape(artifact)}")

        manifest.items[remote.id] = item
        new_count += 1

    return new_count
