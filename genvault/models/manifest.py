"""
Pydantic models for the persisted archive manifest.

The manifest is a JSON document shared with other tooling, so every field is
serialized under a stable camelCase key and optional fields are omitted when absent.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import SourceMode


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def parse_timestamp(value: Optional[str]) -> float:
    """
    Converts an ISO-8601 timestamp to epoch seconds for ordering.
    Missing or unparseable values sort as the oldest possible time.
    """
    if not value:
        return 0.0
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


class ItemStatus(str, Enum):
    """Acquisition status of a catalog item."""

    PENDING = "pending"
    ACQUIRED = "acquired"
    FAILED = "failed"


class CatalogItem(BaseModel):
    """One remote item tracked for archival."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, validate_assignment=True
    )

    id: str
    title: str = "Untitled"
    creator_label: str = "Unknown"
    creator_id: str = ""
    category: str = "Unknown"

    # Generation parameters, present only when the remote record supplies them
    prompt: Optional[str] = None
    lyrics: Optional[str] = None
    model: Optional[str] = None
    seed: Optional[int] = None
    play_count: Optional[int] = None
    favorite_count: Optional[int] = None
    created_at: Optional[str] = None

    remote_uri: str
    status: ItemStatus = ItemStatus.PENDING
    local_artifact_name: Optional[str] = None
    artifact_size_mb: Optional[float] = Field(None, alias="artifactSizeMB")
    last_attempt_at: Optional[str] = None
    last_error: Optional[str] = None

    @property
    def created_at_epoch(self) -> float:
        return parse_timestamp(self.created_at)

    def mark_acquired(self, artifact_name: str, size_bytes: int) -> None:
        """Records a successful acquisition and clears the diagnostic trail."""
        self.status = ItemStatus.ACQUIRED
        self.local_artifact_name = artifact_name
        self.artifact_size_mb = round(size_bytes / 1024 / 1024, 1)
        self.last_error = None

    def mark_failed(self, error: str) -> None:
        self.status = ItemStatus.FAILED
        self.local_artifact_name = None
        self.last_error = error

    def reset_to_pending(self, reason: str) -> None:
        """Returns an item to the download queue, keeping the reason for the operator."""
        self.status = ItemStatus.PENDING
        self.local_artifact_name = None
        self.artifact_size_mb = None
        self.last_error = reason


class ArchiveManifest(BaseModel):
    """The persisted ledger of every item ever seen remotely."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, validate_assignment=True
    )

    last_run_at: str = ""
    source_mode: SourceMode = SourceMode.FAVORITES
    total_remote: Optional[int] = None
    items: dict[str, CatalogItem] = Field(default_factory=dict)

    def count_by_status(self) -> dict[ItemStatus, int]:
        counts = dict.fromkeys(ItemStatus, 0)
        for item in self.items.values():
            counts[item.status] += 1
        return counts

    def to_json_dict(self) -> dict:
        """Serializes the manifest with its stable field names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
