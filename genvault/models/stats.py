"""
Dataclass for tracking sync session statistics.
"""

import time
from dataclasses import dataclass, field


@dataclass
class SyncStats:
    """Tracks the outcome of one acquisition run."""

    items_queued: int = 0
    items_acquired: int = 0
    items_failed: int = 0
    items_recovered_from_staging: int = 0
    promotion_failures: int = 0
    total_size_acquired: int = 0
    dry_run: bool = False
    circuit_tripped: bool = False
    stopped_early: bool = False
    failure_messages: list[str] = field(default_factory=list)
    start_time: float = field(default_factory=time.monotonic, repr=False)

    def record_failure(self, title: str, item_id: str, error: str) -> None:
        self.items_failed += 1
        self.failure_messages.append(f"{title} [{item_id}] - {error}")

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.start_time
