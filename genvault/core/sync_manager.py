"""
The orchestrator for one sync run: listing, reconciliation, acquisition.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from genvault.api.listing import ListingFetcher
from genvault.api.rate_limiter import RandomThrottle
from genvault.core.acquisition import AcquisitionEngine, build_queue
from genvault.core.capabilities import RemoteSession
from genvault.core.reconciler import merge
from genvault.core.verifier import VerificationResult, verify
from genvault.exceptions import ListingUnavailableError
from genvault.models.config import SourceMode, SyncConfig
from genvault.models.manifest import ArchiveManifest, CatalogItem, ItemStatus
from genvault.models.stats import SyncStats
from genvault.storage.manifest_store import ManifestStore
from genvault.storage.staging import StagingArea
from genvault.utils.structured_logger import AcquisitionLogger, SessionLogger

log = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """What one run did, for the summary shown to the operator."""

    source_mode: SourceMode
    fetched: int = 0
    new_items: int = 0
    total_items: int = 0
    counts: dict[ItemStatus, int] = field(default_factory=dict)
    pending_preview: list[CatalogItem] = field(default_factory=list)
    stats: SyncStats = field(default_factory=SyncStats)
    nothing_to_do: bool = False

    @property
    def outstanding(self) -> int:
        return self.counts.get(ItemStatus.PENDING, 0) + self.counts.get(
            ItemStatus.FAILED, 0
        )


class SyncManager:
    """Runs the full pipeline against one manifest."""

    def __init__(
        self,
        config: SyncConfig,
        session: RemoteSession,
        store: Optional[ManifestStore] = None,
        session_events: Optional[SessionLogger] = None,
        acquisition_events: Optional[AcquisitionLogger] = None,
    ):
        self.config = config
        self.session = session
        self.store = store or ManifestStore(config.manifest_path, config.source_mode)
        self.session_events = session_events
        self.acquisition_events = acquisition_events
        self._engine: Optional[AcquisitionEngine] = None
        self._stop_requested = False

    def request_stop(self) -> None:
        """Ends the run cooperatively between items."""
        self._stop_requested = True
        if self._engine is not None:
            self._engine.request_stop()

    async def _load(self) -> ArchiveManifest:
        manifest = await self.store.load()
        if manifest.items:
            counts = manifest.count_by_status()
            log.info(
                f"Loaded manifest: {len(manifest.items)} items "
                f"({counts[ItemStatus.ACQUIRED]} acquired)"
            )
        return manifest

    async def run(self) -> SyncReport:
        """
        Executes one sync run.

        Raises:
            CredentialError: If no credential can be read at all.
            ListingUnavailableError: If the remote listing cannot be reached.
        """
        config = self.config
        report = SyncReport(source_mode=config.source_mode)
        report.stats.dry_run = config.dry_run
        if self.session_events:
            self.session_events.sync_started(
                config.source_mode.value, config.dry_run, config.batch_size
            )

        credentials = await self.session.read_credentials()
        listing = ListingFetcher(
            self.session,
            config.remote_base_uri,
            config.page_size,
            RandomThrottle(config.listing_delay_range),
        )
        if not await listing.verify_access(credentials):
            raise ListingUnavailableError(
                "The remote service did not accept the session. Sign in again."
            )

        manifest = await self._load()
        remote_items = await listing.fetch_all(config.source_mode, credentials)
        report.fetched = len(remote_items)
        if not remote_items:
            log.info(f"No {config.source_mode.value} items found remotely.")
            report.nothing_to_do = True
            report.total_items = len(manifest.items)
            report.counts = manifest.count_by_status()
            return report

        manifest.source_mode = config.source_mode
        manifest.total_remote = len(remote_items)
        labels = await listing.resolve_labels(
            [item.author_id for item in remote_items if item.author_id]
        )
        log.info(f"Resolved {len(labels)} creator labels")

        report.new_items = merge(
            manifest,
            remote_items,
            labels,
            config.output_path,
            file_extension=config.file_extension,
            remote_base_uri=config.remote_base_uri,
        )
        report.total_items = len(manifest.items)
        if report.new_items:
            log.info(
                f"Found {report.new_items} new items ({report.total_items} total in manifest)"
            )
        else:
            log.info(f"No new items found ({report.total_items} total in manifest)")
        await self.store.save(manifest)
        if self.session_events:
            self.session_events.listing_merged(
                report.fetched, report.new_items, report.total_items
            )

        if config.dry_run:
            report.pending_preview = build_queue(manifest)
            report.counts = manifest.count_by_status()
            return report

        if self._stop_requested:
            report.stats.stopped_early = True
        else:
            self._engine = AcquisitionEngine(
                config,
                self.session,
                self.store,
                StagingArea(
                    config.staging_path, config.output_path, config.file_extension
                ),
                events=self.acquisition_events,
            )
            report.stats = await self._engine.run(manifest, credentials)

        report.counts = manifest.count_by_status()
        if self.session_events:
            self.session_events.sync_completed(
                report.stats.elapsed_seconds,
                report.stats.items_acquired,
                report.stats.items_failed,
                report.stats.circuit_tripped,
            )
        return report

    async def verify(self) -> VerificationResult:
        """Checks acquired items against the output directory and saves any repairs."""
        manifest = await self._load()
        result = verify(
            manifest, self.config.output_path, file_extension=self.config.file_extension
        )
        if result.changed:
            await self.store.save(manifest)
        if self.session_events:
            self.session_events.verification_completed(result.verified, result.missing)
        return result
