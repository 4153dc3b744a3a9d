"""
The per-item acquisition state machine.

Items are processed strictly one at a time. Each attempt tries the direct
download first, refreshes the credential once on an authorization failure,
and falls back to the interactive browser download. Validated payloads wait in
the staging area and are promoted into the output directory in batches.
"""

import asyncio
import logging
from typing import Optional

from rich.markup import escape

from genvault.api.rate_limiter import RandomThrottle
from genvault.core.capabilities import ArtifactHandle, Credentials, RemoteSession
from genvault.exceptions import (
    AuthorizationError,
    CircuitBreakerError,
    CredentialError,
    InteractiveDownloadError,
    PayloadIntegrityError,
    PromotionError,
    RemoteRequestError,
)
from genvault.media import FileIntegrityChecker
from genvault.models.config import SyncConfig
from genvault.models.manifest import (
    ArchiveManifest,
    CatalogItem,
    ItemStatus,
    utc_now_iso,
)
from genvault.models.stats import SyncStats
from genvault.storage.manifest_store import ManifestStore
from genvault.storage.staging import StagingArea
from genvault.utils.circuit_breaker import CircuitBreaker
from genvault.utils.formatting import format_size
from genvault.utils.structured_logger import AcquisitionLogger

log = logging.getLogger(__name__)

BOTH_STRATEGIES_FAILED = "Both direct and interactive download failed"

_DIRECT_ERRORS = (RemoteRequestError, PayloadIntegrityError)


def build_queue(manifest: ArchiveManifest) -> list[CatalogItem]:
    """
    Orders the non-acquired items for processing.

    Pending items come before failed ones; within each group the newest item
    comes first and items without a usable timestamp come last.
    """
    candidates = [
        item for item in manifest.items.values() if item.status != ItemStatus.ACQUIRED
    ]
    return sorted(
        candidates,
        key=lambda item: (item.status != ItemStatus.PENDING, -item.created_at_epoch),
    )


class AcquisitionEngine:
    """Drives the acquisition queue and keeps the manifest current after every item."""

    def __init__(
        self,
        config: SyncConfig,
        session: RemoteSession,
        store: ManifestStore,
        staging: StagingArea,
        throttle: Optional[RandomThrottle] = None,
        breaker: Optional[CircuitBreaker] = None,
        events: Optional[AcquisitionLogger] = None,
    ):
        self.config = config
        self.session = session
        self.store = store
        self.staging = staging
        self.throttle = throttle or RandomThrottle(config.throttle_delay_range)
        self.breaker = breaker or CircuitBreaker(config.consecutive_failure_limit)
        self.events = events
        self.stats = SyncStats()
        self._credentials: Optional[Credentials] = None
        self._held: list[tuple[CatalogItem, int]] = []
        self._stop_requested = False

    def request_stop(self) -> None:
        """Asks the run to end after the item currently in progress."""
        if not self._stop_requested:
            log.warning("[yellow]Stop requested. Finishing the current item...[/yellow]")
        self._stop_requested = True

    async def run(
        self, manifest: ArchiveManifest, credentials: Optional[Credentials]
    ) -> SyncStats:
        """
        Processes every non-acquired item of `manifest` in queue order.

        Args:
            manifest: The manifest to update in place and save after every item.
            credentials: Bearer credential for the direct strategy. Without one,
                every item goes straight to the interactive strategy.
        """
        self._credentials = credentials
        queue = build_queue(manifest)
        self.stats.items_queued = len(queue)

        if not queue:
            log.info("[green]All items already acquired![/green]")
            return self.stats

        batch_size = self.config.batch_size
        total_batches = -(-len(queue) // batch_size)
        log.info(
            f"{len(queue)} items to acquire, batch size: {batch_size} "
            f"({total_batches} batches)"
        )
        if credentials is None:
            log.warning(
                "[yellow]No bearer credential available. Using the interactive "
                "download for all items.[/yellow]"
            )

        self.staging.prepare()

        for position, item in enumerate(queue, start=1):
            if self._stop_requested:
                self.stats.stopped_early = True
                log.info(f"Stopped with {len(queue) - position + 1} items remaining.")
                break

            await self._process_item(manifest, item, position, len(queue))

            try:
                self.breaker.check()
            except CircuitBreakerError as e:
                self.stats.circuit_tripped = True
                remaining = len(queue) - position
                if self.events:
                    self.events.circuit_tripped(self.breaker.consecutive_failures, remaining)
                log.error(f"[red]✗ {e} {remaining} item(s) left for the next run.[/red]")
                break

            if len(self._held) >= batch_size:
                await self._promote_held(manifest)

            if position < len(queue) and not self._stop_requested:
                await self.throttle.wait()

        if self._held:
            await self._promote_held(manifest)

        return self.stats

    async def _process_item(
        self, manifest: ArchiveManifest, item: CatalogItem, position: int, total: int
    ) -> None:
        log.info(
            f"[{position}/{total}] Acquiring [bold]{escape(item.title)}[/bold] "
            f"by {escape(item.creator_label)}..."
        )
        if self.events:
            self.events.item_started(item.id, item.title, item.status.value, position)
        item.last_attempt_at = utc_now_iso()

        try:
            handle = await self._acquire(item)
        except (
            RemoteRequestError,
            PayloadIntegrityError,
            InteractiveDownloadError,
            CredentialError,
        ) as e:
            self._record_failure(item, str(e))
        except Exception as e:
            log.exception(f"Unexpected error while acquiring {item.id}")
            self._record_failure(item, f"Unexpected error: {e}")
        else:
            self._record_success(item, handle)

        await self.store.save(manifest)

    async def _acquire(self, item: CatalogItem) -> ArtifactHandle:
        """
        Produces a validated staged artifact for `item`.

        Raises:
            PayloadIntegrityError: If the obtained payload fails validation.
            InteractiveDownloadError: If neither strategy produced a payload.
        """
        staged = self.staging.staged_path(item.id)

        recovered = await self._recover_staged(item)
        if recovered is not None:
            return recovered

        handle = await self._try_direct(item)
        if handle is None:
            log.debug("  Falling back to interactive download...")
            try:
                handle = await self.session.drive_interactive_download(
                    item.remote_uri, staged
                )
            except InteractiveDownloadError as e:
                log.debug(f"  Interactive download failed: {e}")
                self.staging.discard(staged)
                raise InteractiveDownloadError(BOTH_STRATEGIES_FAILED) from e

        await self._validate_staged(item)
        return handle

    async def _try_direct(self, item: CatalogItem) -> Optional[ArtifactHandle]:
        """Runs the direct strategy, with one credential refresh on 401/403."""
        if self._credentials is None:
            return None

        staged = self.staging.staged_path(item.id)
        try:
            return await self.session.request_binary(
                item.id, staged, bearer=self._credentials.bearer_token
            )
        except AuthorizationError as e:
            log.debug(f"  Direct download rejected ({e}). Refreshing credential...")
        except _DIRECT_ERRORS as e:
            self._note_direct_failure(e)
            return None

        try:
            self._credentials = await self.session.refresh_credentials()
            return await self.session.request_binary(
                item.id, staged, bearer=self._credentials.bearer_token
            )
        except (CredentialError, *_DIRECT_ERRORS) as e:
            log.debug(f"  Retry with refreshed credential also failed: {e}")
            return None

    def _note_direct_failure(self, error: Exception) -> None:
        if isinstance(error, RemoteRequestError) and error.status == 429:
            self.throttle.on_429()
        log.debug(f"  Direct download failed: {error}")

    async def _recover_staged(self, item: CatalogItem) -> Optional[ArtifactHandle]:
        """Reuses a complete artifact left in staging by an interrupted run."""
        staged = self.staging.staged_path(item.id)
        size = self.staging.size_of(staged)
        if size <= self.config.min_payload_bytes:
            if size >= 0:
                self.staging.discard(staged)
            return None
        try:
            await self._validate_staged(item)
        except PayloadIntegrityError as e:
            log.debug(f"  Discarding unusable staged file: {e}")
            return None
        log.info(f"  Recovered staged file from a previous run ({format_size(size)})")
        self.stats.items_recovered_from_staging += 1
        return ArtifactHandle(path=staged, size_bytes=size, strategy="staging")

    async def _validate_staged(self, item: CatalogItem) -> None:
        """
        Raises:
            PayloadIntegrityError: If the staged file is missing, too small or,
            with strict checking enabled, not parseable as audio. The file is
            removed before raising.
        """
        staged = self.staging.staged_path(item.id)
        size = self.staging.size_of(staged)
        if size < 0:
            raise InteractiveDownloadError(BOTH_STRATEGIES_FAILED)
        try:
            FileIntegrityChecker.check_size(size, self.config.min_payload_bytes)
            if self.config.strict_audio_check and not await asyncio.to_thread(
                FileIntegrityChecker.check_audio_file, staged
            ):
                raise PayloadIntegrityError("Not a readable audio file")
        except PayloadIntegrityError:
            self.staging.discard(staged)
            raise

    def _record_success(self, item: CatalogItem, handle: ArtifactHandle) -> None:
        size = self.staging.size_of(handle.path)
        self.breaker.record_success()
        self._held.append((item, size))
        log.info(f"  Acquired: {format_size(size)} via {handle.strategy}")
        if self.events:
            self.events.item_acquired(item.id, size, handle.strategy)

    def _record_failure(self, item: CatalogItem, error: str) -> None:
        item.mark_failed(error)
        self.stats.record_failure(item.title, item.id, error)
        self.breaker.record_failure()
        log.warning(f"[yellow]  ✗ {escape(error)}[/yellow]")
        if self.events:
            self.events.item_failed(item.id, error, self.breaker.consecutive_failures)

    async def _promote_held(self, manifest: ArchiveManifest) -> None:
        """Moves every held artifact into the output directory and saves the manifest."""
        log.info(f"--- Promoting {len(self._held)} file(s) to output ---")
        for item, size in self._held:
            try:
                await self.staging.promote(item.id)
            except PromotionError as e:
                error = f"Promotion failed: {e}"
                item.mark_failed(error)
                self.stats.promotion_failures += 1
                self.stats.record_failure(item.title, item.id, error)
                log.error(
                    f"[red]  ✗ {escape(item.title)}: {escape(error)} "
                    "(staged file kept)[/red]"
                )
                if self.events:
                    self.events.promotion_failed(item.id, str(e))
                continue

            item.mark_acquired(self.staging.artifact_name(item.id), size)
            self.stats.items_acquired += 1
            self.stats.total_size_acquired += size
            log.info(f"  [green]✓[/green] {escape(item.title)} -> output")

        self._held = []
        await self.store.save(manifest)
