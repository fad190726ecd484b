"""
Sync coordinator: discovers new local media, skips what the server already
has and hands the rest to the upload transport.

One run walks batches of assets newer than the persisted watermark:

    idle -> discovering -> waiting-for-capacity -> uploading-batch -> ... -> idle

The batch walk is sequential so the watermark candidate only ever moves past
assets whose outcome is known. The watermark is persisted after each batch;
a crash mid-batch re-discovers that batch and relies on the catalog lookup
to avoid duplicate uploads.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from common.constants import DEFAULT_BATCH_CEILING, DEFAULT_CAPACITY_POLL_INTERVAL_SECONDS
from common.logging_config import get_logger
from common.types import AssetDescriptor, UploadItem
from catalog.catalog_client import RemoteCatalogClient
from syncer.asset_source import AssetSource
from syncer.progress import ProgressTracker
from syncer.settings import SyncSettings
from uploader.exceptions import UploadError
from uploader.transport import ChunkedUploadTransport

logger = get_logger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    WAITING_FOR_CAPACITY = "waiting-for-capacity"
    UPLOADING_BATCH = "uploading-batch"
    DISABLED = "disabled"


class SyncOutcome(str, Enum):
    """Why a run ended."""
    COMPLETED = "completed"
    DISABLED = "disabled"
    UNAUTHORIZED = "unauthorized"
    ALREADY_RUNNING = "already_running"
    EXPIRED = "expired"
    DEFERRED = "deferred"


@dataclass
class SyncReport:
    """
    Summary of one ``start()`` invocation.

    Attributes:
        outcome: Why the run ended
        enqueued: Stable ids handed to the transport, in order
        skipped: Stable ids already present on the server
        unresolved: Stable ids whose file could not be resolved or read
        deferred: Stable id whose catalog lookup failed (run stopped before it)
        batches: Number of non-empty batches processed
        watermark: Persisted watermark when the run ended
    """
    outcome: SyncOutcome
    enqueued: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)
    deferred: Optional[str] = None
    batches: int = 0
    watermark: Optional[datetime] = None


class _StopRun(Exception):
    def __init__(self, outcome: SyncOutcome):
        super().__init__(outcome.value)
        self.outcome = outcome


class SyncCoordinator:
    """
    Orchestrates one logical sync loop.

    ``start()`` is single-flight: a call made while another run is in
    progress returns immediately with outcome ``ALREADY_RUNNING``.
    """

    def __init__(
        self,
        source: AssetSource,
        catalog: RemoteCatalogClient,
        transport: ChunkedUploadTransport,
        progress: ProgressTracker,
        settings: SyncSettings,
        batch_ceiling: int = DEFAULT_BATCH_CEILING,
        poll_interval: float = DEFAULT_CAPACITY_POLL_INTERVAL_SECONDS,
    ):
        """
        Initialize coordinator.

        Args:
            source: Local media library
            catalog: Server metadata client used for dedup
            transport: Upload transport (also the backpressure signal)
            progress: Uploads progress tracker
            settings: Persisted enabled flag and watermark
            batch_ceiling: Batch size and maximum number of unfinished uploads
            poll_interval: Seconds between capacity checks
        """
        if batch_ceiling < 1:
            raise ValueError("batch_ceiling must be at least 1")

        self.source = source
        self.catalog = catalog
        self.transport = transport
        self.progress = progress
        self.settings = settings
        self.batch_ceiling = batch_ceiling
        self.poll_interval = poll_interval

        self._run_lock = threading.Lock()
        self._expired = threading.Event()
        self._state = SyncState.IDLE
        self._state_lock = threading.Lock()

    @property
    def state(self) -> SyncState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: SyncState) -> None:
        with self._state_lock:
            if self._state is not state:
                logger.debug(f"Sync state {self._state.value} -> {state.value}")
            self._state = state

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def expire(self) -> None:
        """
        Signal that the execution budget ran out.

        The current run stops before its next asset or batch; an enqueue
        already in progress still persists its session.
        """
        logger.info("Sync expiration requested")
        self._expired.set()

    def start(self) -> SyncReport:
        """
        Run discovery and upload hand-off until no new assets remain.

        Returns:
            SyncReport describing the run
        """
        if not self._run_lock.acquire(blocking=False):
            logger.info("Sync already running, ignoring start request")
            return SyncReport(outcome=SyncOutcome.ALREADY_RUNNING)

        self._expired.clear()
        report = SyncReport(outcome=SyncOutcome.COMPLETED)
        try:
            report.outcome = self._run(report)
        except _StopRun as stop:
            report.outcome = stop.outcome
        finally:
            report.watermark = self.settings.get_watermark()
            if report.outcome is SyncOutcome.DISABLED:
                self._set_state(SyncState.DISABLED)
            else:
                self._set_state(SyncState.IDLE)
            self._run_lock.release()

        logger.info(
            f"Sync finished [outcome={report.outcome.value}, batches={report.batches}, "
            f"enqueued={len(report.enqueued)}, skipped={len(report.skipped)}, "
            f"unresolved={len(report.unresolved)}, watermark={report.watermark.isoformat()}]"
        )
        return report

    def start_again(self) -> SyncReport:
        """Full re-scan: reset the watermark to the epoch, then start()."""
        if self.is_running:
            logger.info("Sync already running, ignoring start_again request")
            return SyncReport(outcome=SyncOutcome.ALREADY_RUNNING)
        self.settings.reset_watermark()
        return self.start()

    def _check_continue(self) -> None:
        if not self.settings.is_enabled():
            logger.info("Sync disabled, stopping run")
            raise _StopRun(SyncOutcome.DISABLED)
        if self._expired.is_set():
            logger.info("Sync expired, stopping run")
            raise _StopRun(SyncOutcome.EXPIRED)

    def _run(self, report: SyncReport) -> SyncOutcome:
        if not self.settings.is_enabled():
            logger.info("Sync is disabled, not starting")
            return SyncOutcome.DISABLED

        self._set_state(SyncState.DISCOVERING)
        status = self.source.request_authorization()
        if not status.allows_access:
            logger.warning(f"Media library access {status.value}, sync stopped")
            return SyncOutcome.UNAUTHORIZED

        while True:
            self._check_continue()
            self._wait_for_capacity()

            self._set_state(SyncState.DISCOVERING)
            watermark = self.settings.get_watermark()
            batch = self.source.fetch_since(watermark, self.batch_ceiling)
            if not batch:
                logger.debug(f"No assets newer than {watermark.isoformat()}")
                return SyncOutcome.COMPLETED

            report.batches += 1
            self._set_state(SyncState.UPLOADING_BATCH)
            logger.info(f"Processing batch {report.batches} ({len(batch)} asset(s))")
            self._process_batch(batch, watermark, report)

    def _wait_for_capacity(self) -> None:
        """Block while the transport has batch_ceiling or more unfinished uploads."""
        if self.transport.remaining_uploads() < self.batch_ceiling:
            return

        self._set_state(SyncState.WAITING_FOR_CAPACITY)
        logger.info(f"Waiting for upload capacity (ceiling={self.batch_ceiling})")
        while self.transport.remaining_uploads() >= self.batch_ceiling:
            if self._expired.wait(self.poll_interval):
                logger.info("Sync expired while waiting for capacity")
                raise _StopRun(SyncOutcome.EXPIRED)
            if not self.settings.is_enabled():
                raise _StopRun(SyncOutcome.DISABLED)

    def _process_batch(self, batch: List[AssetDescriptor], watermark: datetime, report: SyncReport) -> None:
        candidate = watermark
        try:
            for asset in batch:
                self._check_continue()
                if not self._process_asset(asset, report):
                    report.deferred = asset.stable_id
                    raise _StopRun(SyncOutcome.DEFERRED)
                if asset.created_at > candidate:
                    candidate = asset.created_at
        finally:
            if candidate > watermark:
                self.settings.set_watermark(candidate)

    def _process_asset(self, asset: AssetDescriptor, report: SyncReport) -> bool:
        """
        Handle one asset.

        Returns:
            False when the asset must be retried on a later run (catalog lookup
            failed); True when its outcome is final for this run
        """
        path = self.source.resolve_url(asset.stable_id)
        if path is None:
            logger.warning(f"Could not resolve asset {asset.stable_id}, skipping")
            report.unresolved.append(asset.stable_id)
            return True

        lookup = self.catalog.lookup_by_item_id(asset.stable_id)
        if lookup.is_error:
            logger.warning(f"Catalog lookup failed for {asset.stable_id} ({lookup.detail}), deferring")
            return False

        if lookup.exists:
            logger.debug(f"Asset {asset.stable_id} already on server, skipping")
            self.progress.complete(asset.stable_id)
            report.skipped.append(asset.stable_id)
            return True

        item = UploadItem(
            stable_id=asset.stable_id,
            source_path=path,
            filename=asset.filename or path.name,
            created_at=asset.created_at,
            derived_labels=asset.labels,
        )
        try:
            self.transport.enqueue(item)
        except OSError as e:
            logger.warning(f"Could not read asset {asset.stable_id} ({e}), skipping")
            report.unresolved.append(asset.stable_id)
            return True
        except UploadError as e:
            logger.error(f"Upload transport refused {asset.stable_id}: {e}")
            return False

        report.enqueued.append(asset.stable_id)
        return True
