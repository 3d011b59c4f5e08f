"""Batch migration of drone image records into tile pyramids."""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from orthotiles.core.errors import GatewayError, RecordNotFound, TilingError
from orthotiles.core.models import DroneImageRecord, ProcessingStatus, TileResult
from orthotiles.logging import get_logger
from orthotiles.records.base import ImageRecordGateway
from orthotiles.tiling.base import ProgressCallback, TileGenerator
from orthotiles.tiling.bounds import bounds_from_record
from orthotiles.tiling.progress import logging_progress

LOGGER = get_logger(__name__)

DEFAULT_STALE_AFTER = timedelta(minutes=60)

ProgressFactory = Callable[[int], Optional[ProgressCallback]]
Clock = Callable[[], datetime]


class OutcomeStatus(str, Enum):
    MIGRATED = "migrated"
    SKIPPED_HAS_TILES = "skipped_has_tiles"
    SKIPPED_MISSING_SOURCE = "skipped_missing_source"
    SKIPPED_IN_PROGRESS = "skipped_in_progress"
    FAILED = "failed"
    NOT_FOUND = "not_found"

    @property
    def skipped(self) -> bool:
        return self in {
            OutcomeStatus.SKIPPED_HAS_TILES,
            OutcomeStatus.SKIPPED_MISSING_SOURCE,
            OutcomeStatus.SKIPPED_IN_PROGRESS,
            OutcomeStatus.NOT_FOUND,
        }


@dataclass
class ImageOutcome:
    """What happened to one image during a migration run."""

    image_id: int
    status: OutcomeStatus
    result: Optional[TileResult] = None
    error: Optional[str] = None
    duration_seconds: float = 0.0


@dataclass
class MigrationSummary:
    outcomes: List[ImageOutcome] = field(default_factory=list)

    @property
    def migrated(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is OutcomeStatus.MIGRATED)

    @property
    def skipped(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status.skipped)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is OutcomeStatus.FAILED)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_stale_build(record: DroneImageRecord, now: datetime, stale_after: timedelta) -> bool:
    """Return True when a ``generating_tiles`` record has outlived ``stale_after``.

    Records without a start timestamp predate stuck-build tracking and are
    always considered stale.
    """

    started = record.processing_started_at
    if started is None:
        return True
    if started.tzinfo is None:
        started = started.replace(tzinfo=timezone.utc)
    return now - started >= stale_after


class MigrationOrchestrator:
    """Drive records through ``not_started -> generating_tiles -> complete | failed``.

    Every per-image failure is recorded on the image and contained, as is a
    record deleted mid-run. Any other :class:`GatewayError` escapes, since
    without the record store no further progress is possible.
    """

    def __init__(
        self,
        gateway: ImageRecordGateway,
        generator: TileGenerator,
        *,
        source_root: Optional[Path] = None,
        max_workers: int = 1,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        progress_factory: Optional[ProgressFactory] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._gateway = gateway
        self._generator = generator
        self._source_root = Path(source_root) if source_root is not None else None
        self._max_workers = max_workers
        self._stale_after = stale_after
        self._progress_factory = progress_factory or logging_progress
        self._clock = clock or utc_now
        self._locks: Dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def migrate_image(self, image_id: int) -> ImageOutcome:
        record = self._gateway.get_image(image_id)
        if record is None:
            LOGGER.error("drone image not found", extra={"image_id": image_id})
            return ImageOutcome(image_id, OutcomeStatus.NOT_FOUND, error=f"Drone image {image_id} not found")
        return self.migrate_record(record)

    def migrate_all(self) -> MigrationSummary:
        records = self._gateway.list_images_needing_tiles()
        LOGGER.info("starting migration", extra={"images": len(records), "max_workers": self._max_workers})
        if self._max_workers == 1 or len(records) <= 1:
            outcomes = [self.migrate_record(record) for record in records]
        else:
            outcomes = self._migrate_concurrently(records)
        summary = MigrationSummary(outcomes=outcomes)
        LOGGER.info(
            "migration complete",
            extra={"migrated": summary.migrated, "skipped": summary.skipped, "failed": summary.failed},
        )
        return summary

    def migrate_record(self, record: DroneImageRecord) -> ImageOutcome:
        started = time.perf_counter()
        context = {"image_id": record.id, "image_name": record.name}
        if record.has_tiles:
            LOGGER.info("image already has tiles; skipping", extra=context)
            return ImageOutcome(record.id, OutcomeStatus.SKIPPED_HAS_TILES)
        if not self._eligible(record):
            LOGGER.info("image build in progress elsewhere; skipping", extra=context)
            return ImageOutcome(record.id, OutcomeStatus.SKIPPED_IN_PROGRESS)
        source = self.resolve_source(record)
        if not source.is_file():
            LOGGER.warning("source file not found; skipping", extra={**context, "path": str(source)})
            return ImageOutcome(record.id, OutcomeStatus.SKIPPED_MISSING_SOURCE)

        with self._image_lock(record.id):
            try:
                return self._build(record, source, context, started)
            except RecordNotFound as exc:
                # Deleted after it was listed; any tiles written are left for the sweep.
                LOGGER.warning("drone image vanished during migration", extra=context)
                return ImageOutcome(
                    record.id,
                    OutcomeStatus.NOT_FOUND,
                    error=str(exc),
                    duration_seconds=time.perf_counter() - started,
                )

    def _build(
        self,
        record: DroneImageRecord,
        source: Path,
        context: Dict[str, object],
        started: float,
    ) -> ImageOutcome:
        LOGGER.info("processing image", extra={**context, "path": str(source)})
        self._gateway.update_image(
            record.id,
            {
                "processing_status": ProcessingStatus.GENERATING_TILES,
                "processing_started_at": self._clock(),
            },
        )
        try:
            bounds = bounds_from_record(record)
            result = self._generator.generate(source, bounds, record.id, self._progress_factory(record.id))
        except GatewayError:
            raise
        except TilingError as exc:
            LOGGER.error(
                "tile generation failed",
                exc_info=True,
                extra={**context, "error_type": type(exc).__name__, "retryable": exc.retryable},
            )
            return self._mark_failed(record, exc, started)
        except Exception as exc:
            LOGGER.exception("unexpected error during tile generation", extra=context)
            return self._mark_failed(record, exc, started)

        self._gateway.update_image(
            record.id,
            {
                "has_tiles": True,
                "tile_min_zoom": result.min_zoom,
                "tile_max_zoom": result.max_zoom,
                "tile_storage_path": result.storage_path,
                "processing_status": ProcessingStatus.COMPLETE,
            },
        )
        duration = time.perf_counter() - started
        LOGGER.info(
            "image migrated",
            extra={
                **context,
                "tiles": result.total_tiles,
                "min_zoom": result.min_zoom,
                "max_zoom": result.max_zoom,
                "duration_s": f"{duration:.2f}",
            },
        )
        return ImageOutcome(record.id, OutcomeStatus.MIGRATED, result=result, duration_seconds=duration)

    def find_stuck_images(self) -> List[DroneImageRecord]:
        """Return ``generating_tiles`` records older than the stale threshold."""

        now = self._clock()
        return [
            record
            for record in self._gateway.list_images()
            if record.processing_status is ProcessingStatus.GENERATING_TILES
            and is_stale_build(record, now, self._stale_after)
        ]

    def resolve_source(self, record: DroneImageRecord) -> Path:
        path = Path(record.file_path)
        if path.is_absolute() or self._source_root is None:
            return path
        return self._source_root / path

    def _eligible(self, record: DroneImageRecord) -> bool:
        status = record.processing_status
        if status is ProcessingStatus.NOT_STARTED:
            return True
        if status is ProcessingStatus.FAILED:
            return True
        if status is ProcessingStatus.COMPLETE:
            # complete without has_tiles means the commit was lost; rebuild.
            return True
        if status is ProcessingStatus.GENERATING_TILES:
            return is_stale_build(record, self._clock(), self._stale_after)
        raise AssertionError(f"Unhandled processing status: {status!r}")

    def _mark_failed(self, record: DroneImageRecord, exc: BaseException, started: float) -> ImageOutcome:
        self._gateway.update_image(record.id, {"processing_status": ProcessingStatus.FAILED})
        return ImageOutcome(
            record.id,
            OutcomeStatus.FAILED,
            error=str(exc) or type(exc).__name__,
            duration_seconds=time.perf_counter() - started,
        )

    def _migrate_concurrently(self, records: Iterable[DroneImageRecord]) -> List[ImageOutcome]:
        ordered = list(records)
        results: Dict[int, ImageOutcome] = {}
        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="orthotiles") as executor:
            futures: Dict[Future, DroneImageRecord] = {
                executor.submit(self.migrate_record, record): record for record in ordered
            }
            try:
                for future in as_completed(futures):
                    record = futures[future]
                    results[record.id] = future.result()
            except GatewayError:
                for pending in futures:
                    pending.cancel()
                raise
        return [results[record.id] for record in ordered]

    def _image_lock(self, image_id: int) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(image_id)
            if lock is None:
                lock = self._locks[image_id] = threading.Lock()
            return lock
