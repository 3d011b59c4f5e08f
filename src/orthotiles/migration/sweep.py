"""Removal of pyramids that no committed record points at."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, List, Optional

from orthotiles.core.models import DroneImageRecord, ProcessingStatus
from orthotiles.logging import get_logger
from orthotiles.records.base import ImageRecordGateway
from orthotiles.tiling.base import TileStore

from .orchestrator import DEFAULT_STALE_AFTER, is_stale_build, utc_now

LOGGER = get_logger(__name__)


def orphan_reason(
    record: Optional[DroneImageRecord],
    now: datetime,
    stale_after: timedelta = DEFAULT_STALE_AFTER,
) -> Optional[str]:
    """Return why a stored pyramid is garbage, or None when it must be kept."""

    if record is None:
        return "record missing"
    if record.has_tiles:
        return None
    status = record.processing_status
    if status is ProcessingStatus.GENERATING_TILES:
        if is_stale_build(record, now, stale_after):
            return "stale build"
        return None
    if status is ProcessingStatus.FAILED:
        return "failed build"
    if status is ProcessingStatus.NOT_STARTED or status is ProcessingStatus.COMPLETE:
        return "uncommitted build"
    raise AssertionError(f"Unhandled processing status: {status!r}")


def sweep_orphaned_pyramids(
    gateway: ImageRecordGateway,
    store: TileStore,
    *,
    dry_run: bool = False,
    stale_after: timedelta = DEFAULT_STALE_AFTER,
    clock: Optional[Callable[[], datetime]] = None,
) -> List[int]:
    """Discard every stored pyramid not backed by a committed record.

    Returns the ids of the swept images; with ``dry_run`` nothing is deleted.
    """

    records = {record.id: record for record in gateway.list_images()}
    now = (clock or utc_now)()
    swept: List[int] = []
    for image_id in store.image_ids():
        reason = orphan_reason(records.get(image_id), now, stale_after)
        if reason is None:
            continue
        swept.append(image_id)
        if dry_run:
            LOGGER.info("would sweep pyramid", extra={"image_id": image_id, "reason": reason})
            continue
        removed = store.discard(image_id)
        LOGGER.info("swept pyramid", extra={"image_id": image_id, "reason": reason, "tiles": removed})
    return swept
