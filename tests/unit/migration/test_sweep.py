from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import pytest

from orthotiles.core.models import DroneImageRecord, TileAddress
from orthotiles.migration import sweep_orphaned_pyramids
from orthotiles.records import InMemoryImageGateway
from orthotiles.tiling.store import FilesystemTileStore


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def populated(
    tmp_path: Path, make_record: Callable[..., DroneImageRecord]
) -> "tuple[InMemoryImageGateway, FilesystemTileStore]":
    gateway = InMemoryImageGateway(
        [
            make_record(1, "a.tif", has_tiles=True, processing_status="complete"),
            make_record(2, "b.tif", processing_status="failed"),
            make_record(4, "d.tif", processing_status="generating_tiles", processing_started_at=NOW - timedelta(minutes=5)),
            make_record(5, "e.tif", processing_status="generating_tiles", processing_started_at=NOW - timedelta(days=1)),
        ]
    )
    store = FilesystemTileStore(tmp_path / "tiles")
    for image_id in (1, 2, 3, 4, 5):
        store.put(TileAddress(image_id, 10, 1, 1), b"tile")
    return gateway, store


def test_sweeps_uncommitted_and_unowned_pyramids(populated) -> None:  # type: ignore[no-untyped-def]
    gateway, store = populated

    swept = sweep_orphaned_pyramids(gateway, store, clock=lambda: NOW)

    assert swept == [2, 3, 5]
    assert store.image_ids() == [1, 4]
    assert gateway.updates == []


def test_dry_run_deletes_nothing(populated) -> None:  # type: ignore[no-untyped-def]
    gateway, store = populated

    swept = sweep_orphaned_pyramids(gateway, store, dry_run=True, clock=lambda: NOW)

    assert swept == [2, 3, 5]
    assert store.image_ids() == [1, 2, 3, 4, 5]


def test_stale_threshold_is_configurable(populated) -> None:  # type: ignore[no-untyped-def]
    gateway, store = populated

    swept = sweep_orphaned_pyramids(gateway, store, dry_run=True, stale_after=timedelta(minutes=1), clock=lambda: NOW)

    assert swept == [2, 3, 4, 5]
