"""Register an existing ``{z}/{x}/{y}`` tile directory as an image's pyramid."""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Tuple

from orthotiles.core.errors import RecordNotFound, SourceUnreadable
from orthotiles.core.models import ProcessingStatus, TileAddress, TileResult
from orthotiles.logging import get_logger
from orthotiles.records.base import ImageRecordGateway
from orthotiles.tiling.base import TileStore
from orthotiles.tiling.bounds import bounds_from_record

LOGGER = get_logger(__name__)


def import_tile_directory(
    image_id: int,
    source_dir: Path,
    gateway: ImageRecordGateway,
    store: TileStore,
    *,
    extension: str = "png",
    tile_size: int = 256,
) -> TileResult:
    """Copy pre-rendered tiles into the store and commit the record as complete."""

    record = gateway.get_image(image_id)
    if record is None:
        raise RecordNotFound(f"Drone image {image_id} not found")
    bounds = bounds_from_record(record)
    source_dir = Path(source_dir)
    if not source_dir.is_dir():
        raise SourceUnreadable(f"Tile directory not found: {source_dir}")
    tiles = sorted(_scan_tiles(source_dir, extension))
    if not tiles:
        raise SourceUnreadable(f"No {extension} tiles found under {source_dir}")

    store.discard(image_id)
    tiles_per_zoom: Counter = Counter()
    for zoom, column, row, path in tiles:
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise SourceUnreadable(f"Unable to read tile {path}") from exc
        store.put(TileAddress(image_id, zoom, column, row), data)
        tiles_per_zoom[zoom] += 1

    min_zoom = min(tiles_per_zoom)
    max_zoom = max(tiles_per_zoom)
    total_tiles = sum(tiles_per_zoom.values())
    store.write_metadata(
        image_id,
        {
            "imageId": image_id,
            "bounds": bounds.as_dict(),
            "minZoom": min_zoom,
            "maxZoom": max_zoom,
            "tileSize": tile_size,
            "format": extension,
            "totalTiles": total_tiles,
            "tilesPerZoom": {str(zoom): count for zoom, count in sorted(tiles_per_zoom.items())},
            "generatedAt": datetime.now(timezone.utc).isoformat(),
        },
    )
    storage_path = store.storage_path(image_id)
    gateway.update_image(
        image_id,
        {
            "has_tiles": True,
            "tile_min_zoom": min_zoom,
            "tile_max_zoom": max_zoom,
            "tile_storage_path": storage_path,
            "processing_status": ProcessingStatus.COMPLETE,
        },
    )
    LOGGER.info(
        "imported tile directory",
        extra={"image_id": image_id, "source": str(source_dir), "tiles": total_tiles},
    )
    return TileResult(
        min_zoom=min_zoom,
        max_zoom=max_zoom,
        storage_path=storage_path,
        total_tiles=total_tiles,
        tiles_per_zoom=dict(sorted(tiles_per_zoom.items())),
    )


def _scan_tiles(source_dir: Path, extension: str) -> Iterator[Tuple[int, int, int, Path]]:
    for zoom_dir in source_dir.iterdir():
        if not (zoom_dir.is_dir() and zoom_dir.name.isdigit()):
            continue
        for column_dir in zoom_dir.iterdir():
            if not (column_dir.is_dir() and column_dir.name.isdigit()):
                continue
            for tile in column_dir.glob(f"*.{extension}"):
                if tile.stem.isdigit():
                    yield int(zoom_dir.name), int(column_dir.name), int(tile.stem), tile
