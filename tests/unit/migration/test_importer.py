import io
from pathlib import Path
from typing import Callable

import pytest
from PIL import Image

from orthotiles.core.errors import RecordNotFound, SourceUnreadable
from orthotiles.core.models import DroneImageRecord, ProcessingStatus, TileAddress
from orthotiles.migration import import_tile_directory
from orthotiles.records import InMemoryImageGateway
from orthotiles.tiling.store import FilesystemTileStore


def _png() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", (256, 256), (0, 128, 0, 255)).save(buffer, format="PNG")
    return buffer.getvalue()


def _write_tile(root: Path, zoom: int, column: int, row: int) -> None:
    path = root / str(zoom) / str(column) / f"{row}.png"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(_png())


def test_imports_tiles_and_commits_record(tmp_path: Path, make_record: Callable[..., DroneImageRecord]) -> None:
    source_dir = tmp_path / "prebuilt"
    for zoom, column, row in [(14, 8192, 8191), (15, 16384, 16382), (15, 16384, 16383), (16, 32768, 32766)]:
        _write_tile(source_dir, zoom, column, row)
    (source_dir / "README.txt").write_text("exported tiles")
    (source_dir / "15" / "16384" / "preview.png").write_bytes(b"x")
    (source_dir / "thumbnails").mkdir()
    gateway = InMemoryImageGateway([make_record(9, "gone.tif")])
    store = FilesystemTileStore(tmp_path / "tiles", storage_prefix="/tiles")

    result = import_tile_directory(9, source_dir, gateway, store)

    assert (result.min_zoom, result.max_zoom, result.total_tiles) == (14, 16, 4)
    assert result.tiles_per_zoom == {14: 1, 15: 2, 16: 1}
    assert store.exists(TileAddress(9, 15, 16384, 16383))
    record = gateway.get_image(9)
    assert record.has_tiles is True
    assert record.processing_status is ProcessingStatus.COMPLETE
    assert (record.tile_min_zoom, record.tile_max_zoom) == (14, 16)
    assert record.tile_storage_path == "/tiles/9"
    metadata = store.read_metadata(9)
    assert metadata["totalTiles"] == 4
    assert metadata["tilesPerZoom"] == {"14": 1, "15": 2, "16": 1}


def test_missing_directory_is_unreadable(tmp_path: Path, make_record: Callable[..., DroneImageRecord]) -> None:
    gateway = InMemoryImageGateway([make_record(9, "gone.tif")])

    with pytest.raises(SourceUnreadable):
        import_tile_directory(9, tmp_path / "nowhere", gateway, FilesystemTileStore(tmp_path / "tiles"))
    assert gateway.updates == []


def test_empty_directory_is_unreadable(tmp_path: Path, make_record: Callable[..., DroneImageRecord]) -> None:
    (tmp_path / "empty" / "12").mkdir(parents=True)
    gateway = InMemoryImageGateway([make_record(9, "gone.tif")])

    with pytest.raises(SourceUnreadable):
        import_tile_directory(9, tmp_path / "empty", gateway, FilesystemTileStore(tmp_path / "tiles"))


def test_missing_record_is_rejected(tmp_path: Path) -> None:
    _write_tile(tmp_path / "prebuilt", 3, 1, 1)

    with pytest.raises(RecordNotFound):
        import_tile_directory(9, tmp_path / "prebuilt", InMemoryImageGateway(), FilesystemTileStore(tmp_path / "tiles"))
