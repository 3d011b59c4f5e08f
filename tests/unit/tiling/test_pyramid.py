import io
import warnings
from pathlib import Path
from typing import Callable, List, Tuple

import numpy as np
import pytest
from PIL import Image
from rasterio.errors import NotGeoreferencedWarning

from orthotiles.core.errors import InvalidBounds, SourceUnreadable
from orthotiles.core.models import ImageBounds, TileAddress, TilingConfig
from orthotiles.tiling.pyramid import TilePyramidBuilder, _to_uint8, generate_tiles_from_image
from orthotiles.tiling.store import FilesystemTileStore


SMALL_BOUNDS = ImageBounds(north=0.01, south=0.0, east=0.01, west=0.0)
YELLOWSTONE = ImageBounds(north=44.0, south=43.0, east=-110.0, west=-111.0)


@pytest.fixture()
def store(tmp_path: Path) -> FilesystemTileStore:
    return FilesystemTileStore(tmp_path / "tiles")


def _decode(store: FilesystemTileStore, address: TileAddress) -> Image.Image:
    data = store.get(address)
    assert data is not None, f"missing tile {address}"
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


def test_builds_sparse_pyramid(make_raster: Callable[..., Path], store: FilesystemTileStore) -> None:
    source = make_raster()

    result = generate_tiles_from_image(source, SMALL_BOUNDS, 1, store=store)

    assert (result.min_zoom, result.max_zoom) == (15, 17)
    assert result.tiles_per_zoom == {15: 1, 16: 4, 17: 16}
    assert result.total_tiles == 21
    assert result.storage_path == store.storage_path(1)
    assert len(list(store.iter_addresses(1))) == 21


def test_every_tile_has_a_parent_up_to_min_zoom(make_raster: Callable[..., Path], store: FilesystemTileStore) -> None:
    result = TilePyramidBuilder(store).generate(make_raster(), SMALL_BOUNDS, 2)

    addresses = set(store.iter_addresses(2))
    for address in addresses:
        if address.zoom > result.min_zoom:
            assert address.parent() in addresses


def test_tiles_are_rgba_png_with_transparent_outside(
    make_raster: Callable[..., Path], store: FilesystemTileStore
) -> None:
    TilePyramidBuilder(store).generate(make_raster(), SMALL_BOUNDS, 3)

    # East edge of the footprint crosses this tile about 64% of the way across.
    edge = _decode(store, TileAddress(3, 17, 65539, 65535))
    assert edge.format == "PNG"
    assert edge.size == (256, 256)
    assert edge.mode == "RGBA"
    assert edge.getpixel((10, 128)) == (200, 50, 25, 255)
    assert edge.getpixel((250, 128))[3] == 0

    overview = _decode(store, TileAddress(3, 15, 16384, 16383))
    assert overview.getpixel((0, 0))[3] == 0
    assert overview.getpixel((40, 250)) == (200, 50, 25, 255)


def test_single_band_sources_are_replicated_to_grey(
    make_raster: Callable[..., Path], store: FilesystemTileStore
) -> None:
    source = make_raster("grey.png", color=77, mode="L")

    TilePyramidBuilder(store).generate(source, SMALL_BOUNDS, 4)

    tile = _decode(store, TileAddress(4, 17, 65536, 65535))
    assert tile.getpixel((128, 128)) == (77, 77, 77, 255)


def test_progress_is_reported_per_level_and_ends_at_100(
    make_raster: Callable[..., Path], store: FilesystemTileStore
) -> None:
    reports: List[Tuple[int, str]] = []

    TilePyramidBuilder(store).generate(make_raster(), SMALL_BOUNDS, 5, lambda percent, stage: reports.append((percent, stage)))

    percents = [percent for percent, _ in reports]
    assert percents[0] == 0
    assert percents[-1] == 100
    assert percents == sorted(percents)
    stages = [stage for _, stage in reports]
    assert "Zoom 17: 16 tiles" in stages
    assert "Zoom 16: 4 tiles" in stages
    assert "Zoom 15: 1 tiles" in stages
    assert (33, "Zoom 17: 16 tiles") in reports
    assert (67, "Zoom 16: 4 tiles") in reports


def test_metadata_is_written(make_raster: Callable[..., Path], store: FilesystemTileStore) -> None:
    TilePyramidBuilder(store).generate(make_raster(), SMALL_BOUNDS, 6)

    metadata = store.read_metadata(6)

    assert metadata is not None
    assert metadata["imageId"] == 6
    assert metadata["minZoom"] == 15
    assert metadata["maxZoom"] == 17
    assert metadata["tileSize"] == 256
    assert metadata["format"] == "png"
    assert metadata["totalTiles"] == 21
    assert metadata["tilesPerZoom"] == {"15": 1, "16": 4, "17": 16}
    assert metadata["bounds"] == {"north": 0.01, "south": 0.0, "east": 0.01, "west": 0.0}
    assert "generatedAt" in metadata


def test_rebuild_replaces_leftover_tiles(make_raster: Callable[..., Path], store: FilesystemTileStore) -> None:
    source = make_raster()
    store.put(TileAddress(7, 17, 65536, 65532), b"garbage from a crashed build")
    store.put(TileAddress(7, 3, 0, 0), b"stray")

    result = TilePyramidBuilder(store).generate(source, SMALL_BOUNDS, 7)

    assert result.total_tiles == 21
    assert not store.exists(TileAddress(7, 3, 0, 0))
    assert _decode(store, TileAddress(7, 17, 65536, 65532)).mode == "RGBA"


def test_example_footprint_has_single_tile_at_min_zoom(
    make_raster: Callable[..., Path], store: FilesystemTileStore
) -> None:
    source = make_raster(size=(256, 256))

    result = TilePyramidBuilder(store).generate(source, YELLOWSTONE, 8)

    assert result.min_zoom == 6
    assert result.tiles_per_zoom[result.min_zoom] == 1
    counts = [result.tiles_per_zoom[zoom] for zoom in range(result.min_zoom, result.max_zoom + 1)]
    assert all(count > 0 for count in counts)
    assert counts == sorted(counts)


def test_missing_source_is_unreadable(store: FilesystemTileStore, tmp_path: Path) -> None:
    with pytest.raises(SourceUnreadable):
        TilePyramidBuilder(store).generate(tmp_path / "absent.tif", SMALL_BOUNDS, 9)
    assert store.image_ids() == []


def test_corrupt_source_is_unreadable(store: FilesystemTileStore, tmp_path: Path) -> None:
    corrupt = tmp_path / "corrupt.tif"
    corrupt.write_bytes(b"definitely not a raster")

    with pytest.raises(SourceUnreadable):
        TilePyramidBuilder(store).generate(corrupt, SMALL_BOUNDS, 10)


def test_invalid_bounds_fail_before_reading(store: FilesystemTileStore, tmp_path: Path) -> None:
    inverted = ImageBounds(north=0.0, south=0.01, east=0.01, west=0.0)

    with pytest.raises(InvalidBounds):
        TilePyramidBuilder(store).generate(tmp_path / "absent.tif", inverted, 11)


@pytest.mark.parametrize(
    "config",
    [
        TilingConfig(tile_format="JPEG"),
        TilingConfig(resampling="gaussian-ish"),
        TilingConfig(tile_size=255),
    ],
)
def test_invalid_configuration_is_rejected(store: FilesystemTileStore, config: TilingConfig) -> None:
    with pytest.raises(ValueError):
        TilePyramidBuilder(store, config)


def test_webp_tiles(make_raster: Callable[..., Path], tmp_path: Path) -> None:
    store = FilesystemTileStore(tmp_path / "webp", extension="webp")
    config = TilingConfig(tile_format="WEBP", resampling="nearest")

    result = TilePyramidBuilder(store, config).generate(make_raster(), SMALL_BOUNDS, 12)

    assert result.total_tiles == 21
    assert _decode(store, TileAddress(12, 15, 16384, 16383)).format == "WEBP"


def test_slivers_below_half_a_pixel_are_not_written(
    make_raster: Callable[..., Path], store: FilesystemTileStore
) -> None:
    # East edge reaches about 0.007 px into column 65540 at zoom 17.
    bounds = ImageBounds(north=0.01, south=0.0, east=0.0109864, west=0.0)

    result = TilePyramidBuilder(store).generate(make_raster(), bounds, 14)

    assert result.max_zoom == 17
    assert result.tiles_per_zoom[17] == 16
    assert result.tiles_per_zoom[16] == 4
    assert result.tiles_per_zoom[result.min_zoom] == 1
    addresses = list(store.iter_addresses(14))
    assert len(addresses) == result.total_tiles
    assert all(address.column < 65540 for address in addresses if address.zoom == 17)
    for address in addresses:
        _, alpha_high = _decode(store, address).getextrema()[3]
        assert alpha_high == 255, f"fully transparent tile {address}"


def test_ungeoreferenced_sources_build_without_warnings(
    make_raster: Callable[..., Path], store: FilesystemTileStore
) -> None:
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        TilePyramidBuilder(store).generate(make_raster(), SMALL_BOUNDS, 15)

    assert not [item for item in caught if issubclass(item.category, NotGeoreferencedWarning)]


def test_non_byte_samples_are_scaled_without_stretch() -> None:
    wide = np.array([[[0, 32768, 65535]]], dtype=np.uint16)
    reflectance = np.array([[[0.25, 1.0, 300.0, np.nan]]], dtype=np.float32)

    assert _to_uint8(wide).tolist() == [[[0, 128, 255]]]
    assert _to_uint8(reflectance).tolist() == [[[0, 1, 255, 0]]]
