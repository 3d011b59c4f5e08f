"""Sparse slippy-map pyramid construction from a single orthomosaic."""

from __future__ import annotations

import io
import time
import warnings
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Set, Tuple, Union

import numpy as np
import rasterio
from PIL import Image, UnidentifiedImageError
from rasterio.enums import Resampling
from rasterio.errors import NotGeoreferencedWarning, RasterioError
from rasterio.io import DatasetReader
from rasterio.windows import Window

from orthotiles.core.errors import ResourceExhausted, SourceUnreadable, StorageWriteFailure
from orthotiles.core.models import ImageBounds, TileAddress, TileResult, TilingConfig
from orthotiles.logging import get_logger

from .base import ProgressCallback, TileGenerator, TileStore
from .bounds import GeoTransform, validate_bounds
from .progress import ProgressReporter
from .zoom import ZoomRange, ZoomRangePlanner, lat_to_tile_y, lng_to_tile_x, tile_bounds, tile_range

LOGGER = get_logger(__name__)

RESAMPLING_KERNELS = {
    "nearest": Resampling.nearest,
    "bilinear": Resampling.bilinear,
    "cubic": Resampling.cubic,
    "average": Resampling.average,
    "lanczos": Resampling.lanczos,
}

TILE_FORMATS = {"PNG": "png", "WEBP": "webp"}

Cell = Tuple[int, int]


class TilePyramidBuilder(TileGenerator):
    """Build a sparse tile pyramid finest level first.

    The finest level is resampled straight from the source raster, one
    tile-aligned window per tile, so peak memory does not depend on the source
    size. Every coarser level is a 2x2 quad-merge of the level below it, read
    back from the tile store.
    """

    def __init__(self, store: TileStore, config: Optional[TilingConfig] = None) -> None:
        self._config = config or TilingConfig()
        self._format = self._config.tile_format.upper()
        if self._format not in TILE_FORMATS:
            raise ValueError(f"Unsupported tile format: {self._config.tile_format}")
        resampling = self._config.resampling.lower()
        if resampling not in RESAMPLING_KERNELS:
            raise ValueError(f"Unsupported resampling kernel: {self._config.resampling}")
        if self._config.tile_size < 2 or self._config.tile_size % 2:
            raise ValueError("tile_size must be an even number of pixels")
        _ignore_ungeoreferenced_warnings()
        self._kernel = RESAMPLING_KERNELS[resampling]
        self._store = store
        self._planner = ZoomRangePlanner(
            tile_size=self._config.tile_size,
            max_zoom_cap=self._config.max_zoom_cap,
            search_depth=self._config.min_zoom_search_depth,
        )

    def generate(
        self,
        source_path: Path,
        bounds: ImageBounds,
        image_id: int,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TileResult:
        validate_bounds(bounds)
        progress = ProgressReporter(on_progress, image_id=image_id)
        started = time.perf_counter()
        progress.report(0, "Opening source raster")

        levels: Dict[int, Set[Cell]] = {}
        with _open_source(Path(source_path)) as dataset:
            transform = GeoTransform.from_bounds(bounds, dataset.width, dataset.height)
            zoom_range = self._planner.plan(bounds, dataset.width, dataset.height)
            LOGGER.info(
                "planned pyramid",
                extra={
                    "image_id": image_id,
                    "width": dataset.width,
                    "height": dataset.height,
                    "min_zoom": zoom_range.min_zoom,
                    "max_zoom": zoom_range.max_zoom,
                },
            )
            stale = self._store.discard(image_id)
            if stale:
                LOGGER.warning("removed %d tiles left by an earlier build", stale, extra={"image_id": image_id})
            progress.report(0, f"Generating tiles at zoom {zoom_range.min_zoom}-{zoom_range.max_zoom}")
            levels[zoom_range.max_zoom] = self._render_finest_level(dataset, transform, image_id, zoom_range.max_zoom)
        self._report_level(progress, zoom_range, zoom_range.max_zoom, levels)

        for zoom in range(zoom_range.max_zoom - 1, zoom_range.min_zoom - 1, -1):
            levels[zoom] = self._merge_level(image_id, zoom, levels[zoom + 1])
            self._report_level(progress, zoom_range, zoom, levels)

        tiles_per_zoom = {zoom: len(cells) for zoom, cells in sorted(levels.items())}
        total_tiles = sum(tiles_per_zoom.values())
        self._store.write_metadata(
            image_id,
            {
                "imageId": image_id,
                "bounds": bounds.as_dict(),
                "minZoom": zoom_range.min_zoom,
                "maxZoom": zoom_range.max_zoom,
                "tileSize": self._config.tile_size,
                "format": TILE_FORMATS[self._format],
                "totalTiles": total_tiles,
                "tilesPerZoom": {str(zoom): count for zoom, count in tiles_per_zoom.items()},
                "generatedAt": datetime.now(timezone.utc).isoformat(),
            },
        )
        duration = time.perf_counter() - started
        LOGGER.info(
            "pyramid complete",
            extra={"image_id": image_id, "tiles": total_tiles, "duration_s": f"{duration:.2f}"},
        )
        progress.report(100, f"Complete: {total_tiles} tiles")
        return TileResult(
            min_zoom=zoom_range.min_zoom,
            max_zoom=zoom_range.max_zoom,
            storage_path=self._store.storage_path(image_id),
            total_tiles=total_tiles,
            tiles_per_zoom=tiles_per_zoom,
        )

    # ------------------------------------------------------------------
    # Finest level: resample the source
    # ------------------------------------------------------------------
    def _render_finest_level(
        self,
        dataset: DatasetReader,
        transform: GeoTransform,
        image_id: int,
        zoom: int,
    ) -> Set[Cell]:
        cells: Set[Cell] = set()
        for column, row in tile_range(transform.bounds, zoom):
            pixels = self._render_tile(dataset, transform, column, row, zoom)
            if pixels is None:
                # Footprint covers less than half a tile pixel here.
                LOGGER.debug(
                    "skipping empty tile",
                    extra={"image_id": image_id, "zoom": zoom, "column": column, "row": row},
                )
                continue
            self._write(TileAddress(image_id, zoom, column, row), pixels)
            cells.add((column, row))
        return cells

    def _render_tile(
        self,
        dataset: DatasetReader,
        transform: GeoTransform,
        column: int,
        row: int,
        zoom: int,
    ) -> Optional[np.ndarray]:
        size = self._config.tile_size
        cell = tile_bounds(column, row, zoom)
        footprint = transform.bounds
        west = max(cell.west, footprint.west)
        east = min(cell.east, footprint.east)
        north = min(cell.north, footprint.north)
        south = max(cell.south, footprint.south)
        if east <= west or north <= south:
            return None

        x0 = _clamp(round((lng_to_tile_x(west, zoom) - column) * size), size)
        x1 = _clamp(round((lng_to_tile_x(east, zoom) - column) * size), size)
        y0 = _clamp(round((lat_to_tile_y(north, zoom) - row) * size), size)
        y1 = _clamp(round((lat_to_tile_y(south, zoom) - row) * size), size)
        if x1 <= x0 or y1 <= y0:
            return None

        col_off, row_off = transform.to_pixel(west, north)
        col_end, row_end = transform.to_pixel(east, south)
        col_off, col_end = _span(col_off, col_end, transform.width)
        row_off, row_end = _span(row_off, row_end, transform.height)
        window = Window(col_off, row_off, col_end - col_off, row_end - row_off)
        try:
            canvas = np.zeros((size, size, 4), dtype=np.uint8)
            canvas[y0:y1, x0:x1] = self._read_rgba(dataset, window, y1 - y0, x1 - x0)
        except MemoryError as exc:
            raise ResourceExhausted(f"Unable to allocate buffers for tile {zoom}/{column}/{row}") from exc
        except RasterioError as exc:
            raise SourceUnreadable(f"Failed reading source window for tile {zoom}/{column}/{row}") from exc
        return canvas

    def _read_rgba(self, dataset: DatasetReader, window: Window, height: int, width: int) -> np.ndarray:
        indexes = [1, 2, 3] if dataset.count >= 3 else [1]
        data = dataset.read(
            indexes=indexes,
            window=window,
            out_shape=(len(indexes), height, width),
            resampling=self._kernel,
        )
        data = _to_uint8(data)
        if data.shape[0] == 1:
            data = np.repeat(data, 3, axis=0)
        mask = dataset.dataset_mask(window=window, out_shape=(height, width), resampling=Resampling.nearest)
        rgba = np.empty((height, width, 4), dtype=np.uint8)
        rgba[..., :3] = np.moveaxis(data, 0, -1)
        rgba[..., 3] = mask
        return rgba

    # ------------------------------------------------------------------
    # Coarser levels: quad-merge
    # ------------------------------------------------------------------
    def _merge_level(self, image_id: int, zoom: int, children: Set[Cell]) -> Set[Cell]:
        size = self._config.tile_size
        half = size // 2
        parents = sorted({(column // 2, row // 2) for column, row in children}, key=lambda cell: (cell[1], cell[0]))
        for column, row in parents:
            try:
                canvas = Image.new("RGBA", (size, size), (0, 0, 0, 0))
                for dy in (0, 1):
                    for dx in (0, 1):
                        child = (column * 2 + dx, row * 2 + dy)
                        if child not in children:
                            continue
                        quadrant = self._load_tile(TileAddress(image_id, zoom + 1, *child))
                        canvas.paste(quadrant.resize((half, half), Image.Resampling.BOX), (dx * half, dy * half))
            except MemoryError as exc:
                raise ResourceExhausted(f"Unable to allocate buffers for tile {zoom}/{column}/{row}") from exc
            self._write(TileAddress(image_id, zoom, column, row), canvas)
        return set(parents)

    def _load_tile(self, address: TileAddress) -> Image.Image:
        data = self._store.get(address)
        if data is None:
            raise StorageWriteFailure(f"Tile {address} vanished from the store during the build")
        try:
            with Image.open(io.BytesIO(data)) as image:
                return image.convert("RGBA")
        except (UnidentifiedImageError, OSError) as exc:
            raise StorageWriteFailure(f"Tile {address} could not be decoded") from exc

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _write(self, address: TileAddress, pixels: Union[np.ndarray, Image.Image]) -> None:
        image = pixels if isinstance(pixels, Image.Image) else Image.fromarray(pixels)
        buffer = io.BytesIO()
        image.save(buffer, format=self._format)
        self._store.put(address, buffer.getvalue())

    def _report_level(
        self,
        progress: ProgressReporter,
        zoom_range: ZoomRange,
        zoom: int,
        levels: Dict[int, Set[Cell]],
    ) -> None:
        completed = zoom_range.max_zoom - zoom + 1
        percent = completed / zoom_range.levels * 100
        progress.report(percent, f"Zoom {zoom}: {len(levels[zoom])} tiles")


def generate_tiles_from_image(
    source_path: Path,
    bounds: ImageBounds,
    image_id: int,
    on_progress: Optional[ProgressCallback] = None,
    *,
    store: TileStore,
    config: Optional[TilingConfig] = None,
) -> TileResult:
    """Convenience wrapper around :class:`TilePyramidBuilder`."""

    builder = TilePyramidBuilder(store, config)
    return builder.generate(source_path, bounds, image_id, on_progress)


def _open_source(path: Path) -> DatasetReader:
    if not path.is_file():
        raise SourceUnreadable(f"Source raster not found: {path}")
    try:
        return rasterio.open(path)
    except RasterioError as exc:
        raise SourceUnreadable(f"Unable to decode source raster {path}") from exc


def _clamp(value: int, upper: int) -> int:
    return max(0, min(upper, int(value)))


def _span(start: float, end: float, limit: int) -> Tuple[float, float]:
    """Clip a source pixel span to the raster and widen slivers to one pixel."""

    start = max(0.0, start)
    end = min(float(limit), end)
    if end - start < 1.0:
        start = max(0.0, min(start, limit - 1.0))
        end = start + 1.0
    return start, end


def _to_uint8(data: np.ndarray) -> np.ndarray:
    """Map samples to bytes: integers by their dtype range, floats as 0-255 values.

    No per-band stretch is applied, so 12-bit data stored as uint16 renders dark
    and 0-1 reflectance renders black.
    """

    if data.dtype == np.uint8:
        return data
    if np.issubdtype(data.dtype, np.integer):
        scale = 255.0 / np.iinfo(data.dtype).max
        return np.clip(np.rint(data.astype(np.float64) * scale), 0, 255).astype(np.uint8)
    return np.clip(np.rint(np.nan_to_num(data)), 0, 255).astype(np.uint8)


def _ignore_ungeoreferenced_warnings() -> None:
    # Orthomosaics are georeferenced by their record, not their file. The filter
    # is process-wide since catch_warnings is not thread-safe.
    warnings.filterwarnings("ignore", category=NotGeoreferencedWarning)
