"""Slippy-map grid math and zoom range planning."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterator, Tuple

from orthotiles.core.models import ImageBounds

from .bounds import validate_bounds

EARTH_RADIUS_M = 6378137.0
EARTH_CIRCUMFERENCE_M = 2.0 * math.pi * EARTH_RADIUS_M
MAX_MERCATOR_LAT = 85.0511287798
_EPSILON = 1e-9


def _clamp_lat(lat: float) -> float:
    return max(-MAX_MERCATOR_LAT, min(MAX_MERCATOR_LAT, lat))


def lng_to_tile_x(lng: float, zoom: int) -> float:
    """Fractional tile column of ``lng`` at ``zoom``."""

    return (lng + 180.0) / 360.0 * (1 << zoom)


def lat_to_tile_y(lat: float, zoom: int) -> float:
    """Fractional tile row of ``lat`` at ``zoom`` (row 0 at the north edge)."""

    lat_rad = math.radians(_clamp_lat(lat))
    return (1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * (1 << zoom)


def tile_x_to_lng(x: float, zoom: int) -> float:
    return x / (1 << zoom) * 360.0 - 180.0


def tile_y_to_lat(y: float, zoom: int) -> float:
    n = math.pi * (1.0 - 2.0 * y / (1 << zoom))
    return math.degrees(math.atan(math.sinh(n)))


def tile_bounds(column: int, row: int, zoom: int) -> ImageBounds:
    """Geographic footprint of one grid cell."""

    return ImageBounds(
        north=tile_y_to_lat(row, zoom),
        south=tile_y_to_lat(row + 1, zoom),
        east=tile_x_to_lng(column + 1, zoom),
        west=tile_x_to_lng(column, zoom),
    )


@dataclass(frozen=True)
class TileRange:
    """Inclusive column/row range of grid cells at one zoom level."""

    zoom: int
    min_column: int
    max_column: int
    min_row: int
    max_row: int

    @property
    def count(self) -> int:
        return (self.max_column - self.min_column + 1) * (self.max_row - self.min_row + 1)

    def __iter__(self) -> Iterator[Tuple[int, int]]:
        for row in range(self.min_row, self.max_row + 1):
            for column in range(self.min_column, self.max_column + 1):
                yield column, row


def tile_range(bounds: ImageBounds, zoom: int) -> TileRange:
    """Return the grid cells whose footprint overlaps ``bounds`` at ``zoom``.

    Cells that only touch the box along an edge are excluded.
    """

    last = (1 << zoom) - 1
    x0 = lng_to_tile_x(bounds.west, zoom)
    x1 = lng_to_tile_x(bounds.east, zoom)
    y0 = lat_to_tile_y(bounds.north, zoom)
    y1 = lat_to_tile_y(bounds.south, zoom)
    min_column = max(0, min(last, math.floor(x0 + _EPSILON)))
    max_column = max(min_column, min(last, math.ceil(x1 - _EPSILON) - 1))
    min_row = max(0, min(last, math.floor(y0 + _EPSILON)))
    max_row = max(min_row, min(last, math.ceil(y1 - _EPSILON) - 1))
    return TileRange(zoom, min_column, max_column, min_row, max_row)


def ground_resolution(lat: float, zoom: int, tile_size: int = 256) -> float:
    """Meters per tile pixel at ``lat`` and ``zoom``."""

    return math.cos(math.radians(_clamp_lat(lat))) * EARTH_CIRCUMFERENCE_M / (tile_size * (1 << zoom))


def image_ground_resolution(bounds: ImageBounds, width: int, height: int) -> float:
    """Finest meters-per-pixel of the source along either axis, at its center latitude."""

    meters_per_degree = EARTH_CIRCUMFERENCE_M / 360.0
    center_lat = _clamp_lat(bounds.center[1])
    res_x = bounds.lng_span * meters_per_degree * math.cos(math.radians(center_lat)) / width
    res_y = bounds.lat_span * meters_per_degree / height
    return min(res_x, res_y)


@dataclass(frozen=True)
class ZoomRange:
    min_zoom: int
    max_zoom: int

    @property
    def levels(self) -> int:
        return self.max_zoom - self.min_zoom + 1


class ZoomRangePlanner:
    """Derive the usable zoom range of an orthomosaic from its resolution.

    ``max_zoom`` is the smallest zoom whose tile ground resolution is at least
    as fine as the source's own. ``min_zoom`` starts at the deepest level where
    the footprint's longer (Mercator) extent fits within one tile width, then
    walks up to ``search_depth`` levels shallower looking for a level where the
    whole footprint lands in a single tile, so the pyramid ends in one overview
    tile. Footprints smaller than a tile at ``max_zoom`` get a single level.
    """

    def __init__(self, *, tile_size: int = 256, max_zoom_cap: int = 20, search_depth: int = 3) -> None:
        if tile_size <= 0:
            raise ValueError("tile_size must be positive")
        self._tile_size = tile_size
        self._max_zoom_cap = max_zoom_cap
        self._search_depth = max(0, search_depth)

    def plan(self, bounds: ImageBounds, width: int, height: int) -> ZoomRange:
        validate_bounds(bounds)
        max_zoom = self.max_zoom_for(bounds, width, height)
        fit_zoom = self._fit_zoom(bounds)
        if fit_zoom >= max_zoom:
            return ZoomRange(max_zoom, max_zoom)

        floor = max(0, fit_zoom - self._search_depth)
        for zoom in range(fit_zoom, floor - 1, -1):
            if tile_range(bounds, zoom).count == 1:
                return ZoomRange(zoom, max_zoom)
        return ZoomRange(fit_zoom, max_zoom)

    def max_zoom_for(self, bounds: ImageBounds, width: int, height: int) -> int:
        native = image_ground_resolution(bounds, width, height)
        ratio = ground_resolution(bounds.center[1], 0, self._tile_size) / native
        if ratio <= 1.0:
            return 0
        zoom = math.ceil(math.log2(ratio) - _EPSILON)
        return max(0, min(self._max_zoom_cap, zoom))

    def _fit_zoom(self, bounds: ImageBounds) -> int:
        extent_x = bounds.lng_span / 360.0
        extent_y = lat_to_tile_y(bounds.south, 0) - lat_to_tile_y(bounds.north, 0)
        extent = max(extent_x, extent_y)
        if extent <= 0.0:
            return self._max_zoom_cap
        return max(0, math.floor(math.log2(1.0 / extent) + _EPSILON))
