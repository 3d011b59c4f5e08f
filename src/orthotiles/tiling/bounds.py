"""Linear pixel <-> geographic mapping for axis-aligned orthomosaics."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

from orthotiles.core.errors import InvalidBounds
from orthotiles.core.models import DroneImageRecord, ImageBounds


def validate_bounds(bounds: ImageBounds) -> ImageBounds:
    """Return ``bounds`` unchanged or raise :class:`InvalidBounds`."""

    values = (bounds.north, bounds.south, bounds.east, bounds.west)
    if not all(math.isfinite(value) for value in values):
        raise InvalidBounds(f"Bounds contain non-finite values: {bounds}")
    if bounds.north <= bounds.south:
        raise InvalidBounds(f"north ({bounds.north}) must be greater than south ({bounds.south})")
    if bounds.east <= bounds.west:
        raise InvalidBounds(f"east ({bounds.east}) must be greater than west ({bounds.west})")
    if bounds.north > 90.0 or bounds.south < -90.0:
        raise InvalidBounds(f"Latitude outside [-90, 90]: {bounds}")
    if bounds.east > 180.0 or bounds.west < -180.0:
        raise InvalidBounds(f"Longitude outside [-180, 180]: {bounds}")
    return bounds


def bounds_from_record(record: DroneImageRecord) -> ImageBounds:
    """Parse the decimal-string corners stored on a drone image record."""

    try:
        bounds = ImageBounds(
            north=float(record.north_east_lat),
            south=float(record.south_west_lat),
            east=float(record.north_east_lng),
            west=float(record.south_west_lng),
        )
    except (TypeError, ValueError) as exc:
        raise InvalidBounds(f"Image {record.id} has unparseable bounds") from exc
    return validate_bounds(bounds)


@dataclass(frozen=True)
class GeoTransform:
    """Affine map between pixel ``(px, py)`` (origin top-left) and ``(lng, lat)``.

    Pixel spacing is assumed uniform in degrees across the box, which is an
    approximation that holds for small, near-equatorial orthomosaics.
    """

    bounds: ImageBounds
    width: int
    height: int

    @classmethod
    def from_bounds(cls, bounds: ImageBounds, width: int, height: int) -> "GeoTransform":
        validate_bounds(bounds)
        if width <= 0 or height <= 0:
            raise InvalidBounds(f"Image dimensions must be positive, got {width}x{height}")
        return cls(bounds=bounds, width=width, height=height)

    @property
    def degrees_per_pixel(self) -> Tuple[float, float]:
        return (self.bounds.lng_span / self.width, self.bounds.lat_span / self.height)

    def to_geo(self, px: float, py: float) -> Tuple[float, float]:
        lng = self.bounds.west + (px / self.width) * self.bounds.lng_span
        lat = self.bounds.north - (py / self.height) * self.bounds.lat_span
        return lng, lat

    def to_pixel(self, lng: float, lat: float) -> Tuple[float, float]:
        px = (lng - self.bounds.west) / self.bounds.lng_span * self.width
        py = (self.bounds.north - lat) / self.bounds.lat_span * self.height
        return px, py
