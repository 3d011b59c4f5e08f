"""Dataclasses describing core orthotiles entities."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


class ProcessingStatus(str, Enum):
    """Lifecycle of a drone image's tile pyramid."""

    NOT_STARTED = "not_started"
    GENERATING_TILES = "generating_tiles"
    COMPLETE = "complete"
    FAILED = "failed"

    @classmethod
    def parse(cls, value: Any) -> "ProcessingStatus":
        if isinstance(value, cls):
            return value
        # Records created before the tiling pipeline existed carry "pending".
        if value is None or value == "pending":
            return cls.NOT_STARTED
        return cls(str(value))


@dataclass(frozen=True)
class ImageBounds:
    """Axis-aligned geographic box in degrees."""

    north: float
    south: float
    east: float
    west: float

    @property
    def lat_span(self) -> float:
        return self.north - self.south

    @property
    def lng_span(self) -> float:
        return self.east - self.west

    @property
    def center(self) -> Tuple[float, float]:
        """Return ``(lng, lat)`` of the box center."""

        return ((self.east + self.west) / 2.0, (self.north + self.south) / 2.0)

    def as_dict(self) -> Dict[str, float]:
        return {"north": self.north, "south": self.south, "east": self.east, "west": self.west}


@dataclass(frozen=True, order=True)
class TileAddress:
    """Location of one tile in the global slippy-map grid for one image."""

    image_id: int
    zoom: int
    column: int
    row: int

    def parent(self) -> "TileAddress":
        if self.zoom == 0:
            raise ValueError("zoom 0 tiles have no parent")
        return TileAddress(self.image_id, self.zoom - 1, self.column // 2, self.row // 2)

    def children(self) -> Tuple["TileAddress", ...]:
        zoom = self.zoom + 1
        return tuple(
            TileAddress(self.image_id, zoom, self.column * 2 + dx, self.row * 2 + dy)
            for dy in (0, 1)
            for dx in (0, 1)
        )


@dataclass
class TileResult:
    """Summary of one successful pyramid build."""

    min_zoom: int
    max_zoom: int
    storage_path: str
    total_tiles: int
    tiles_per_zoom: Dict[int, int] = field(default_factory=dict)


_CAMEL_FIELDS = {
    "id": "id",
    "name": "name",
    "file_path": "filePath",
    "north_east_lat": "northEastLat",
    "north_east_lng": "northEastLng",
    "south_west_lat": "southWestLat",
    "south_west_lng": "southWestLng",
    "has_tiles": "hasTiles",
    "tile_min_zoom": "tileMinZoom",
    "tile_max_zoom": "tileMaxZoom",
    "tile_storage_path": "tileStoragePath",
    "processing_status": "processingStatus",
    "processing_started_at": "processingStartedAt",
}


@dataclass
class DroneImageRecord:
    """Persisted drone image fields read and written by the tiling pipeline.

    Bounding box corners are kept as the decimal strings the record store
    holds; :func:`orthotiles.tiling.bounds.bounds_from_record` parses them.
    """

    id: int
    file_path: str
    north_east_lat: str
    north_east_lng: str
    south_west_lat: str
    south_west_lng: str
    name: str = ""
    has_tiles: bool = False
    tile_min_zoom: Optional[int] = None
    tile_max_zoom: Optional[int] = None
    tile_storage_path: Optional[str] = None
    processing_status: ProcessingStatus = ProcessingStatus.NOT_STARTED
    processing_started_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.processing_status = ProcessingStatus.parse(self.processing_status)
        if isinstance(self.processing_started_at, str):
            self.processing_started_at = datetime.fromisoformat(self.processing_started_at)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "DroneImageRecord":
        """Build a record from camelCase (store) or snake_case keys."""

        values: Dict[str, Any] = {}
        for attr, camel in _CAMEL_FIELDS.items():
            if camel in payload:
                values[attr] = payload[camel]
            elif attr in payload:
                values[attr] = payload[attr]
        for key in ("north_east_lat", "north_east_lng", "south_west_lat", "south_west_lng"):
            if key in values and values[key] is not None:
                values[key] = str(values[key])
        values["id"] = int(values["id"])
        values["has_tiles"] = bool(values.get("has_tiles") or False)
        return cls(**values)

    def to_mapping(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for attr, camel in _CAMEL_FIELDS.items():
            value = getattr(self, attr)
            if isinstance(value, ProcessingStatus):
                value = value.value
            elif isinstance(value, datetime):
                value = value.isoformat()
            payload[camel] = value
        return payload

    def with_updates(self, updates: Mapping[str, Any]) -> "DroneImageRecord":
        """Return a copy with ``updates`` (snake_case field names) applied."""

        known = {item.name for item in fields(self)}
        unknown = set(updates) - known
        if unknown:
            raise ValueError(f"Unknown drone image fields: {', '.join(sorted(unknown))}")
        if "id" in updates and updates["id"] != self.id:
            raise ValueError("Drone image id cannot be changed")
        return replace(self, **dict(updates))


def camel_case_updates(updates: Mapping[str, Any]) -> Dict[str, Any]:
    """Translate a snake_case partial update into the store's field names."""

    payload: Dict[str, Any] = {}
    for attr, value in updates.items():
        if isinstance(value, ProcessingStatus):
            value = value.value
        elif isinstance(value, datetime):
            value = value.isoformat()
        payload[_CAMEL_FIELDS.get(attr, attr)] = value
    return payload


@dataclass
class TilingConfig:
    """Options that control pyramid generation."""

    tile_size: int = 256
    tile_format: str = "PNG"
    resampling: str = "bilinear"
    max_zoom_cap: int = 20
    min_zoom_search_depth: int = 3


@dataclass
class RecordsConfig:
    """Where drone image records are read from and written to."""

    backend: str = "json"
    path: str = "data/drone_images.json"
    api_base_url: Optional[str] = None
    api_token_env: str = "ORTHOTILES_API_TOKEN"
    timeout_seconds: int = 30


@dataclass
class MigrationConfig:
    """Batch migration policy."""

    max_workers: int = 1
    stale_after_minutes: float = 60.0
    default_image_id: int = 11
