"""Tile pyramid generation for orthotiles."""

from .base import ProgressCallback, TileGenerator, TileStore
from .bounds import GeoTransform, bounds_from_record, validate_bounds
from .progress import ProgressReporter, logging_progress, printing_progress
from .pyramid import TilePyramidBuilder, generate_tiles_from_image
from .store import METADATA_FILENAME, FilesystemTileStore
from .zoom import TileRange, ZoomRange, ZoomRangePlanner, tile_bounds, tile_range

__all__ = [
    "FilesystemTileStore",
    "GeoTransform",
    "METADATA_FILENAME",
    "ProgressCallback",
    "ProgressReporter",
    "TileGenerator",
    "TilePyramidBuilder",
    "TileRange",
    "TileStore",
    "ZoomRange",
    "ZoomRangePlanner",
    "bounds_from_record",
    "generate_tiles_from_image",
    "logging_progress",
    "printing_progress",
    "tile_bounds",
    "tile_range",
    "validate_bounds",
]
