"""Tile pyramid generation for drone orthomosaics."""

from __future__ import annotations

import importlib
from typing import Any

__all__ = [
    "DroneImageRecord",
    "FilesystemTileStore",
    "HttpImageGateway",
    "ImageBounds",
    "InMemoryImageGateway",
    "JsonFileImageGateway",
    "MigrationOrchestrator",
    "PipelineConfig",
    "ProcessingStatus",
    "TileAddress",
    "TilePyramidBuilder",
    "TileResult",
    "TilingConfig",
    "ZoomRangePlanner",
    "generate_tiles_from_image",
    "import_tile_directory",
    "load_config",
    "sweep_orphaned_pyramids",
]

_MODULE_MAP = {
    "DroneImageRecord": ("orthotiles.core", "DroneImageRecord"),
    "FilesystemTileStore": ("orthotiles.tiling", "FilesystemTileStore"),
    "HttpImageGateway": ("orthotiles.records", "HttpImageGateway"),
    "ImageBounds": ("orthotiles.core", "ImageBounds"),
    "InMemoryImageGateway": ("orthotiles.records", "InMemoryImageGateway"),
    "JsonFileImageGateway": ("orthotiles.records", "JsonFileImageGateway"),
    "MigrationOrchestrator": ("orthotiles.migration", "MigrationOrchestrator"),
    "PipelineConfig": ("orthotiles.config", "PipelineConfig"),
    "ProcessingStatus": ("orthotiles.core", "ProcessingStatus"),
    "TileAddress": ("orthotiles.core", "TileAddress"),
    "TilePyramidBuilder": ("orthotiles.tiling", "TilePyramidBuilder"),
    "TileResult": ("orthotiles.core", "TileResult"),
    "TilingConfig": ("orthotiles.core", "TilingConfig"),
    "ZoomRangePlanner": ("orthotiles.tiling", "ZoomRangePlanner"),
    "generate_tiles_from_image": ("orthotiles.tiling", "generate_tiles_from_image"),
    "import_tile_directory": ("orthotiles.migration", "import_tile_directory"),
    "load_config": ("orthotiles.config", "load_config"),
    "sweep_orphaned_pyramids": ("orthotiles.migration", "sweep_orphaned_pyramids"),
}


def __getattr__(name: str) -> Any:
    if name not in _MODULE_MAP:
        raise AttributeError(f"module 'orthotiles' has no attribute '{name}'")
    module_name, attr = _MODULE_MAP[name]
    module = importlib.import_module(module_name)
    return getattr(module, attr)
