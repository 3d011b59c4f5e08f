"""Core data models for orthotiles."""

from .errors import (
    GatewayError,
    InvalidBounds,
    RecordNotFound,
    ResourceExhausted,
    SourceUnreadable,
    StorageWriteFailure,
    TilingError,
)
from .models import (
    DroneImageRecord,
    ImageBounds,
    MigrationConfig,
    ProcessingStatus,
    RecordsConfig,
    TileAddress,
    TileResult,
    TilingConfig,
)

__all__ = [
    "DroneImageRecord",
    "GatewayError",
    "ImageBounds",
    "InvalidBounds",
    "MigrationConfig",
    "ProcessingStatus",
    "RecordNotFound",
    "RecordsConfig",
    "ResourceExhausted",
    "SourceUnreadable",
    "StorageWriteFailure",
    "TileAddress",
    "TileResult",
    "TilingConfig",
    "TilingError",
]
