"""Exception taxonomy shared by the tiling pipeline."""

from __future__ import annotations


class TilingError(RuntimeError):
    """Base class for failures that abort the pyramid build of one image."""

    retryable = True


class InvalidBounds(TilingError, ValueError):
    """Raised when a geographic box is malformed or degenerate."""

    retryable = False


class SourceUnreadable(TilingError):
    """Raised when the source raster is missing or cannot be decoded."""


class ResourceExhausted(TilingError):
    """Raised when buffers for resampling cannot be allocated."""


class StorageWriteFailure(TilingError):
    """Raised when a tile cannot be written to the tile store."""


class GatewayError(RuntimeError):
    """Raised when the drone image record store cannot be reached or updated."""


class RecordNotFound(GatewayError):
    """Raised when an update targets a drone image id that does not exist."""
