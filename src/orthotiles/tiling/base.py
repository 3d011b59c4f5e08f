"""Protocol definitions for tile generation components."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol

from orthotiles.core.models import ImageBounds, TileAddress, TileResult

ProgressCallback = Callable[[int, str], None]


class TileStore(Protocol):
    """Write-once storage for tiles addressed by (image, zoom, column, row)."""

    def storage_path(self, image_id: int) -> str:
        """Return the handle recorded on the image as its pyramid root."""

    def put(self, address: TileAddress, data: bytes) -> None:
        """Write a tile; raise StorageWriteFailure if the address is taken."""

    def get(self, address: TileAddress) -> Optional[bytes]:
        """Return the encoded tile or None when absent."""

    def exists(self, address: TileAddress) -> bool:
        """Return True when a tile has been written at the address."""

    def iter_addresses(self, image_id: int) -> Iterator[TileAddress]:
        """Yield every tile address stored for the image."""

    def image_ids(self) -> List[int]:
        """Return the ids of images that have any stored pyramid content."""

    def discard(self, image_id: int) -> int:
        """Delete an image's whole pyramid and return the number of tiles removed."""

    def write_metadata(self, image_id: int, payload: Dict[str, Any]) -> None:
        """Persist the pyramid summary next to the tiles."""

    def read_metadata(self, image_id: int) -> Optional[Dict[str, Any]]:
        """Return the pyramid summary or None when absent."""


class TileGenerator(Protocol):
    """Interface for building a sparse slippy-map pyramid from one orthomosaic."""

    def generate(
        self,
        source_path: Path,
        bounds: ImageBounds,
        image_id: int,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TileResult:
        """Write every tile of the pyramid and return its summary."""
