"""Protocol definitions for drone image record access."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Protocol

from orthotiles.core.models import DroneImageRecord


class ImageRecordGateway(Protocol):
    """Narrow read/update interface over the drone image record store.

    Implementations raise :class:`orthotiles.core.errors.GatewayError` when the
    store itself cannot be reached; the pipeline treats that as fatal.
    """

    def get_image(self, image_id: int) -> Optional[DroneImageRecord]:
        """Return the record or None when no image has the id."""

    def list_images(self) -> List[DroneImageRecord]:
        """Return every record, ordered by id."""

    def list_images_needing_tiles(self) -> List[DroneImageRecord]:
        """Return records without a committed pyramid, ordered by id."""

    def update_image(self, image_id: int, updates: Mapping[str, Any]) -> DroneImageRecord:
        """Apply a partial update (snake_case fields) and return the new record."""
