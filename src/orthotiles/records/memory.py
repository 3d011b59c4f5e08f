"""In-process record store used for embedding and tests."""

from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional

from orthotiles.core.errors import RecordNotFound
from orthotiles.core.models import DroneImageRecord

from .base import ImageRecordGateway


class InMemoryImageGateway(ImageRecordGateway):
    """Thread-safe dictionary of records keyed by id."""

    def __init__(self, records: Iterable[DroneImageRecord] = ()) -> None:
        self._lock = threading.Lock()
        self._records: Dict[int, DroneImageRecord] = {record.id: record for record in records}
        self.updates: List[Dict[str, Any]] = []

    def add(self, record: DroneImageRecord) -> None:
        with self._lock:
            self._records[record.id] = record

    def get_image(self, image_id: int) -> Optional[DroneImageRecord]:
        with self._lock:
            return self._records.get(image_id)

    def list_images(self) -> List[DroneImageRecord]:
        with self._lock:
            return [self._records[key] for key in sorted(self._records)]

    def list_images_needing_tiles(self) -> List[DroneImageRecord]:
        return [record for record in self.list_images() if not record.has_tiles]

    def update_image(self, image_id: int, updates: Mapping[str, Any]) -> DroneImageRecord:
        with self._lock:
            current = self._records.get(image_id)
            if current is None:
                raise RecordNotFound(f"Drone image {image_id} not found")
            updated = current.with_updates(updates)
            self._records[image_id] = updated
            self.updates.append({"id": image_id, **dict(updates)})
            return updated

    def remove(self, image_id: int) -> None:
        with self._lock:
            self._records.pop(image_id, None)
