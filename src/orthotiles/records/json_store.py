"""Record store backed by a JSON array on disk."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, List, Mapping, Optional

from orthotiles.core.errors import GatewayError, RecordNotFound
from orthotiles.core.models import DroneImageRecord
from orthotiles.logging import get_logger

from .base import ImageRecordGateway

LOGGER = get_logger(__name__)


class JsonFileImageGateway(ImageRecordGateway):
    """Read records from a JSON file and rewrite it atomically on update.

    The file holds a list of objects using the camelCase field names of the
    persisted drone image schema. It is re-read on every call so edits made by
    other tools between calls are picked up.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def get_image(self, image_id: int) -> Optional[DroneImageRecord]:
        for record in self.list_images():
            if record.id == image_id:
                return record
        return None

    def list_images(self) -> List[DroneImageRecord]:
        with self._lock:
            payload = self._read()
        try:
            records = [DroneImageRecord.from_mapping(item) for item in payload]
        except (KeyError, TypeError, ValueError) as exc:
            raise GatewayError(f"Malformed drone image record in {self._path}: {exc}") from exc
        return sorted(records, key=lambda record: record.id)

    def list_images_needing_tiles(self) -> List[DroneImageRecord]:
        return [record for record in self.list_images() if not record.has_tiles]

    def update_image(self, image_id: int, updates: Mapping[str, Any]) -> DroneImageRecord:
        with self._lock:
            payload = self._read()
            for index, item in enumerate(payload):
                if int(item.get("id", -1)) != image_id:
                    continue
                updated = DroneImageRecord.from_mapping(item).with_updates(updates)
                merged = dict(item)
                merged.update(updated.to_mapping())
                payload[index] = merged
                self._write(payload)
                LOGGER.debug(
                    "record updated",
                    extra={"image_id": image_id, "fields": sorted(updates), "path": str(self._path)},
                )
                return updated
        raise RecordNotFound(f"Drone image {image_id} not found in {self._path}")

    def _read(self) -> List[dict]:
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except FileNotFoundError as exc:
            raise GatewayError(f"Record store not found: {self._path}") from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise GatewayError(f"Unable to read record store {self._path}: {exc}") from exc
        if not isinstance(payload, list):
            raise GatewayError(f"Record store {self._path} must contain a JSON array")
        return payload

    def _write(self, payload: List[dict]) -> None:
        temp_path = self._path.with_suffix(self._path.suffix + ".part")
        try:
            temp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            temp_path.replace(self._path)
        except OSError as exc:
            raise GatewayError(f"Unable to write record store {self._path}: {exc}") from exc
