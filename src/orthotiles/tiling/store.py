"""Filesystem tile store laid out as ``{root}/{image_id}/{z}/{x}/{y}.{ext}``."""

from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from orthotiles.core.errors import StorageWriteFailure
from orthotiles.core.models import TileAddress
from orthotiles.logging import get_logger

from .base import TileStore

LOGGER = get_logger(__name__)

METADATA_FILENAME = "metadata.json"


class FilesystemTileStore(TileStore):
    """Hierarchical, append-only tile directory shared by every image."""

    def __init__(self, root: Path, *, extension: str = "png", storage_prefix: str = "") -> None:
        self._root = Path(root)
        self._extension = extension.lower().lstrip(".")
        self._storage_prefix = storage_prefix.rstrip("/")

    @property
    def root(self) -> Path:
        return self._root

    @property
    def extension(self) -> str:
        return self._extension

    def image_dir(self, image_id: int) -> Path:
        return self._root / str(image_id)

    def tile_path(self, address: TileAddress) -> Path:
        return (
            self.image_dir(address.image_id)
            / str(address.zoom)
            / str(address.column)
            / f"{address.row}.{self._extension}"
        )

    def storage_path(self, image_id: int) -> str:
        if self._storage_prefix:
            return f"{self._storage_prefix}/{image_id}"
        return str(self.image_dir(image_id).resolve())

    def put(self, address: TileAddress, data: bytes) -> None:
        target = self.tile_path(address)
        if target.exists():
            raise StorageWriteFailure(f"Tile already written: {address}")
        temp_path = target.with_suffix(target.suffix + ".part")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_bytes(data)
            temp_path.replace(target)
        except OSError as exc:
            raise StorageWriteFailure(f"Unable to write tile {address} to {target}") from exc

    def get(self, address: TileAddress) -> Optional[bytes]:
        path = self.tile_path(address)
        if not path.is_file():
            return None
        return path.read_bytes()

    def exists(self, address: TileAddress) -> bool:
        return self.tile_path(address).is_file()

    def iter_addresses(self, image_id: int) -> Iterator[TileAddress]:
        image_dir = self.image_dir(image_id)
        if not image_dir.is_dir():
            return
        for zoom_dir in sorted(_numeric_children(image_dir), key=lambda item: int(item.name)):
            for column_dir in sorted(_numeric_children(zoom_dir), key=lambda item: int(item.name)):
                rows = []
                for tile in column_dir.glob(f"*.{self._extension}"):
                    if tile.stem.isdigit():
                        rows.append(int(tile.stem))
                for row in sorted(rows):
                    yield TileAddress(image_id, int(zoom_dir.name), int(column_dir.name), row)

    def image_ids(self) -> List[int]:
        if not self._root.is_dir():
            return []
        return sorted(int(path.name) for path in _numeric_children(self._root))

    def discard(self, image_id: int) -> int:
        image_dir = self.image_dir(image_id)
        if not image_dir.exists():
            return 0
        removed = sum(1 for _ in self.iter_addresses(image_id))
        try:
            shutil.rmtree(image_dir)
        except OSError as exc:
            raise StorageWriteFailure(f"Unable to remove pyramid for image {image_id}") from exc
        LOGGER.info("discarded pyramid", extra={"image_id": image_id, "tiles": removed})
        return removed

    def write_metadata(self, image_id: int, payload: Dict[str, Any]) -> None:
        path = self.image_dir(image_id) / METADATA_FILENAME
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        except OSError as exc:
            raise StorageWriteFailure(f"Unable to write metadata for image {image_id}") from exc

    def read_metadata(self, image_id: int) -> Optional[Dict[str, Any]]:
        path = self.image_dir(image_id) / METADATA_FILENAME
        if not path.is_file():
            return None
        return json.loads(path.read_text(encoding="utf-8"))


def _numeric_children(directory: Path) -> Iterator[Path]:
    for child in directory.iterdir():
        if child.is_dir() and child.name.isdigit():
            yield child
