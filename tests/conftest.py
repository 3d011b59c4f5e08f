from pathlib import Path
from typing import Callable, Tuple, Union

import pytest
from PIL import Image

from orthotiles.core.models import DroneImageRecord, ImageBounds

# 0.01 degree square just north-east of (0, 0): zoom 15-17, 1/4/16 tiles.
SMALL_BOUNDS = ImageBounds(north=0.01, south=0.0, east=0.01, west=0.0)

Color = Union[int, Tuple[int, ...]]


@pytest.fixture()
def make_raster(tmp_path: Path) -> Callable[..., Path]:
    def _make(
        name: str = "ortho.png",
        size: Tuple[int, int] = (512, 512),
        color: Color = (200, 50, 25),
        mode: str = "RGB",
    ) -> Path:
        path = tmp_path / name
        Image.new(mode, size, color).save(path)
        return path

    return _make


@pytest.fixture()
def make_record() -> Callable[..., DroneImageRecord]:
    def _make(image_id: int, file_path: Union[str, Path], bounds: ImageBounds = SMALL_BOUNDS, **kwargs) -> DroneImageRecord:  # type: ignore[no-untyped-def]
        return DroneImageRecord(
            id=image_id,
            name=kwargs.pop("name", f"image-{image_id}"),
            file_path=str(file_path),
            north_east_lat=str(bounds.north),
            north_east_lng=str(bounds.east),
            south_west_lat=str(bounds.south),
            south_west_lng=str(bounds.west),
            **kwargs,
        )

    return _make
