"""Progress reporting for long-running pyramid builds."""

from __future__ import annotations

from logging import Logger
from typing import Optional

from orthotiles.logging import get_logger

from .base import ProgressCallback

LOGGER = get_logger(__name__)


class ProgressReporter:
    """Forward ``(percent, stage)`` updates to a per-image sink.

    Percentages are clamped to ``[0, 100]`` and never decrease. A failing sink
    is logged and otherwise ignored so that reporting cannot abort a build.
    """

    def __init__(self, sink: Optional[ProgressCallback], *, image_id: Optional[int] = None) -> None:
        self._sink = sink
        self._image_id = image_id
        self._last_percent = 0

    @property
    def last_percent(self) -> int:
        return self._last_percent

    def report(self, percent: float, stage: str) -> None:
        value = max(self._last_percent, min(100, max(0, int(round(percent)))))
        self._last_percent = value
        if self._sink is None:
            return
        try:
            self._sink(value, stage)
        except Exception:
            LOGGER.warning(
                "progress sink raised; continuing build",
                exc_info=True,
                extra={"image_id": self._image_id, "percent": value},
            )


def logging_progress(image_id: int, logger: Optional[Logger] = None) -> ProgressCallback:
    """Return a sink that logs ``[id] percent% - stage`` lines."""

    target = logger or LOGGER

    def _report(percent: int, stage: str) -> None:
        target.info("[%s] %d%% - %s", image_id, percent, stage, extra={"image_id": image_id})

    return _report


def printing_progress(prefix: str = "  ") -> ProgressCallback:
    """Return a sink that prints progress lines for interactive runs."""

    def _report(percent: int, stage: str) -> None:
        print(f"{prefix}{percent}% - {stage}", flush=True)

    return _report
