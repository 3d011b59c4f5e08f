import logging

import pytest

from orthotiles.tiling.progress import ProgressReporter, logging_progress, printing_progress


def test_reports_are_clamped_and_monotonic() -> None:
    seen = []
    reporter = ProgressReporter(lambda percent, stage: seen.append((percent, stage)))

    reporter.report(-5, "start")
    reporter.report(33.4, "zoom 17")
    reporter.report(20, "late")
    reporter.report(140, "done")

    assert [percent for percent, _ in seen] == [0, 33, 33, 100]
    assert reporter.last_percent == 100


def test_failing_sink_does_not_raise(caplog: pytest.LogCaptureFixture) -> None:
    def broken(percent: int, stage: str) -> None:
        raise RuntimeError("display went away")

    reporter = ProgressReporter(broken, image_id=9)

    with caplog.at_level(logging.WARNING):
        reporter.report(50, "zoom 12")

    assert reporter.last_percent == 50
    assert "progress sink raised" in caplog.text


def test_no_sink_is_allowed() -> None:
    reporter = ProgressReporter(None)

    reporter.report(75, "zoom 3")

    assert reporter.last_percent == 75


def test_printing_progress_format(capsys: pytest.CaptureFixture[str]) -> None:
    sink = printing_progress()

    sink(42, "Zoom 16: 4 tiles")

    assert capsys.readouterr().out == "  42% - Zoom 16: 4 tiles\n"


def test_logging_progress_carries_image_id(caplog: pytest.LogCaptureFixture) -> None:
    sink = logging_progress(7)

    with caplog.at_level(logging.INFO):
        sink(10, "Opening source raster")

    assert "[7] 10% - Opening source raster" in caplog.text
    assert caplog.records[-1].image_id == 7
