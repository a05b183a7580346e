from __future__ import annotations

import base64
from datetime import timedelta
from pathlib import Path

import pytest

from conftest import NOW
from gluco_tool.model import InsulinType, LogSource, MealType, SensorPoint
from gluco_tool.sources.sensor_image import (
    IMPORT_NOTES,
    SensorImageSource,
    points_to_logs,
)


def test_validate_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        SensorImageSource(tmp_path / "nope.png").validate()


def test_validate_rejects_non_image(tmp_path: Path) -> None:
    path = tmp_path / "report.pdf"
    path.write_bytes(b"%PDF")
    with pytest.raises(ValueError):
        SensorImageSource(path).validate()


def test_encode_reads_base64_and_mime(tmp_path: Path) -> None:
    path = tmp_path / "libre.PNG"
    path.write_bytes(b"\x89PNG-data")
    source = SensorImageSource(path)
    source.validate()

    image = source.encode()

    assert image.mime_type == "image/png"
    assert base64.b64decode(image.data_b64) == b"\x89PNG-data"


def test_points_to_logs_builds_sensor_entries() -> None:
    points = [
        SensorPoint(NOW - timedelta(minutes=15), 132.0),
        SensorPoint(NOW, 140.0),
    ]
    logs = points_to_logs(points, "ana")

    assert [log.sensor_level for log in logs] == [132.0, 140.0]
    assert len({log.id for log in logs}) == 2
    for log in logs:
        assert log.profile_id == "ana"
        assert log.stick_level is None
        assert log.carbs == 0
        assert log.insulin_units == 0.0
        assert log.insulin_type is InsulinType.NONE
        assert log.meal_type is MealType.CONTROL
        assert log.notes == IMPORT_NOTES
        assert log.source is LogSource.SENSOR
