from __future__ import annotations

import json
from datetime import date, datetime, timedelta
from pathlib import Path

import pytest
from dateutil import tz

from conftest import NOW, make_log
from gluco_tool.export import dumps_logs, loads_logs, read_export, write_export
from gluco_tool.model import InsulinType, MealType


def test_dumps_logs_uses_camel_case_and_omits_missing_levels() -> None:
    logs = [
        make_log(
            "a",
            NOW,
            sensor_level=110.0,
            insulin_units=2.0,
            insulin_type=InsulinType.RAPID,
            meal_type=MealType.BREAKFAST,
        ),
        make_log("b", NOW - timedelta(hours=1), carbs=15),
    ]
    data = json.loads(dumps_logs(logs))

    assert data[0] == {
        "id": "a",
        "profileId": "ana",
        "timestamp": "2025-12-15T12:00:00Z",
        "sensorLevel": 110,
        "carbs": 0,
        "insulinUnits": 2,
        "insulinType": "Rapid-acting",
        "mealType": "Breakfast",
        "notes": "",
        "source": "manual",
    }
    assert "sensorLevel" not in data[1]
    assert "stickLevel" not in data[1]


def test_write_and_read_export_keep_order(tmp_path: Path) -> None:
    logs = [
        make_log("old", NOW - timedelta(days=2), stick_level=95, notes="ñandú"),
        make_log("new", NOW, sensor_level=180),
    ]
    out = write_export(logs, tmp_path / "out", date(2025, 12, 15))

    assert out.name == "gluco_logs_2025-12-15.json"
    assert "ñandú" in out.read_text(encoding="utf-8")
    assert read_export(out) == logs


def test_loads_logs_naive_timestamp_uses_default_tz() -> None:
    zone = tz.gettz("Europe/Rome")
    item = {"id": "x", "profileId": "ana", "timestamp": "2025-01-02T08:00"}
    text = json.dumps([item])
    (log,) = loads_logs(text, zone)
    assert log.timestamp == datetime(2025, 1, 2, 8, 0, tzinfo=zone)
    assert log.insulin_type is InsulinType.NONE
    assert log.meal_type is MealType.CONTROL


@pytest.mark.parametrize(
    "text",
    [
        '{"id": "x"}',
        "[1, 2]",
        '[{"profileId": "ana", "timestamp": "2025-01-02T08:00:00Z"}]',
        '[{"id": "x", "profileId": "ana", "timestamp": "nope"}]',
        "not json",
    ],
)
def test_loads_logs_rejects_malformed_input(text: str) -> None:
    with pytest.raises(ValueError):
        loads_logs(text)


def test_loads_logs_rejects_repeated_ids() -> None:
    text = dumps_logs([make_log("x", NOW), make_log("x", NOW - timedelta(hours=1))])
    with pytest.raises(ValueError, match="Duplicate log id"):
        loads_logs(text)


@pytest.mark.parametrize(
    "field, value",
    [
        ("carbs", [1]),
        ("insulinUnits", {"units": 2}),
        ("sensorLevel", [110]),
        ("stickLevel", "high"),
    ],
)
def test_loads_logs_rejects_non_numeric_fields(field: str, value: object) -> None:
    item = {"id": "x", "profileId": "ana", "timestamp": "2025-01-02T08:00:00Z"}
    item[field] = value
    with pytest.raises(ValueError):
        loads_logs(json.dumps([item]))
