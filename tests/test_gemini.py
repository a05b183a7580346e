from __future__ import annotations

import base64
import json
from datetime import datetime, timedelta
from typing import Any

import pytest
from dateutil import tz

from conftest import NOW, make_log
from gluco_tool.gemini import (
    MAX_TREND_LOGS,
    AIServiceError,
    GeminiClient,
    language_name,
    summarize_logs,
)
from gluco_tool.model import MealItem, MealType


class _Response:
    def __init__(self, text: str | None) -> None:
        self.text = text


class _Models:
    def __init__(self, reply: Any) -> None:
        self.reply = reply
        self.calls: list[dict[str, Any]] = []

    def generate_content(self, **kwargs: Any) -> _Response:
        self.calls.append(kwargs)
        if isinstance(self.reply, Exception):
            raise self.reply
        return _Response(self.reply)


class _FakeGenAI:
    def __init__(self, reply: Any) -> None:
        self.models = _Models(reply)


def _client(reply: Any) -> tuple[GeminiClient, _Models]:
    fake = _FakeGenAI(reply)
    return GeminiClient("", model="test-model", client=fake), fake.models


def test_client_requires_api_key() -> None:
    with pytest.raises(AIServiceError):
        GeminiClient("")


def test_language_name_falls_back_to_english() -> None:
    assert language_name("es") == "SPANISH (Español)"
    assert language_name("pt") == "ENGLISH"


def test_summarize_logs_takes_most_recent_oldest_first() -> None:
    logs = [
        make_log(f"l{i}", NOW - timedelta(hours=i), sensor_level=100 + i)
        for i in range(25)
    ]
    summary = summarize_logs(logs)

    assert len(summary) == MAX_TREND_LOGS
    assert summary[0]["level"] == 119
    assert summary[-1]["level"] == 100
    assert summary[-1]["time"] == "2025-12-15T12:00:00Z"
    assert summary[-1]["meal"] == MealType.CONTROL.value


def test_analyze_trends_parses_insight() -> None:
    reply = json.dumps(
        {
            "summary": "Buen control",
            "patterns": ["Picos post almuerzo"],
            "suggestions": ["Caminar 15 min"],
            "warning": "",
        }
    )
    client, models = _client(reply)

    insight = client.analyze_trends([make_log("a", sensor_level=150)], "es")

    assert insight is not None
    assert insight.summary == "Buen control"
    assert insight.patterns == ["Picos post almuerzo"]
    assert insight.warning is None
    call = models.calls[0]
    assert call["model"] == "test-model"
    assert "SPANISH" in call["config"].system_instruction
    assert call["config"].response_mime_type == "application/json"


def test_analyze_trends_empty_logs_skips_request() -> None:
    client, models = _client("{}")
    assert client.analyze_trends([], "en") is None
    assert models.calls == []


@pytest.mark.parametrize(
    "reply",
    [RuntimeError("network down"), "not json", json.dumps(["a"])],
)
def test_analyze_trends_failures_raise(reply: Any) -> None:
    client, _ = _client(reply)
    with pytest.raises(AIServiceError):
        client.analyze_trends([make_log("a", sensor_level=150)], "en")


def test_estimate_meal_carbs_parses_and_skips_bad_items() -> None:
    reply = json.dumps(
        [
            {"name": "Rice", "portion": "1 cup", "carbs": 40},
            {"portion": "sin nombre", "carbs": 3},
            {"name": "Chicken", "portion": "150 g", "carbs": 0},
            {"name": "Salsa", "portion": "?", "carbs": "mucho"},
        ]
    )
    client, _ = _client(reply)

    items = client.estimate_meal_carbs("arroz con pollo", "es")

    assert items == [
        MealItem("Rice", "1 cup", 40.0),
        MealItem("Chicken", "150 g", 0.0),
    ]


def test_estimate_meal_carbs_blank_or_failure_returns_empty() -> None:
    client, models = _client(RuntimeError("quota"))
    assert client.estimate_meal_carbs("   ", "es") == []
    assert models.calls == []
    assert client.estimate_meal_carbs("pizza", "es") == []
    assert len(models.calls) == 1


def test_extract_sensor_points() -> None:
    reply = json.dumps(
        [
            {"timestamp": "2025-12-15T08:00:00Z", "sensorLevel": 120},
            {"timestamp": "ayer", "sensorLevel": 130},
            {"timestamp": "2025-12-15T08:15:00", "sensorLevel": 135.5},
            {"timestamp": "2025-12-15T08:30:00Z"},
        ]
    )
    zone = tz.gettz("Europe/Rome")
    fake = _FakeGenAI(reply)
    client = GeminiClient("", client=fake, default_tz=zone)
    image = base64.b64encode(b"fake-png").decode("ascii")

    points = client.extract_sensor_points(image, "image/png")

    assert [p.sensor_level for p in points] == [120.0, 135.5]
    assert points[0].timestamp == datetime(2025, 12, 15, 8, 0, tzinfo=tz.UTC)
    assert points[1].timestamp == datetime(2025, 12, 15, 8, 15, tzinfo=zone)
    assert len(fake.models.calls[0]["contents"]) == 2


def test_extract_sensor_points_failures_return_empty() -> None:
    client, models = _client("null")
    assert client.extract_sensor_points("%%% not base64 %%%") == []
    assert models.calls == []

    client, _ = _client(RuntimeError("timeout"))
    image = base64.b64encode(b"x").decode("ascii")
    assert client.extract_sensor_points(image) == []
