from __future__ import annotations

from datetime import date, datetime, time, timedelta

import pandas as pd
from dateutil import tz

from conftest import NOW, make_log
from gluco_tool.model import DashboardStats
from gluco_tool.stats import (
    TREND_COLUMNS,
    compute_stats,
    daily_summary,
    filter_window,
    round_half_up,
    trend_frame,
)


def test_compute_stats_empty_is_all_zero() -> None:
    assert compute_stats([]) == DashboardStats(0, 0, 0, 0)


def test_compute_stats_without_readings_is_all_zero() -> None:
    logs = [make_log("a", carbs=40), make_log("b", insulin_units=2.0)]
    assert compute_stats(logs) == DashboardStats()


def test_compute_stats_uses_sensor_over_stick() -> None:
    logs = [
        make_log("a", sensor_level=110),
        make_log("b", NOW - timedelta(hours=1), sensor_level=165, stick_level=170),
    ]
    stats = compute_stats(logs)
    assert stats.average_level == 138
    assert stats.time_in_range == 0
    assert stats.hypo_count == 0
    assert stats.hyper_count == 0


def test_compute_stats_counts_and_percentages() -> None:
    logs = [
        make_log("a", sensor_level=60),
        make_log("b", sensor_level=100),
        make_log("c", stick_level=200),
        make_log("d", sensor_level=120, carbs=30),
        make_log("e", carbs=50),  # sin lectura: no cuenta
    ]
    stats = compute_stats(logs)
    assert stats.average_level == 120
    assert stats.time_in_range == 50
    assert stats.hypo_count == 1
    assert stats.hyper_count == 1


def test_compute_stats_stick_zero_counts_as_hypo() -> None:
    # Comportamiento heredado: capilar en 0 es una lectura válida con nivel 0.
    logs = [make_log("a", stick_level=0), make_log("b", sensor_level=100)]
    stats = compute_stats(logs)
    assert stats.hypo_count == 1
    assert stats.average_level == 50
    assert stats.time_in_range == 50


def test_round_half_up() -> None:
    assert round_half_up(2.5) == 3
    assert round_half_up(137.5) == 138
    assert round_half_up(66.66) == 67
    assert round_half_up(0.4) == 0


def test_filter_window_day_boundaries() -> None:
    old = make_log("old", NOW - timedelta(hours=25), sensor_level=100)
    recent = make_log("recent", NOW - timedelta(hours=23), sensor_level=100)
    future = make_log("future", NOW + timedelta(hours=2), sensor_level=100)
    kept = filter_window([future, recent, old], "day", NOW)
    assert [log.id for log in kept] == ["future", "recent"]


def test_filter_window_week_month_and_unknown() -> None:
    logs = [
        make_log("d6", NOW - timedelta(days=6)),
        make_log("d8", NOW - timedelta(days=8)),
        make_log("d31", NOW - timedelta(days=31)),
    ]
    assert [log.id for log in filter_window(logs, "week", NOW)] == ["d6"]
    assert [log.id for log in filter_window(logs, "month", NOW)] == ["d6", "d8"]
    assert len(filter_window(logs, "year", NOW)) == 3


def test_trend_frame_is_ascending() -> None:
    logs = [
        make_log("b", NOW, sensor_level=150, carbs=20),
        make_log("a", NOW - timedelta(hours=3), stick_level=90, insulin_units=2.0),
    ]
    df = trend_frame(logs, tz.UTC)
    assert list(df.columns) == TREND_COLUMNS
    assert list(df["level"]) == [90, 150]
    assert list(df["carbs"]) == [0, 20]
    assert list(df["insulin"]) == [2.0, 0]


def test_trend_frame_empty() -> None:
    df = trend_frame([], tz.UTC)
    assert df.empty
    assert list(df.columns) == TREND_COLUMNS


def test_daily_summary_groups_by_day() -> None:
    logs = [
        make_log("a", NOW, sensor_level=100),
        make_log("b", NOW - timedelta(hours=1), sensor_level=200),
        make_log("c", NOW - timedelta(days=1), stick_level=90),
        make_log("d", NOW - timedelta(days=1), carbs=10),
    ]
    df = daily_summary(logs, tz.UTC)
    assert list(df["date"]) == [date(2025, 12, 14), date(2025, 12, 15)]
    first = df.iloc[0]
    assert first["glucose_count"] == 1
    assert first["time_in_range"] == 100
    second = df.iloc[1]
    assert second["glucose_count"] == 2
    assert second["glucose_min"] == 100
    assert second["glucose_max"] == 200
    assert second["glucose_avg"] == 150.0
    assert second["time_in_range"] == 50


def test_daily_summary_empty_keeps_columns() -> None:
    df = daily_summary([make_log("a", carbs=10)])
    assert isinstance(df, pd.DataFrame)
    assert df.empty
    assert "glucose_avg" in df.columns


def test_local_day_buckets_follow_profile_timezone() -> None:
    buenos_aires = tz.gettz("America/Argentina/Buenos_Aires")
    late = datetime(2025, 12, 15, 1, 30, tzinfo=tz.UTC)
    logs = [
        make_log("late", late, sensor_level=120),
        make_log("noon", NOW, sensor_level=200),
    ]
    trend = trend_frame(logs, buenos_aires)
    assert list(trend["date"]) == [date(2025, 12, 14), date(2025, 12, 15)]
    assert trend.iloc[0]["time"] == time(22, 30)
    assert trend.iloc[1]["time"] == time(9, 0)

    daily = daily_summary(logs, buenos_aires)
    assert list(daily["date"]) == [date(2025, 12, 14), date(2025, 12, 15)]
    assert list(daily["glucose_count"]) == [1, 1]
    assert list(daily["glucose_max"]) == [120, 200]
