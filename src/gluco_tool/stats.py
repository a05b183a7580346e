"""Estadísticas del dashboard, ventana temporal y series para gráficos."""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime, timedelta, tzinfo
from typing import Literal

import pandas as pd
from dateutil import tz

from gluco_tool.levels import effective_level, has_reading, in_target
from gluco_tool.model import HYPER, HYPO, DashboardStats, GlucoseLog

Window = Literal["day", "week", "month"]

WINDOWS: dict[str, timedelta] = {
    "day": timedelta(hours=24),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}

TREND_COLUMNS = ["datetime", "date", "time", "level", "carbs", "insulin"]


def round_half_up(value: float) -> int:
    """Round .5 upwards (``2.5 -> 3``), unlike Python's bankers rounding."""
    return math.floor(value + 0.5)


def compute_stats(logs: Sequence[GlucoseLog]) -> DashboardStats:
    """Fold all logs of the profile into dashboard statistics.

    Only logs with a sensor or fingerstick field take part. Hypo/hyper
    counts use the effective level of those logs, so a log whose only
    reading is ``stick_level=0`` counts as hypo.

    Args:
        logs: Every log of the active profile (not window-filtered).

    Returns:
        Fresh statistics; all zeros when there is nothing to measure.
    """
    if not logs:
        return DashboardStats()
    valid = [log for log in logs if has_reading(log)]
    if not valid:
        return DashboardStats()

    levels = [effective_level(log) for log in valid]
    count = len(levels)
    in_range = sum(1 for level in levels if in_target(level))
    return DashboardStats(
        average_level=round_half_up(sum(levels) / count),
        time_in_range=round_half_up(in_range / count * 100),
        hypo_count=sum(1 for level in levels if level < HYPO),
        hyper_count=sum(1 for level in levels if level > HYPER),
    )


def filter_window(
    logs: Sequence[GlucoseLog], window: str, now: datetime
) -> list[GlucoseLog]:
    """Logs inside the trailing window ending at ``now``.

    Logs dated after ``now`` are kept. An unknown window keeps everything.
    """
    span = WINDOWS.get(window)
    if span is None:
        return list(logs)
    return [log for log in logs if now - log.timestamp <= span]


def trend_frame(
    logs: Sequence[GlucoseLog], local_tz: tzinfo | None = None
) -> pd.DataFrame:
    """Chart series: one row per log, ascending by time, in local wall time."""
    zone = local_tz or tz.tzlocal()
    rows = []
    for log in logs:
        local = log.timestamp.astimezone(zone)
        rows.append(
            {
                "datetime": pd.Timestamp(local),
                "date": local.date(),
                "time": local.time().replace(second=0, microsecond=0),
                "level": effective_level(log),
                "carbs": log.carbs or 0,
                "insulin": log.insulin_units or 0,
            }
        )
    df = pd.DataFrame(rows, columns=TREND_COLUMNS)
    if df.empty:
        return df
    return df.sort_values("datetime", kind="stable").reset_index(drop=True)


def daily_summary(
    logs: Sequence[GlucoseLog], local_tz: tzinfo | None = None
) -> pd.DataFrame:
    """Aggregate readings by local day (count/min/max/avg/in-target %)."""
    zone = local_tz or tz.tzlocal()
    columns = [
        "date",
        "glucose_count",
        "glucose_min",
        "glucose_max",
        "glucose_avg",
        "time_in_range",
    ]
    rows = [
        {
            "date": log.timestamp.astimezone(zone).date(),
            "level": effective_level(log),
        }
        for log in logs
        if has_reading(log)
    ]
    if not rows:
        return pd.DataFrame(columns=columns)
    events = pd.DataFrame(rows)
    events["in_target"] = events["level"].map(in_target)
    g = events.groupby("date", as_index=False).agg(
        glucose_count=("level", "count"),
        glucose_min=("level", "min"),
        glucose_max=("level", "max"),
        glucose_avg=("level", "mean"),
        time_in_range=("in_target", "mean"),
    )
    g["glucose_avg"] = g["glucose_avg"].round(2)
    g["time_in_range"] = (g["time_in_range"] * 100).map(round_half_up)
    return g[columns].sort_values("date").reset_index(drop=True)
