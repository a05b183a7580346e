"""Modelos tipados para registros de glucosa, insulina y carbohidratos."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from enum import Enum
from typing import Any

from dateutil import parser as date_parser
from dateutil import tz

HYPO = 70
TARGET_MIN = 80
TARGET_MAX = 130
HYPER = 180


class InsulinType(str, Enum):
    """Insulin kind of a dose."""

    RAPID = "Rapid-acting"
    LONG = "Long-acting"
    NONE = "None"


class MealType(str, Enum):
    """Meal/moment the entry belongs to."""

    BREAKFAST = "Breakfast"
    SNACK = "Snack"
    LUNCH = "Lunch"
    CONTROL = "Control"
    DINNER = "Dinner"
    CORRECTION = "Correction"


class LogSource(str, Enum):
    """Provenance of a log entry."""

    MANUAL = "manual"
    SENSOR = "sensor"
    AI_SCAN = "ai_scan"


@dataclass(frozen=True)
class GlucoseLog:
    """One journal entry (glucose reading and/or insulin/carbs event)."""

    id: str
    profile_id: str
    timestamp: datetime
    sensor_level: float | None = None
    stick_level: float | None = None
    carbs: int = 0
    insulin_units: float = 0.0
    insulin_type: InsulinType = InsulinType.NONE
    meal_type: MealType = MealType.CONTROL
    notes: str = ""
    source: LogSource = LogSource.MANUAL


@dataclass(frozen=True)
class NewLogData:
    """Log fields before the store assigns id and owner."""

    timestamp: datetime
    sensor_level: float | None = None
    stick_level: float | None = None
    carbs: int = 0
    insulin_units: float = 0.0
    insulin_type: InsulinType = InsulinType.NONE
    meal_type: MealType = MealType.CONTROL
    notes: str = ""
    source: LogSource = LogSource.MANUAL


@dataclass(frozen=True)
class DashboardStats:
    """Summary statistics shown on the dashboard and the report."""

    average_level: int = 0
    time_in_range: int = 0
    hypo_count: int = 0
    hyper_count: int = 0


@dataclass(frozen=True)
class MealItem:
    """One component of an estimated meal."""

    name: str
    portion: str
    carbs: float


@dataclass(frozen=True)
class SensorPoint:
    """Glucose value extracted from a sensor screenshot."""

    timestamp: datetime
    sensor_level: float


@dataclass(frozen=True)
class TrendInsight:
    """Narrated analysis of recent logs."""

    summary: str
    patterns: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    warning: str | None = None


def parse_timestamp(value: Any, default_tz: tzinfo | None = None) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are read in ``default_tz``.

    Raises:
        ValueError: If the value is not a parseable timestamp.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        dt = date_parser.isoparse(value.strip())
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=default_tz or tz.tzlocal())
    return dt


def format_timestamp(value: datetime) -> str:
    """ISO-8601 instant in UTC (``...Z``)."""
    return value.astimezone(tz.UTC).isoformat().replace("+00:00", "Z")


def log_to_dict(log: GlucoseLog) -> dict[str, Any]:
    """Serialize a log using the exported JSON field names."""
    out: dict[str, Any] = {
        "id": log.id,
        "profileId": log.profile_id,
        "timestamp": format_timestamp(log.timestamp),
    }
    if log.sensor_level is not None:
        out["sensorLevel"] = _plain_number(log.sensor_level)
    if log.stick_level is not None:
        out["stickLevel"] = _plain_number(log.stick_level)
    out.update(
        {
            "carbs": log.carbs,
            "insulinUnits": _plain_number(log.insulin_units),
            "insulinType": log.insulin_type.value,
            "mealType": log.meal_type.value,
            "notes": log.notes,
            "source": log.source.value,
        }
    )
    return out


def log_from_dict(
    item: dict[str, Any], default_tz: tzinfo | None = None
) -> GlucoseLog:
    """Build a log from its JSON dict.

    Raises:
        ValueError: If required keys are missing or values are invalid.
    """
    try:
        log_id = str(item["id"])
        profile_id = str(item["profileId"])
        raw_ts = item["timestamp"]
    except KeyError as exc:
        raise ValueError(f"Missing field {exc.args[0]!r}") from exc
    try:
        carbs = int(item.get("carbs") or 0)
        insulin_units = float(item.get("insulinUnits") or 0)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid number in log {log_id!r}: {exc}") from exc
    return GlucoseLog(
        id=log_id,
        profile_id=profile_id,
        timestamp=parse_timestamp(raw_ts, default_tz),
        sensor_level=_optional_float(item.get("sensorLevel")),
        stick_level=_optional_float(item.get("stickLevel")),
        carbs=carbs,
        insulin_units=insulin_units,
        insulin_type=InsulinType(item.get("insulinType", InsulinType.NONE.value)),
        meal_type=MealType(item.get("mealType", MealType.CONTROL.value)),
        notes=str(item.get("notes") or ""),
        source=LogSource(item.get("source") or LogSource.MANUAL.value),
    )


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid glucose level: {value!r}") from exc


def _plain_number(value: float) -> int | float:
    """Whole floats are written as ints (``110`` not ``110.0``)."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value
