"""Alta manual de registros: formulario y acciones rápidas."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, tzinfo
from typing import Literal

from dateutil import tz

from gluco_tool.model import (
    GlucoseLog,
    InsulinType,
    LogSource,
    MealType,
    NewLogData,
)

QuickKind = Literal["insulin", "carb", "check"]


@dataclass(frozen=True)
class ManualEntry:
    """Raw form fields, as typed by the user."""

    date: str
    time: str
    sensor_level: str = ""
    stick_level: str = ""
    carbs: str = ""
    insulin_units: str = ""
    insulin_type: InsulinType = InsulinType.RAPID
    meal_type: MealType = MealType.CONTROL
    notes: str = ""

    @classmethod
    def from_log(cls, log: GlucoseLog, local_tz: tzinfo | None = None) -> ManualEntry:
        """Prefill the form to edit an existing log."""
        local = log.timestamp.astimezone(local_tz or tz.tzlocal())
        return cls(
            date=local.strftime("%Y-%m-%d"),
            time=local.strftime("%H:%M"),
            sensor_level=_field_text(log.sensor_level),
            stick_level=_field_text(log.stick_level),
            carbs=_field_text(log.carbs or None),
            insulin_units=_field_text(log.insulin_units or None),
            insulin_type=log.insulin_type,
            meal_type=log.meal_type,
            notes=log.notes,
        )

    @classmethod
    def blank(cls, now: datetime) -> ManualEntry:
        """New form dated ``now`` (local wall clock)."""
        return cls(date=now.strftime("%Y-%m-%d"), time=now.strftime("%H:%M"))

    def timestamp(self, local_tz: tzinfo | None = None) -> datetime:
        """Date and time fields combined in the local timezone.

        Raises:
            ValueError: If date or time are malformed.
        """
        naive = datetime.strptime(
            f"{self.date.strip()} {self.time.strip()}", "%Y-%m-%d %H:%M"
        )
        return naive.replace(tzinfo=local_tz or tz.tzlocal())

    def to_new_log_data(self, local_tz: tzinfo | None = None) -> NewLogData:
        """Fields for a new manual log."""
        return NewLogData(
            timestamp=self.timestamp(local_tz),
            sensor_level=_optional_number(self.sensor_level),
            stick_level=_optional_number(self.stick_level),
            carbs=_int_or(self.carbs, 0),
            insulin_units=_non_negative(self.insulin_units),
            insulin_type=self.insulin_type,
            meal_type=self.meal_type,
            notes=self.notes,
            source=LogSource.MANUAL,
        )

    def to_updated_log(
        self, editing: GlucoseLog, local_tz: tzinfo | None = None
    ) -> GlucoseLog:
        """Full replacement of ``editing``; id, owner and source are kept.

        An empty carbs field keeps the carbs of the edited log.
        """
        data = self.to_new_log_data(local_tz)
        return replace(
            editing,
            timestamp=data.timestamp,
            sensor_level=data.sensor_level,
            stick_level=data.stick_level,
            carbs=_int_or(self.carbs, editing.carbs or 0),
            insulin_units=data.insulin_units,
            insulin_type=data.insulin_type,
            meal_type=data.meal_type,
            notes=data.notes,
        )


def quick_log_data(kind: QuickKind, now: datetime) -> NewLogData:
    """One-tap entries: +1u rapid insulin, +15 g snack, or a bare check."""
    if kind == "insulin":
        return NewLogData(
            timestamp=now,
            insulin_units=1.0,
            insulin_type=InsulinType.RAPID,
            meal_type=MealType.CONTROL,
            notes="Corrección rápida 1u",
        )
    if kind == "carb":
        return NewLogData(
            timestamp=now,
            carbs=15,
            meal_type=MealType.SNACK,
            notes="Colación rápida 15g",
        )
    if kind == "check":
        return NewLogData(timestamp=now, notes="Control rápido")
    raise ValueError(f"Unknown quick log kind: {kind}")


def _optional_number(text: str) -> float | None:
    """Empty -> None; anything else must be a number (comma decimals ok)."""
    cleaned = text.strip().replace(",", ".")
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError as exc:
        raise ValueError(f"Invalid number: {text!r}") from exc


def _int_or(text: str, default: int) -> int:
    value = _optional_number(text)
    if value is None:
        return default
    if value < 0:
        raise ValueError(f"Carbs must be non-negative: {text!r}")
    return round(value)


def _field_text(value: float | None) -> str:
    if value is None:
        return ""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def _non_negative(text: str) -> float:
    value = _optional_number(text)
    if value is None:
        return 0.0
    if value < 0:
        raise ValueError(f"Insulin units must be non-negative: {text!r}")
    return value
