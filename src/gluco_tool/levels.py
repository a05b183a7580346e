"""Valor efectivo de glucosa y clasificación por umbrales clínicos."""

from __future__ import annotations

from typing import Literal

from gluco_tool.model import HYPER, HYPO, TARGET_MAX, TARGET_MIN, GlucoseLog

LevelClass = Literal["hypo", "normal", "hyper"]


def first_truthy(*values: float | None) -> float | None:
    """Return the first value that is neither None nor zero."""
    for value in values:
        if value:
            return value
    return None


def effective_level(log: GlucoseLog) -> float:
    """Single glucose value of a log: sensor first, then fingerstick, else 0.

    A zero reading counts as missing, so a log with ``sensor_level=0`` falls
    back to ``stick_level`` and a log with only ``stick_level=0`` yields 0,
    which is also what a log without readings yields. Use :func:`has_reading`
    to tell those apart.
    """
    value = first_truthy(log.sensor_level, log.stick_level)
    return value if value is not None else 0


def has_reading(log: GlucoseLog) -> bool:
    """True when the log carries a sensor or fingerstick field (presence)."""
    return log.sensor_level is not None or log.stick_level is not None


def classify(value: float) -> LevelClass:
    """Classify against the safety bands (<70 hypo, >180 hyper)."""
    if value < HYPO:
        return "hypo"
    if value > HYPER:
        return "hyper"
    return "normal"


def in_target(value: float) -> bool:
    """True inside the ideal-control band 80-130 (inclusive)."""
    return TARGET_MIN <= value <= TARGET_MAX
