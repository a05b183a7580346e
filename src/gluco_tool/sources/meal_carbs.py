"""Desglose de carbohidratos estimados, agregado a las notas del registro."""

from __future__ import annotations

from collections.abc import Sequence

from gluco_tool.model import MealItem


def format_grams(value: float) -> str:
    """``40.0 -> '40'``, ``12.5 -> '12.5'``."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def carb_breakdown(items: Sequence[MealItem]) -> str:
    """``"\\n[Carbs: {total}g - {name}: {carbs}g, ...]"`` for the items."""
    total = sum(item.carbs for item in items)
    detail = ", ".join(f"{item.name}: {format_grams(item.carbs)}g" for item in items)
    return f"\n[Carbs: {format_grams(total)}g - {detail}]"


def append_carb_breakdown(notes: str, items: Sequence[MealItem]) -> str:
    """Notes of the entry being edited, with the breakdown appended.

    Only the free text changes: the total is not copied into the entry's
    ``carbs`` field. Without items the notes are returned unchanged.
    """
    if not items:
        return notes
    return notes + carb_breakdown(items)
