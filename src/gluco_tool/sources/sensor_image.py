"""Importación de lecturas de sensor desde capturas de pantalla."""

from __future__ import annotations

import base64
import mimetypes
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from gluco_tool.log_store import new_log_id
from gluco_tool.model import (
    GlucoseLog,
    InsulinType,
    LogSource,
    MealType,
    SensorPoint,
)

IMPORT_NOTES = "AI Sensor Import"

_IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".webp", ".heic", ".heif"}


@dataclass(frozen=True)
class EncodedImage:
    """Image payload ready for the extraction service."""

    data_b64: str
    mime_type: str


class SensorImageSource:
    """Screenshot of a CGM app or report (Dexcom, Libre, Guardian)."""

    def __init__(self, path: Path) -> None:
        """Create a source for one image file.

        Args:
            path: Image file path.
        """
        self._path = path

    def validate(self) -> None:
        """Validate that the image exists and looks like an image.

        Raises:
            FileNotFoundError: If the file is missing.
            ValueError: If the suffix is not a supported image type.
        """
        if not self._path.is_file():
            raise FileNotFoundError(str(self._path))
        if self._path.suffix.lower() not in _IMAGE_SUFFIXES:
            raise ValueError(f"Unsupported image type: {self._path.suffix}")

    def encode(self) -> EncodedImage:
        """Read the image as base64 plus its MIME type."""
        mime_type, _ = mimetypes.guess_type(self._path.name)
        data = base64.b64encode(self._path.read_bytes()).decode("ascii")
        return EncodedImage(data_b64=data, mime_type=mime_type or "image/jpeg")


def points_to_logs(points: Sequence[SensorPoint], profile_id: str) -> list[GlucoseLog]:
    """Complete sensor logs for extracted points, in extraction order."""
    return [
        GlucoseLog(
            id=new_log_id(),
            profile_id=profile_id,
            timestamp=point.timestamp,
            sensor_level=point.sensor_level,
            carbs=0,
            insulin_units=0.0,
            insulin_type=InsulinType.NONE,
            meal_type=MealType.CONTROL,
            notes=IMPORT_NOTES,
            source=LogSource.SENSOR,
        )
        for point in points
    ]
