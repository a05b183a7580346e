"""Cliente Gemini: análisis de tendencias, estimación de carbohidratos y
extracción de glucosa desde capturas de sensores."""

from __future__ import annotations

import base64
import json
from collections.abc import Sequence
from datetime import datetime, tzinfo
from typing import Any

from google import genai
from google.genai import types

from gluco_tool.levels import effective_level
from gluco_tool.log_store import sort_descending
from gluco_tool.logging_config import get_logger
from gluco_tool.model import (
    GlucoseLog,
    MealItem,
    SensorPoint,
    TrendInsight,
    format_timestamp,
    parse_timestamp,
)

logger = get_logger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"

# Logs sent for trend analysis
MAX_TREND_LOGS = 20

LANGUAGES: dict[str, str] = {
    "it": "ITALIAN (Italiano)",
    "en": "ENGLISH",
    "es": "SPANISH (Español)",
    "fr": "FRENCH (Français)",
    "zh": "CHINESE MANDARIN (简体中文)",
    "hi": "HINDI (हिन्दी)",
}

_INSIGHT_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "summary": types.Schema(
            type=types.Type.STRING,
            description="A brief overview of recent control",
        ),
        "patterns": types.Schema(
            type=types.Type.ARRAY,
            items=types.Schema(type=types.Type.STRING),
            description="Key patterns detected",
        ),
        "suggestions": types.Schema(
            type=types.Type.ARRAY,
            items=types.Schema(type=types.Type.STRING),
            description="Actionable lifestyle suggestions",
        ),
        "warning": types.Schema(
            type=types.Type.STRING,
            description="Critical warnings if dangerous levels detected",
        ),
    },
    required=["summary", "patterns", "suggestions"],
)

_MEAL_SCHEMA = types.Schema(
    type=types.Type.ARRAY,
    items=types.Schema(
        type=types.Type.OBJECT,
        properties={
            "name": types.Schema(type=types.Type.STRING),
            "portion": types.Schema(type=types.Type.STRING),
            "carbs": types.Schema(type=types.Type.NUMBER),
        },
        required=["name", "portion", "carbs"],
    ),
)

_SENSOR_SCHEMA = types.Schema(
    type=types.Type.ARRAY,
    items=types.Schema(
        type=types.Type.OBJECT,
        properties={
            "timestamp": types.Schema(type=types.Type.STRING),
            "sensorLevel": types.Schema(type=types.Type.NUMBER),
        },
        required=["timestamp", "sensorLevel"],
    ),
)


class AIServiceError(RuntimeError):
    """The AI service call failed or returned something unusable."""


def language_name(language: str) -> str:
    """Prompt name of a language tag; unknown tags fall back to English."""
    return LANGUAGES.get(language, LANGUAGES["en"])


def summarize_logs(logs: Sequence[GlucoseLog]) -> list[dict[str, Any]]:
    """The most recent logs, oldest first, as compact dicts for the prompt."""
    recent = sort_descending(logs)[:MAX_TREND_LOGS]
    return [
        {
            "time": format_timestamp(log.timestamp),
            "level": effective_level(log),
            "carbs": log.carbs,
            "insulin": log.insulin_units,
            "meal": log.meal_type.value,
        }
        for log in reversed(recent)
    ]


class GeminiClient:
    """Google Gemini client for the three AI features."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        client: Any | None = None,
        default_tz: tzinfo | None = None,
    ) -> None:
        """Create the client.

        Args:
            api_key: Gemini API key.
            model: Model name.
            client: Preconfigured ``genai.Client`` (tests inject a fake).
            default_tz: Timezone for extracted timestamps without offset.

        Raises:
            AIServiceError: If no API key is given and no client is injected.
        """
        if client is None:
            if not api_key:
                raise AIServiceError(
                    "Gemini API key not found. Set GEMINI_API_KEY or "
                    "GLUCO_GEMINI_API_KEY."
                )
            client = genai.Client(api_key=api_key)
        self._client = client
        self.model = model
        self._default_tz = default_tz

    def _generate_json(
        self,
        contents: Any,
        system_instruction: str,
        schema: types.Schema,
    ) -> Any:
        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            response_mime_type="application/json",
            response_schema=schema,
        )
        try:
            response = self._client.models.generate_content(
                model=self.model,
                contents=contents,
                config=config,
            )
        except Exception as exc:
            raise AIServiceError(f"Gemini request failed: {exc}") from exc
        text = getattr(response, "text", None)
        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise AIServiceError(f"Gemini returned invalid JSON: {exc}") from exc

    def analyze_trends(
        self, logs: Sequence[GlucoseLog], language: str
    ) -> TrendInsight | None:
        """Narrate the recent glucose trend.

        Returns:
            The insight, or None when there are no logs or no answer.

        Raises:
            AIServiceError: On request or response errors.
        """
        if not logs:
            return None
        lang_name = language_name(language)
        prompt = (
            f"Analyze these blood glucose logs and provide health insights in "
            f"{lang_name}.\nTarget range is 80-130 mg/dL. Hypo is <70, Hyper is "
            f">180.\nLogs: {json.dumps(summarize_logs(logs))}"
        )
        system = (
            "You are a specialized endocrinology assistant. IMPORTANT: Your "
            f"entire response must be written exclusively in {lang_name}. "
            "Analyze patterns and provide actionable insights. ALWAYS include "
            f"a medical disclaimer in {lang_name} stating that you are an AI "
            "and not a doctor. Use JSON format."
        )
        data = self._generate_json(prompt, system, _INSIGHT_SCHEMA)
        if data is None:
            return None
        if not isinstance(data, dict) or "summary" not in data:
            raise AIServiceError("Unexpected trend analysis shape")
        warning = data.get("warning")
        return TrendInsight(
            summary=str(data["summary"]),
            patterns=[str(p) for p in data.get("patterns") or []],
            suggestions=[str(s) for s in data.get("suggestions") or []],
            warning=str(warning) if warning else None,
        )

    def estimate_meal_carbs(self, description: str, language: str) -> list[MealItem]:
        """Break a meal description into items with carb grams; [] on failure."""
        if not description.strip():
            return []
        lang_name = language_name(language)
        prompt = (
            f'Estimate carbohydrate content for: "{description}". '
            f"Output in {lang_name}."
        )
        system = (
            "You are a nutrition expert. Break down the meal into components. "
            "Estimate portion size and carb content (grams). Provide component "
            f"names in {lang_name}. Use JSON."
        )
        try:
            data = self._generate_json(prompt, system, _MEAL_SCHEMA)
        except AIServiceError as exc:
            logger.warning("Meal estimation failed", error=str(exc))
            return []
        if not isinstance(data, list):
            return []
        items: list[MealItem] = []
        for raw in data:
            item = _to_meal_item(raw)
            if item is not None:
                items.append(item)
        return items

    def extract_sensor_points(
        self, image_b64: str, mime_type: str = "image/jpeg"
    ) -> list[SensorPoint]:
        """Read glucose values and timestamps from a sensor screenshot.

        Returns:
            Extracted points in the order given by the model; [] on failure.
        """
        year = datetime.now().year
        system = (
            "You are a medical data extraction tool. Analyze images of Dexcom, "
            "Libre, or Guardian sensors and extract glucose levels with "
            f"timestamps. If the year is not visible, assume {year}. Use JSON "
            "format."
        )
        try:
            contents = [
                types.Part.from_bytes(
                    data=_b64decode(image_b64), mime_type=mime_type
                ),
                types.Part.from_text(
                    text=(
                        "Extract blood glucose data points from this sensor "
                        "screenshot or report. Return a JSON array of objects "
                        "with 'timestamp' (ISO string) and 'sensorLevel' "
                        "(number)."
                    )
                ),
            ]
            data = self._generate_json(contents, system, _SENSOR_SCHEMA)
        except AIServiceError as exc:
            logger.warning("Sensor extraction failed", error=str(exc))
            return []
        if not isinstance(data, list):
            return []
        points: list[SensorPoint] = []
        for raw in data:
            point = self._to_sensor_point(raw)
            if point is not None:
                points.append(point)
        return points

    def _to_sensor_point(self, raw: Any) -> SensorPoint | None:
        """SensorPoint from a dict; None if timestamp or level is unusable."""
        if not isinstance(raw, dict):
            return None
        level = raw.get("sensorLevel")
        if not isinstance(level, int | float) or isinstance(level, bool):
            return None
        try:
            ts = parse_timestamp(raw.get("timestamp"), self._default_tz)
        except ValueError:
            return None
        return SensorPoint(timestamp=ts, sensor_level=float(level))


def _to_meal_item(raw: Any) -> MealItem | None:
    if not isinstance(raw, dict) or "name" not in raw:
        return None
    try:
        carbs = float(raw.get("carbs") or 0)
    except (TypeError, ValueError):
        return None
    return MealItem(
        name=str(raw["name"]),
        portion=str(raw.get("portion") or ""),
        carbs=carbs,
    )


def _b64decode(image_b64: str) -> bytes:
    try:
        return base64.b64decode(image_b64, validate=True)
    except ValueError as exc:
        raise AIServiceError(f"Invalid base64 image: {exc}") from exc
