"""Sesión del perfil activo: store, estadísticas, llamadas a la IA y avisos."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Literal, Protocol

from dateutil import tz

from gluco_tool.gemini import AIServiceError
from gluco_tool.log_store import LogStore
from gluco_tool.logging_config import get_logger, profile_id_ctx
from gluco_tool.model import (
    DashboardStats,
    GlucoseLog,
    MealItem,
    NewLogData,
    SensorPoint,
    TrendInsight,
)
from gluco_tool.sources.meal_carbs import append_carb_breakdown
from gluco_tool.sources.sensor_image import SensorImageSource, points_to_logs
from gluco_tool.stats import compute_stats, filter_window
from gluco_tool.storage import LogRepository

logger = get_logger(__name__)

Task = Literal["analyzing", "syncing", "estimating"]

_EVENT_MESSAGES = {
    "added": "Registro guardado",
    "updated": "Registro modificado",
    "deleted": "Registro eliminado",
    "bulk_added": "Sincronización completada",
    "imported": "Importación completada",
}


class AIService(Protocol):
    """External AI collaborator used by the session."""

    def analyze_trends(
        self, logs: list[GlucoseLog], language: str
    ) -> TrendInsight | None: ...

    def estimate_meal_carbs(
        self, description: str, language: str
    ) -> list[MealItem]: ...

    def extract_sensor_points(
        self, image_b64: str, mime_type: str = "image/jpeg"
    ) -> list[SensorPoint]: ...


@dataclass(frozen=True)
class Notification:
    """Transient message for the user."""

    message: str
    kind: Literal["success", "error"] = "success"


class Session:
    """Context of the active profile.

    Owns the profile's :class:`LogStore`; switching profile discards it and
    loads a fresh one. Busy flags reject a second external call of the same
    kind while one is in flight, including calls made from worker threads.
    """

    def __init__(
        self,
        repository: LogRepository,
        ai: AIService | None = None,
        language: str = "es",
        local_tz: tzinfo | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._ai = ai
        self.language = language
        self.local_tz = local_tz or tz.tzlocal()
        self._clock = clock or (lambda: datetime.now(tz=self.local_tz))
        self.store: LogStore | None = None
        self.notifications: list[Notification] = []
        self.insight: TrendInsight | None = None
        self._busy: set[str] = set()
        self._lock = threading.Lock()

    @property
    def profile_id(self) -> str | None:
        return self.store.profile_id if self.store is not None else None

    def now(self) -> datetime:
        return self._clock()

    def select_profile(self, profile_id: str) -> LogStore:
        """Make ``profile_id`` active with its own freshly loaded store."""
        self.store = LogStore.open(profile_id, self._repository)
        self.store.subscribe(self._on_store_event)
        self.insight = None
        profile_id_ctx.set(profile_id)
        return self.store

    def close(self) -> None:
        """Drop the active profile and its in-memory logs."""
        self.store = None
        self.insight = None
        profile_id_ctx.set(None)

    def require_store(self) -> LogStore:
        if self.store is None:
            raise RuntimeError("No active profile")
        return self.store

    def is_busy(self, task: Task) -> bool:
        with self._lock:
            return task in self._busy

    def pop_notifications(self) -> list[Notification]:
        with self._lock:
            out, self.notifications = self.notifications, []
        return out

    def notify(self, message: str, kind: Literal["success", "error"]) -> None:
        with self._lock:
            self.notifications.append(Notification(message, kind))

    def stats(self) -> DashboardStats:
        """Statistics over every log of the profile."""
        return compute_stats(self.require_store().logs)

    def window_logs(self, window: str) -> list[GlucoseLog]:
        """Logs of the chart window ending now."""
        return filter_window(self.require_store().logs, window, self.now())

    def add_log(self, data: NewLogData) -> None:
        self.require_store().add(data)

    def update_log(self, log: GlucoseLog) -> None:
        self.require_store().update(log)

    def delete_log(self, log_id: str) -> None:
        self.require_store().delete(log_id)

    def import_logs(self, logs: list[GlucoseLog]) -> None:
        """Replace the profile's logs with an imported collection."""
        self.require_store().replace_all(logs)

    def run_trend_analysis(self) -> TrendInsight | None:
        """Ask the AI for a trend narrative of the profile's logs."""
        store = self.require_store()
        if not len(store):
            return None
        with self._task("analyzing", "Error en el análisis IA") as ok:
            if not ok:
                return None
            self.insight = None
            self.insight = self._require_ai().analyze_trends(
                list(store.logs), self.language
            )
        return self.insight

    def estimate_carbs(
        self, description: str, notes: str
    ) -> tuple[str, list[MealItem]]:
        """Estimate a meal and return the notes with the breakdown appended."""
        with self._task("estimating", "Error en la estimación") as ok:
            if not ok:
                return notes, []
            items = self._require_ai().estimate_meal_carbs(description, self.language)
            return append_carb_breakdown(notes, items), items
        return notes, []

    def sync_sensor_image(self, source: SensorImageSource) -> int:
        """Import readings from a sensor screenshot.

        Returns:
            Number of logs added (0 when nothing was found or on failure).
        """
        store = self.require_store()
        with self._task("syncing", "Error de carga") as ok:
            if not ok:
                return 0
            source.validate()
            image = source.encode()
            points = self._require_ai().extract_sensor_points(
                image.data_b64, image.mime_type
            )
            if not points:
                logger.info("No readings found in image")
                self.notify("No se encontraron datos en el reporte", "error")
                return 0
            logs = points_to_logs(points, store.profile_id)
            store.bulk_add(logs)
            return len(logs)
        return 0

    def _require_ai(self) -> AIService:
        if self._ai is None:
            raise AIServiceError("AI service not configured")
        return self._ai

    @contextmanager
    def _task(self, task: Task, error_message: str) -> Iterator[bool]:
        """Run an external call under a busy flag.

        Yields False when a call of the same kind is in flight. AI, file and
        validation failures are logged and turned into an error notification;
        anything else propagates.
        """
        with self._lock:
            busy = task in self._busy
            self._busy.add(task)
        if busy:
            logger.info("Request ignored, task in progress", task=task)
            yield False
            return
        try:
            yield True
        except (AIServiceError, OSError, ValueError):
            logger.exception("External call failed", task=task)
            self.notify(error_message, "error")
        finally:
            with self._lock:
                self._busy.discard(task)

    def _on_store_event(self, event: str, _payload: object) -> None:
        message = _EVENT_MESSAGES.get(event)
        if message:
            self.notify(message, "success")
