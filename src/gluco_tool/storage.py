"""Persistencia SQLite: registros por perfil y configuración de la app."""

from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import tzinfo
from pathlib import Path
from typing import Protocol

from gluco_tool.logging_config import get_logger
from gluco_tool.model import (
    GlucoseLog,
    InsulinType,
    LogSource,
    MealType,
    format_timestamp,
    parse_timestamp,
)

logger = get_logger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS app_config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS glucose_logs (
    profile_id TEXT NOT NULL,
    position INTEGER NOT NULL,
    id TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    sensor_level REAL,
    stick_level REAL,
    carbs INTEGER NOT NULL DEFAULT 0,
    insulin_units REAL NOT NULL DEFAULT 0,
    insulin_type TEXT NOT NULL,
    meal_type TEXT NOT NULL,
    notes TEXT NOT NULL DEFAULT '',
    source TEXT NOT NULL DEFAULT 'manual',
    PRIMARY KEY (profile_id, id)
);

CREATE INDEX IF NOT EXISTS idx_glucose_logs_profile_position
ON glucose_logs(profile_id, position);
"""

CHART_WINDOWS = ("day", "week", "month")


class LogRepository(Protocol):
    """Persistence collaborator of the log store (full-collection semantics)."""

    def load(self, profile_id: str) -> list[GlucoseLog]: ...

    def save(self, profile_id: str, logs: Sequence[GlucoseLog]) -> bool: ...


@dataclass(frozen=True)
class AppConfig:
    """Configuracion persistida de la app."""

    export_dir: str = ""
    language: str = "es"
    chart_range: str = "day"
    last_profile: str = ""


class SQLiteStore:
    """Repositorio SQLite para la app."""

    def __init__(self, db_path: Path, default_tz: tzinfo | None = None) -> None:
        """Create store and ensure schema exists."""
        self._db_path = db_path
        self._default_tz = default_tz
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(SCHEMA_SQL)
            conn.commit()

    def load_config(self) -> AppConfig:
        """Devuelve configuracion guardada o defaults."""
        defaults = AppConfig()
        with self._connect() as conn:
            rows = conn.execute("SELECT key, value FROM app_config").fetchall()
        values = {row["key"]: row["value"] for row in rows}
        chart_range = values.get("chart_range", defaults.chart_range)
        if chart_range not in CHART_WINDOWS:
            chart_range = defaults.chart_range
        return AppConfig(
            export_dir=values.get("export_dir", defaults.export_dir),
            language=values.get("language", defaults.language),
            chart_range=chart_range,
            last_profile=values.get("last_profile", defaults.last_profile),
        )

    def save_config(self, config: AppConfig) -> None:
        """Guarda la configuracion en tabla key/value."""
        payload = {
            "export_dir": config.export_dir,
            "language": config.language,
            "chart_range": config.chart_range,
            "last_profile": config.last_profile,
        }
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO app_config(key, value) VALUES(?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value
                """,
                payload.items(),
            )
            conn.commit()

    def load(self, profile_id: str) -> list[GlucoseLog]:
        """Logs of a profile in their stored order (empty if none)."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT
                    id, profile_id, timestamp, sensor_level, stick_level, carbs,
                    insulin_units, insulin_type, meal_type, notes, source
                FROM glucose_logs
                WHERE profile_id = ?
                ORDER BY position
                """,
                (profile_id,),
            ).fetchall()
        return [self._row_to_log(row) for row in rows]

    def save(self, profile_id: str, logs: Sequence[GlucoseLog]) -> bool:
        """Replace every stored log of the profile. False on database errors."""
        rows = [_log_to_row(position, log) for position, log in enumerate(logs)]
        try:
            with self._connect() as conn:
                conn.execute(
                    "DELETE FROM glucose_logs WHERE profile_id = ?", (profile_id,)
                )
                conn.executemany(
                    """
                    INSERT INTO glucose_logs(
                        profile_id, position, id, timestamp, sensor_level,
                        stick_level, carbs, insulin_units, insulin_type,
                        meal_type, notes, source
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [(profile_id, *row) for row in rows],
                )
                conn.commit()
        except sqlite3.Error:
            logger.exception(
                "Failed to save logs", profile_id=profile_id, count=len(rows)
            )
            return False
        logger.debug("Logs saved", profile_id=profile_id, count=len(rows))
        return True

    def profiles(self) -> list[str]:
        """Profile ids that have stored logs."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT DISTINCT profile_id FROM glucose_logs ORDER BY profile_id"
            ).fetchall()
        return [str(row["profile_id"]) for row in rows]

    def _row_to_log(self, row: sqlite3.Row) -> GlucoseLog:
        return GlucoseLog(
            id=row["id"],
            profile_id=row["profile_id"],
            timestamp=parse_timestamp(row["timestamp"], self._default_tz),
            sensor_level=row["sensor_level"],
            stick_level=row["stick_level"],
            carbs=int(row["carbs"]),
            insulin_units=float(row["insulin_units"]),
            insulin_type=InsulinType(row["insulin_type"]),
            meal_type=MealType(row["meal_type"]),
            notes=row["notes"],
            source=LogSource(row["source"]),
        )


def _log_to_row(position: int, log: GlucoseLog) -> tuple[object, ...]:
    return (
        position,
        log.id,
        format_timestamp(log.timestamp),
        log.sensor_level,
        log.stick_level,
        log.carbs,
        log.insulin_units,
        log.insulin_type.value,
        log.meal_type.value,
        log.notes,
        log.source.value,
    )
