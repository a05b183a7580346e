"""CLI del diario de glucosa: registros, estadísticas, reportes e IA."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from dataclasses import replace
from datetime import tzinfo
from pathlib import Path

import pandas as pd

from gluco_tool.config import Settings, get_settings
from gluco_tool.export import read_export, write_export
from gluco_tool.gemini import GeminiClient
from gluco_tool.levels import classify, effective_level, has_reading
from gluco_tool.logging_config import get_logger, setup_logging
from gluco_tool.model import (
    GlucoseLog,
    InsulinType,
    MealItem,
    MealType,
    SensorPoint,
    TrendInsight,
)
from gluco_tool.report_writer import ReportLayout, write_clinical_report
from gluco_tool.session import Session
from gluco_tool.sources.manual import ManualEntry, quick_log_data
from gluco_tool.sources.sensor_image import SensorImageSource
from gluco_tool.stats import WINDOWS, trend_frame
from gluco_tool.storage import AppConfig, SQLiteStore

logger = get_logger(__name__)

INSULIN_CHOICES = {
    "rapid": InsulinType.RAPID,
    "long": InsulinType.LONG,
    "none": InsulinType.NONE,
}
MEAL_CHOICES = {meal.name.lower(): meal for meal in MealType}


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed argparse namespace.
    """
    parser = argparse.ArgumentParser(
        description="Diario de glucosa: registros, estadísticas y reportes."
    )
    parser.add_argument("--db", help="Base SQLite (default: GLUCO_DB_PATH).")
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--profile",
        help="Perfil activo (default: el último usado).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    def command(name: str, help_text: str) -> argparse.ArgumentParser:
        return sub.add_parser(name, help=help_text, parents=[common])

    add = command("add", "Nuevo registro manual.")
    _add_entry_fields(add)
    add.add_argument(
        "--estimate",
        metavar="COMIDA",
        help="Descripción de la comida para agregar carbohidratos estimados.",
    )

    edit = command("edit", "Modificar un registro.")
    edit.add_argument("id")
    _add_entry_fields(edit)

    command("delete", "Eliminar un registro.").add_argument("id")

    quick = command("quick", "Registro rápido.")
    quick.add_argument("kind", choices=["insulin", "carb", "check"])

    listing = command("list", "Listar registros.")
    listing.add_argument("--window", choices=sorted(WINDOWS))
    listing.add_argument("--limit", type=int, default=20)

    command("stats", "Estadísticas del dashboard.")

    trend = command("trend", "Serie de tendencia de la ventana.")
    trend.add_argument("--window", choices=sorted(WINDOWS))

    report = command("report", "Reporte clínico en Excel.")
    report.add_argument("--window", choices=sorted(WINDOWS))
    report.add_argument("--out-dir")

    command("export", "Exportar registros a JSON.").add_argument("--out-dir")
    command("import", "Reemplazar registros desde JSON.").add_argument("file")
    command("analyze", "Análisis de tendencias con IA.")
    command("estimate", "Estimar carbohidratos con IA.").add_argument("description")
    command("sync-image", "Importar lecturas de una captura.").add_argument("image")

    config = sub.add_parser("config", help="Ver o guardar preferencias.")
    config.add_argument("--language")
    config.add_argument("--export-dir")
    config.add_argument("--chart-range", choices=sorted(WINDOWS))
    config.set_defaults(profile=None)

    return parser.parse_args(argv)


def _add_entry_fields(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--date", help="YYYY-MM-DD (default: hoy).")
    parser.add_argument("--time", help="HH:MM (default: ahora).")
    parser.add_argument("--sensor", help="Glucosa del sensor (mg/dL).")
    parser.add_argument("--stick", help="Glucosa capilar (mg/dL).")
    parser.add_argument("--carbs", help="Carbohidratos (g).")
    parser.add_argument("--insulin", help="Unidades de insulina.")
    parser.add_argument("--insulin-type", choices=sorted(INSULIN_CHOICES))
    parser.add_argument("--meal", choices=sorted(MEAL_CHOICES))
    parser.add_argument("--notes")


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI.

    Returns:
        Exit code (0 on success).
    """
    ns = parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log_format, settings.log_level)
    local_tz = settings.local_tz()
    db_path = Path(ns.db).expanduser() if ns.db else settings.db_path.expanduser()
    store = SQLiteStore(db_path, default_tz=local_tz)
    app_config = store.load_config()

    if ns.command == "config":
        return _run_config(store, app_config, ns)

    profile_id = ns.profile or app_config.last_profile
    if not profile_id:
        print("Error: indicar --profile")
        return 2

    session = Session(
        store,
        ai=_LazyGemini(settings, local_tz),
        language=app_config.language,
        local_tz=local_tz,
    )
    session.select_profile(profile_id)
    if profile_id != app_config.last_profile:
        store.save_config(replace(app_config, last_profile=profile_id))

    try:
        code = _dispatch(ns, session, app_config)
    except ValueError as exc:
        print(f"Error: {exc}")
        return 2
    for notification in session.pop_notifications():
        prefix = "OK" if notification.kind == "success" else "Error"
        print(f"{prefix}: {notification.message}")
    return code


def _dispatch(ns: argparse.Namespace, session: Session, app_config: AppConfig) -> int:
    store = session.require_store()
    window = getattr(ns, "window", None) or app_config.chart_range

    if ns.command == "add":
        entry = _entry_from_args(ns, ManualEntry.blank(session.now()))
        if ns.estimate:
            notes, items = session.estimate_carbs(ns.estimate, entry.notes)
            if not items:
                print("Sin estimación de carbohidratos.")
            entry = replace(entry, notes=notes)
        session.add_log(entry.to_new_log_data(session.local_tz))
        return 0

    if ns.command == "edit":
        editing = store.get(ns.id)
        if editing is None:
            print(f"Sin cambios: no existe el registro {ns.id}")
            return 0
        entry = _entry_from_args(ns, ManualEntry.from_log(editing, session.local_tz))
        session.update_log(entry.to_updated_log(editing, session.local_tz))
        return 0

    if ns.command == "delete":
        session.delete_log(ns.id)
        return 0

    if ns.command == "quick":
        session.add_log(quick_log_data(ns.kind, session.now()))
        return 0

    if ns.command == "list":
        logs = session.window_logs(ns.window) if ns.window else list(store.logs)
        print(_logs_table(logs[: ns.limit], session))
        return 0

    if ns.command == "stats":
        stats = session.stats()
        print(f"Glucosa promedio: {stats.average_level} mg/dL")
        print(f"Tiempo en rango: {stats.time_in_range}%")
        print(f"Eventos hipo: {stats.hypo_count}")
        print(f"Eventos hiper: {stats.hyper_count}")
        return 0

    if ns.command == "trend":
        frame = trend_frame(session.window_logs(window), session.local_tz)
        print(frame.to_string(index=False) if not frame.empty else "Sin datos.")
        return 0

    if ns.command == "report":
        out_dir = _out_dir(ns.out_dir, app_config)
        ts = session.now().strftime("%Y-%m-%d_%H-%M-%S")
        out_path = out_dir / f"reporte_glucosa_{store.profile_id}_{ts}.xlsx"
        write_clinical_report(
            session.window_logs(window),
            session.stats(),
            out_path,
            ReportLayout(),
            profile_id=store.profile_id,
            window=window,
            generated=session.now(),
            local_tz=session.local_tz,
        )
        print(f"OK: Output: {out_path}")
        return 0

    if ns.command == "export":
        out_path = write_export(
            store.logs, _out_dir(ns.out_dir, app_config), session.now().date()
        )
        print(f"OK: Output: {out_path}")
        return 0

    if ns.command == "import":
        return _run_import(Path(ns.file), session)

    if ns.command == "analyze":
        insight = session.run_trend_analysis()
        if insight is None:
            print("Sin análisis.")
            return 1 if _has_errors(session) else 0
        print(insight.summary)
        for pattern in insight.patterns:
            print(f"- {pattern}")
        for suggestion in insight.suggestions:
            print(f"* {suggestion}")
        if insight.warning:
            print(f"! {insight.warning}")
        return 0

    if ns.command == "estimate":
        _, items = session.estimate_carbs(ns.description, "")
        if not items:
            print("Sin estimación de carbohidratos.")
            return 0
        for item in items:
            print(f"{item.name} ({item.portion}): {item.carbs:g}g")
        print(f"Total: {sum(item.carbs for item in items):g}g")
        return 0

    if ns.command == "sync-image":
        added = session.sync_sensor_image(SensorImageSource(Path(ns.image)))
        print(f"Lecturas importadas: {added}")
        return 0 if added or not _has_errors(session) else 1

    raise ValueError(f"Unknown command: {ns.command}")


def _run_config(
    store: SQLiteStore, app_config: AppConfig, ns: argparse.Namespace
) -> int:
    export_dir = app_config.export_dir if ns.export_dir is None else ns.export_dir
    updated = replace(
        app_config,
        language=ns.language or app_config.language,
        export_dir=export_dir,
        chart_range=ns.chart_range or app_config.chart_range,
    )
    if updated != app_config:
        store.save_config(updated)
    print(f"language: {updated.language}")
    print(f"export_dir: {updated.export_dir}")
    print(f"chart_range: {updated.chart_range}")
    print(f"last_profile: {updated.last_profile}")
    return 0


def _run_import(path: Path, session: Session) -> int:
    store = session.require_store()
    logs = read_export(path, session.local_tz)
    foreign = [log for log in logs if log.profile_id != store.profile_id]
    if foreign:
        logger.warning(
            "Imported logs belong to another profile",
            count=len(foreign),
            profile_id=store.profile_id,
        )
        logs = [replace(log, profile_id=store.profile_id) for log in logs]
    session.import_logs(logs)
    logger.info("Logs imported", path=str(path), count=len(logs))
    return 0


def _entry_from_args(ns: argparse.Namespace, base: ManualEntry) -> ManualEntry:
    """Form fields given on the command line override ``base``."""
    overrides: dict[str, object] = {}
    for attr, field_name in (
        ("date", "date"),
        ("time", "time"),
        ("sensor", "sensor_level"),
        ("stick", "stick_level"),
        ("carbs", "carbs"),
        ("insulin", "insulin_units"),
        ("notes", "notes"),
    ):
        value = getattr(ns, attr, None)
        if value is not None:
            overrides[field_name] = value
    if getattr(ns, "insulin_type", None):
        overrides["insulin_type"] = INSULIN_CHOICES[ns.insulin_type]
    if getattr(ns, "meal", None):
        overrides["meal_type"] = MEAL_CHOICES[ns.meal]
    return replace(base, **overrides)


def _logs_table(logs: Sequence[GlucoseLog], session: Session) -> str:
    if not logs:
        return "Sin registros."
    rows = [
        {
            "id": log.id,
            "fecha": log.timestamp.astimezone(session.local_tz).strftime(
                "%d/%m/%Y %H:%M"
            ),
            "glucosa": _format_level(log),
            "estado": classify(effective_level(log)) if has_reading(log) else "",
            "insulina": f"{log.insulin_units:g}u" if log.insulin_units else "",
            "carbs": f"{log.carbs}g" if log.carbs else "",
            "comida": log.meal_type.value,
            "origen": log.source.value,
        }
        for log in logs
    ]
    return pd.DataFrame(rows).to_string(index=False, max_colwidth=40)


def _format_level(log: GlucoseLog) -> str:
    if not has_reading(log):
        return ""
    return f"{effective_level(log):g}"


def _out_dir(arg: str | None, app_config: AppConfig) -> Path:
    if arg:
        return Path(arg).expanduser()
    if app_config.export_dir:
        return Path(app_config.export_dir).expanduser()
    return Path.cwd() / "salidas"


def _has_errors(session: Session) -> bool:
    return any(n.kind == "error" for n in session.notifications)


class _LazyGemini:
    """Builds the Gemini client on first use so offline commands need no key."""

    def __init__(self, settings: Settings, local_tz: tzinfo) -> None:
        self._settings = settings
        self._local_tz = local_tz
        self._client: GeminiClient | None = None

    def _get(self) -> GeminiClient:
        if self._client is None:
            self._client = GeminiClient(
                self._settings.gemini_api_key,
                model=self._settings.gemini_model,
                default_tz=self._local_tz,
            )
        return self._client

    def analyze_trends(
        self, logs: list[GlucoseLog], language: str
    ) -> TrendInsight | None:
        return self._get().analyze_trends(logs, language)

    def estimate_meal_carbs(self, description: str, language: str) -> list[MealItem]:
        return self._get().estimate_meal_carbs(description, language)

    def extract_sensor_points(
        self, image_b64: str, mime_type: str = "image/jpeg"
    ) -> list[SensorPoint]:
        return self._get().extract_sensor_points(image_b64, mime_type)
