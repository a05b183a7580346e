"""App Kivy: dashboard del perfil, alta de registros, IA y exportación."""

from __future__ import annotations

import contextvars
import threading
import traceback
from collections.abc import Callable
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path
from typing import Any

import pandas as pd

from gluco_tool.config import get_settings
from gluco_tool.export import write_export
from gluco_tool.gemini import GeminiClient
from gluco_tool.logging_config import get_logger, setup_logging
from gluco_tool.model import InsulinType, MealType, TrendInsight
from gluco_tool.report_writer import (
    ReportLayout,
    journal_frame,
    write_clinical_report,
)
from gluco_tool.session import Session, Task
from gluco_tool.sources.manual import ManualEntry, quick_log_data
from gluco_tool.sources.sensor_image import SensorImageSource
from gluco_tool.storage import SQLiteStore

logger = get_logger(__name__)

DEFAULT_PROFILE = "default"
PREVIEW_ROWS = 120
IMAGE_FILTERS = ["*.jpg", "*.jpeg", "*.png", "*.webp", "*.heic", "*.heif"]

_WINDOW_BUTTONS = {"day": "24 h", "week": "7 días", "month": "30 días"}
_QUICK_BUTTONS = {
    "insulin": "Insulina 1u",
    "carb": "Colación 15g",
    "check": "Control",
}
_TASK_STATUS = {
    "analyzing": "Analizando tendencias...",
    "estimating": "Estimando carbohidratos...",
    "syncing": "Leyendo captura...",
}


def run_app() -> int:
    """Lanza la app Kivy."""
    from kivy.app import App
    from kivy.clock import Clock
    from kivy.core.window import Window
    from kivy.resources import resource_find
    from kivy.uix.boxlayout import BoxLayout
    from kivy.uix.button import Button
    from kivy.uix.filechooser import FileChooserListView
    from kivy.uix.gridlayout import GridLayout
    from kivy.uix.label import Label
    from kivy.uix.popup import Popup
    from kivy.uix.spinner import Spinner
    from kivy.uix.textinput import TextInput

    settings = get_settings()
    setup_logging(settings.log_format, settings.log_level)

    class GlucoToolApp(App):
        """Main Kivy app."""

        def __init__(self, **kwargs: object) -> None:
            super().__init__(**kwargs)
            self.local_tz = settings.local_tz()
            self.store = SQLiteStore(
                settings.db_path.expanduser(), default_tz=self.local_tz
            )
            self.app_config = self.store.load_config()
            self.session = Session(
                self.store,
                ai=_gemini_or_none(settings.gemini_api_key, settings.gemini_model),
                language=self.app_config.language,
                local_tz=self.local_tz,
            )
            self.session.select_profile(self.app_config.last_profile or DEFAULT_PROFILE)
            self.preview: TextInput | None = None
            self.status: Label | None = None
            self.stats_label: Label | None = None
            self._preview_font = resource_find("data/fonts/RobotoMono-Regular.ttf")

        def build(self) -> BoxLayout:
            Window.bind(on_key_down=self._on_key_down)

            root = BoxLayout(orientation="vertical", spacing=8, padding=10)
            self.stats_label = Label(text="", size_hint_y=None, height=36)
            root.add_widget(self.stats_label)

            windows = BoxLayout(orientation="horizontal", size_hint_y=None, height=36)
            for key, label in _WINDOW_BUTTONS.items():
                btn = Button(text=label)
                btn.bind(on_press=lambda _btn, key=key: self._set_window(key))
                windows.add_widget(btn)
            root.add_widget(windows)

            actions = BoxLayout(
                orientation="horizontal",
                spacing=8,
                size_hint_y=None,
                height=40,
            )
            for text, handler in (
                ("Nuevo registro", self._open_entry_popup),
                ("Análisis IA", self._on_analyze),
                ("Sincronizar captura", self._open_image_chooser),
                ("Exportar Excel", self._on_report),
                ("Exportar JSON", self._on_export_json),
                ("Perfil", self._open_profile_popup),
            ):
                btn = Button(text=text)
                btn.bind(on_press=handler)
                actions.add_widget(btn)
            exit_btn = Button(text="Salir")
            exit_btn.bind(on_press=lambda *_args: self.stop())
            actions.add_widget(exit_btn)
            root.add_widget(actions)

            quick = BoxLayout(orientation="horizontal", size_hint_y=None, height=36)
            for kind, label in _QUICK_BUTTONS.items():
                btn = Button(text=label)
                btn.bind(on_press=lambda _btn, kind=kind: self._on_quick(kind))
                quick.add_widget(btn)
            root.add_widget(quick)

            self.status = Label(text="", size_hint_y=None, height=30)
            root.add_widget(self.status)

            self.preview = TextInput(
                readonly=True,
                text="",
                multiline=True,
                do_wrap=False,
            )
            if self._preview_font:
                self.preview.font_name = self._preview_font
            root.add_widget(self.preview)

            self._refresh()
            return root

        def _on_key_down(
            self,
            _window: object,
            keycode: int,
            _scancode: int,
            _text: str,
            _modifiers: list[str],
        ) -> bool:
            # Esc: salir de fullscreen o cerrar app.
            if keycode != 27:
                return False
            if Window.fullscreen:
                Window.fullscreen = False
            else:
                self.stop()
            return True

        def _set_window(self, window: str) -> None:
            self.app_config = replace(self.app_config, chart_range=window)
            self.store.save_config(self.app_config)
            self._refresh()

        def _on_quick(self, kind: str) -> None:
            self.session.add_log(quick_log_data(kind, self.session.now()))
            self._refresh()

        def _open_entry_popup(self, _: object) -> None:
            entry = ManualEntry.blank(self.session.now())
            inputs: dict[str, TextInput] = {}
            grid = GridLayout(cols=2, spacing=4, size_hint_y=None)
            grid.bind(minimum_height=grid.setter("height"))
            for key, label in (
                ("date", "Fecha (YYYY-MM-DD)"),
                ("time", "Hora (HH:MM)"),
                ("sensor_level", "Sensor (mg/dL)"),
                ("stick_level", "Capilar (mg/dL)"),
                ("carbs", "Carbohidratos (g)"),
                ("insulin_units", "Insulina (u)"),
                ("notes", "Notas"),
                ("meal_description", "Comida a estimar"),
            ):
                grid.add_widget(Label(text=label, size_hint_y=None, height=34))
                inp = TextInput(
                    text=str(getattr(entry, key, "")),
                    multiline=False,
                    size_hint_y=None,
                    height=34,
                )
                inputs[key] = inp
                grid.add_widget(inp)
            insulin_type = Spinner(
                text=entry.insulin_type.value,
                values=[item.value for item in InsulinType],
                size_hint_y=None,
                height=34,
            )
            meal_type = Spinner(
                text=entry.meal_type.value,
                values=[item.value for item in MealType],
                size_hint_y=None,
                height=34,
            )
            grid.add_widget(Label(text="Tipo de insulina", size_hint_y=None, height=34))
            grid.add_widget(insulin_type)
            grid.add_widget(Label(text="Comida", size_hint_y=None, height=34))
            grid.add_widget(meal_type)

            footer = BoxLayout(orientation="horizontal", size_hint_y=None, height=42)
            cancel_btn = Button(text="Cancelar")
            estimate_btn = Button(text="Estimar carbohidratos")
            save_btn = Button(text="Guardar")
            footer.add_widget(cancel_btn)
            footer.add_widget(estimate_btn)
            footer.add_widget(save_btn)

            content = BoxLayout(orientation="vertical")
            content.add_widget(grid)
            content.add_widget(footer)
            popup = Popup(
                title="Nuevo registro",
                content=content,
                size_hint=(0.92, 0.92),
            )

            def estimate(*_: object) -> None:
                description = inputs["meal_description"].text
                notes = inputs["notes"].text

                def done(result: tuple[str, list[object]]) -> None:
                    inputs["notes"].text = result[0]
                    self._show_notifications()

                self._in_background(
                    "estimating",
                    lambda: self.session.estimate_carbs(description, notes),
                    done,
                )

            def save(*_: object) -> None:
                form = ManualEntry(
                    date=inputs["date"].text,
                    time=inputs["time"].text,
                    sensor_level=inputs["sensor_level"].text,
                    stick_level=inputs["stick_level"].text,
                    carbs=inputs["carbs"].text,
                    insulin_units=inputs["insulin_units"].text,
                    insulin_type=InsulinType(insulin_type.text),
                    meal_type=MealType(meal_type.text),
                    notes=inputs["notes"].text,
                )
                try:
                    data = form.to_new_log_data(self.local_tz)
                except ValueError as exc:
                    self._show_error("guardar", exc)
                    return
                self.session.add_log(data)
                popup.dismiss()
                self._refresh()

            cancel_btn.bind(on_press=lambda *_args: popup.dismiss())
            estimate_btn.bind(on_press=estimate)
            save_btn.bind(on_press=save)
            popup.open()

        def _open_profile_popup(self, _: object) -> None:
            known = self.store.profiles()
            inp = TextInput(text=self.session.profile_id or "", multiline=False)
            footer = BoxLayout(orientation="horizontal", size_hint_y=None, height=42)
            cancel_btn = Button(text="Cancelar")
            use_btn = Button(text="Usar perfil")
            footer.add_widget(cancel_btn)
            footer.add_widget(use_btn)
            content = BoxLayout(orientation="vertical", spacing=8, padding=8)
            content.add_widget(
                Label(text="Perfiles: " + (", ".join(known) or "ninguno"))
            )
            content.add_widget(inp)
            content.add_widget(footer)
            popup = Popup(title="Perfil", content=content, size_hint=(0.6, 0.5))

            def apply(*_: object) -> None:
                profile_id = inp.text.strip()
                if not profile_id:
                    return
                self.session.select_profile(profile_id)
                self.app_config = replace(self.app_config, last_profile=profile_id)
                self.store.save_config(self.app_config)
                popup.dismiss()
                self._refresh()

            cancel_btn.bind(on_press=lambda *_args: popup.dismiss())
            use_btn.bind(on_press=apply)
            popup.open()

        def _open_image_chooser(self, _: object) -> None:
            chooser = FileChooserListView(path=str(Path.home()), filters=IMAGE_FILTERS)
            buttons = BoxLayout(orientation="horizontal", size_hint_y=None, height=40)
            cancel_btn = Button(text="Cancelar")
            use_btn = Button(text="Importar")
            buttons.add_widget(cancel_btn)
            buttons.add_widget(use_btn)

            content = BoxLayout(orientation="vertical")
            content.add_widget(chooser)
            content.add_widget(buttons)
            popup = Popup(
                title="Seleccionar captura del sensor",
                content=content,
                size_hint=(0.9, 0.9),
            )
            cancel_btn.bind(on_press=lambda *_args: popup.dismiss())

            def apply_selection(*_: object) -> None:
                if not chooser.selection:
                    return
                popup.dismiss()
                source = SensorImageSource(Path(chooser.selection[0]))
                self._in_background(
                    "syncing",
                    lambda: self.session.sync_sensor_image(source),
                    lambda _count: self._refresh(),
                )

            use_btn.bind(on_press=apply_selection)
            chooser.bind(on_submit=lambda *_args: apply_selection())
            popup.open()

        def _on_analyze(self, _: object) -> None:
            self._in_background(
                "analyzing", self.session.run_trend_analysis, self._show_insight
            )

        def _show_insight(self, insight: TrendInsight | None) -> None:
            self._refresh()
            if insight is not None and self.preview is not None:
                lines = [insight.summary, ""]
                lines += [f"- {p}" for p in insight.patterns]
                lines += [f"* {s}" for s in insight.suggestions]
                if insight.warning:
                    lines += ["", f"! {insight.warning}"]
                self.preview.text = "\n".join(lines)

        def _on_report(self, _: object) -> None:
            store = self.session.require_store()
            timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
            out_path = (
                self._out_dir()
                / f"reporte_glucosa_{store.profile_id}_{timestamp}.xlsx"
            )
            window = self.app_config.chart_range
            try:
                write_clinical_report(
                    self.session.window_logs(window),
                    self.session.stats(),
                    out_path,
                    ReportLayout(),
                    profile_id=store.profile_id,
                    window=window,
                    local_tz=self.local_tz,
                )
            except Exception as exc:
                self._show_error("exportar", exc)
                return
            if self.status is not None:
                self.status.text = f"Excel generado: {out_path}"

        def _on_export_json(self, _: object) -> None:
            store = self.session.require_store()
            try:
                out_path = write_export(
                    store.logs, self._out_dir(), self.session.now().date()
                )
            except Exception as exc:
                self._show_error("exportar", exc)
                return
            if self.status is not None:
                self.status.text = f"JSON generado: {out_path}"

        def _in_background(
            self,
            task: Task,
            work: Callable[[], object],
            done: Callable[[Any], None],
        ) -> None:
            """Run ``work`` off the Kivy thread; ``done`` gets its result on it."""
            if self.session.is_busy(task):
                if self.status is not None:
                    self.status.text = "Operación en curso, esperar"
                return
            if self.status is not None:
                self.status.text = _TASK_STATUS[task]
            context = contextvars.copy_context()

            def target() -> None:
                try:
                    result = context.run(work)
                except Exception as exc:
                    logger.exception("Background task failed", task=task)
                    Clock.schedule_once(
                        lambda _dt, exc=exc: self._show_error("procesar", exc)
                    )
                    return
                Clock.schedule_once(lambda _dt: done(result))

            threading.Thread(target=target, name=task, daemon=True).start()

        def _out_dir(self) -> Path:
            if self.app_config.export_dir:
                return Path(self.app_config.export_dir).expanduser()
            return Path.cwd() / "salidas"

        def _refresh(self) -> None:
            stats = self.session.stats()
            if self.stats_label is not None:
                self.stats_label.text = (
                    f"{self.session.profile_id} | Promedio {stats.average_level}"
                    f" mg/dL | En rango {stats.time_in_range}%"
                    f" | Hipo {stats.hypo_count} | Hiper {stats.hyper_count}"
                )
            if self.preview is not None:
                logs = self.session.window_logs(self.app_config.chart_range)
                frame = journal_frame(logs, PREVIEW_ROWS, self.local_tz)
                self.preview.text = (
                    _display_frame(frame).to_string(index=False, max_colwidth=28)
                    if not frame.empty
                    else ""
                )
            self._show_notifications()

        def _show_notifications(self) -> None:
            notes = self.session.pop_notifications()
            if notes and self.status is not None:
                self.status.text = notes[-1].message

        def _show_error(self, action: str, exc: Exception) -> None:
            error_type = type(exc).__name__
            if self.status is not None:
                self.status.text = f"Error al {action} ({error_type}): {exc}"
            if self.preview is not None:
                self.preview.text = "".join(traceback.format_exception(exc))

    GlucoToolApp().run()
    return 0


def _gemini_or_none(api_key: str, model: str) -> GeminiClient | None:
    """Gemini client when a key is configured; AI actions fail softly without."""
    if not api_key:
        return None
    return GeminiClient(api_key, model=model)


def _display_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Prepare a string-renderable DataFrame for aligned preview."""
    if df.empty:
        return df.copy()
    out = df.copy()
    for col in out.columns:
        out[col] = out[col].map(_format_preview_value)
    return out


def _format_preview_value(value: object) -> str:
    """Format preview values without NaN/scientific notation."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    if isinstance(value, pd.Timestamp):
        ts = value.tz_localize(None) if value.tzinfo is not None else value
        return ts.strftime("%d/%m/%Y %H:%M")
    if isinstance(value, datetime):
        dt_value = value.replace(tzinfo=None) if value.tzinfo is not None else value
        return dt_value.strftime("%d/%m/%Y %H:%M")
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        text = format(value, "f").rstrip("0").rstrip(".")
        return text if text else "0"
    return str(value)

