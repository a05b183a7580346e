"""Reporte clínico en Excel formateado para imprimir y llevar al médico."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Any

import pandas as pd
from dateutil import tz
from openpyxl.styles import Alignment, Border, Font, Side

from gluco_tool.levels import classify, effective_level, has_reading
from gluco_tool.model import DashboardStats, GlucoseLog
from gluco_tool.stats import daily_summary

_DIA_SEMANA: tuple[str, ...] = ("lun", "mar", "mie", "jue", "vie", "sab", "dom")

_WINDOW_LABELS: dict[str, str] = {
    "day": "Últimas 24 horas",
    "week": "Últimos 7 días",
    "month": "Últimos 30 días",
}

_JOURNAL_HEADERS = [
    "Día",
    "Fecha / Hora",
    "Valor",
    "Estado",
    "Insulina",
    "Carbohidratos",
]

_DAILY_HEADER_MAP: dict[str, str] = {
    "date": "Fecha",
    "glucose_count": "Lecturas",
    "glucose_min": "Mínima (mg/dL)",
    "glucose_max": "Máxima (mg/dL)",
    "glucose_avg": "Promedio (mg/dL)",
    "time_in_range": "En rango (%)",
}

_STATUS_LABELS = {"hypo": "Hipo", "normal": "Normal", "hyper": "Hiper"}

THIN = Side(style="thin")
BORDER = Border(left=THIN, right=THIN, top=THIN, bottom=THIN)
CENTER = Alignment(horizontal="center", vertical="center", wrap_text=True)


@dataclass(frozen=True)
class ReportLayout:
    """Layout/formatting configuration for the clinical report."""

    summary_sheet: str = "Resumen"
    journal_sheet: str = "Diario"
    daily_sheet: str = "Por día"
    journal_rows: int = 30


def journal_frame(
    logs: Sequence[GlucoseLog], limit: int, local_tz: tzinfo | None = None
) -> pd.DataFrame:
    """Printable journal table for the first ``limit`` logs."""
    zone = local_tz or tz.tzlocal()
    rows = []
    for log in list(logs)[:limit]:
        local = log.timestamp.astimezone(zone)
        level = effective_level(log)
        rows.append(
            {
                "Día": _DIA_SEMANA[local.weekday()],
                "Fecha / Hora": local.replace(tzinfo=None),
                "Valor": f"{_number(level)} mg/dL" if has_reading(log) else "-",
                "Estado": _STATUS_LABELS[classify(level)] if has_reading(log) else "",
                "Insulina": _insulin_label(log),
                "Carbohidratos": f"{log.carbs}g" if log.carbs > 0 else "-",
            }
        )
    return pd.DataFrame(rows, columns=_JOURNAL_HEADERS)


def summary_frame(
    stats: DashboardStats, profile_id: str, window: str, generated: datetime
) -> pd.DataFrame:
    """Two-column block with the dashboard statistics."""
    rows = [
        ("Perfil", profile_id),
        ("Período", _WINDOW_LABELS.get(window, window)),
        ("Generado", generated.strftime("%d/%m/%Y %H:%M")),
        ("Glucosa promedio (mg/dL)", stats.average_level),
        ("Tiempo en rango 80-130 (%)", stats.time_in_range),
        ("Eventos hipo (<70)", stats.hypo_count),
        ("Eventos hiper (>180)", stats.hyper_count),
    ]
    return pd.DataFrame(rows, columns=["Indicador", "Valor"])


def write_clinical_report(
    logs: Sequence[GlucoseLog],
    stats: DashboardStats,
    out_path: Path,
    layout: ReportLayout,
    *,
    profile_id: str,
    window: str,
    generated: datetime | None = None,
    local_tz: tzinfo | None = None,
) -> None:
    """Write a formatted Excel file suitable for printing.

    Args:
        logs: Window logs, newest first.
        stats: Dashboard statistics (computed over all logs).
        out_path: Output path for the XLSX file.
        layout: Report layout parameters.
        profile_id: Owner shown in the header.
        window: Chart window the logs were filtered with.
        generated: Generation time (defaults to now).
        local_tz: Timezone of the printed times.
    """
    out_path.parent.mkdir(parents=True, exist_ok=True)
    generated = generated or datetime.now(tz=local_tz or tz.tzlocal())

    summary_df = summary_frame(stats, profile_id, window, generated)
    journal_df = journal_frame(logs, layout.journal_rows, local_tz)
    daily_df = daily_summary(logs, local_tz).rename(columns=_DAILY_HEADER_MAP)

    with pd.ExcelWriter(out_path, engine="openpyxl") as writer:
        summary_df.to_excel(writer, index=False, sheet_name=layout.summary_sheet)
        journal_df.to_excel(writer, index=False, sheet_name=layout.journal_sheet)
        daily_df.to_excel(writer, index=False, sheet_name=layout.daily_sheet)
        _format_sheet(
            writer.book[layout.summary_sheet], {"Indicador": 28, "Valor": 22}
        )
        _format_sheet(
            writer.book[layout.journal_sheet],
            {
                "Día": 6,
                "Fecha / Hora": 18,
                "Valor": 14,
                "Estado": 10,
                "Insulina": 22,
                "Carbohidratos": 14,
            },
            {"Fecha / Hora": "dd/mm/yyyy hh:mm"},
        )
        _format_sheet(
            writer.book[layout.daily_sheet],
            {name: 14 for name in _DAILY_HEADER_MAP.values()},
            {"Fecha": "dd/mm/yyyy", "Promedio (mg/dL)": "0.00"},
        )


def _insulin_label(log: GlucoseLog) -> str:
    if log.insulin_units > 0:
        return f"{_number(log.insulin_units)}u ({log.insulin_type.value})"
    return "-"


def _number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def _style_header_row(ws: Any) -> None:
    """Aplica fuente negrita, alineación y borde a la fila de cabecera."""
    header_font = Font(bold=True)
    for cell in ws[1]:
        cell.font = header_font
        cell.alignment = CENTER
        cell.border = BORDER


def _style_body_rows(ws: Any) -> None:
    """Aplica alineación, borde y altura fija a las filas de datos."""
    for row in ws.iter_rows(min_row=2):
        for cell in row:
            cell.alignment = CENTER
            cell.border = BORDER
        ws.row_dimensions[row[0].row].height = 15


def _get_header_col_index(ws: Any) -> dict[str, int]:
    """Devuelve mapa nombre de cabecera -> índice de columna (1-based)."""
    headers = [str(cell.value) for cell in ws[1]]
    return {name: idx + 1 for idx, name in enumerate(headers)}


def _format_sheet(
    ws: Any, widths: dict[str, int], formats: dict[str, str] | None = None
) -> None:
    """Apply borders, widths and number formats to a worksheet.

    Args:
        ws: openpyxl worksheet.
        widths: Column width per header.
        formats: Number format per header.
    """
    _style_header_row(ws)
    _style_body_rows(ws)
    col_index = _get_header_col_index(ws)
    for header, width in widths.items():
        idx = col_index.get(header)
        if idx is not None:
            letter = ws.cell(row=1, column=idx).column_letter
            ws.column_dimensions[letter].width = width
    for row in ws.iter_rows(min_row=2):
        for header, fmt in (formats or {}).items():
            idx = col_index.get(header)
            if idx is not None:
                row[idx - 1].number_format = fmt
    ws.page_setup.orientation = "landscape"
    ws.page_setup.fitToWidth = 1
    ws.print_title_rows = "1:1"
