from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import cast

from dateutil import tz
from openpyxl import load_workbook
from openpyxl.worksheet.worksheet import Worksheet

from conftest import NOW, make_log
from gluco_tool.model import GlucoseLog, InsulinType
from gluco_tool.report_writer import ReportLayout, journal_frame, write_clinical_report
from gluco_tool.stats import compute_stats


def _logs() -> list[GlucoseLog]:
    return [
        make_log(
            "a",
            NOW,
            sensor_level=142.0,
            insulin_units=4.0,
            insulin_type=InsulinType.RAPID,
            carbs=45,
        ),
        make_log("b", NOW - timedelta(hours=5), stick_level=65.5),
        make_log("c", NOW - timedelta(hours=6), carbs=15),
    ]


def test_journal_frame_labels() -> None:
    df = journal_frame(_logs(), 30, tz.UTC)
    assert list(df["Día"]) == ["lun", "lun", "lun"]
    assert list(df["Valor"]) == ["142 mg/dL", "65.5 mg/dL", "-"]
    assert list(df["Estado"]) == ["Normal", "Hipo", ""]
    assert df.iloc[0]["Insulina"] == "4u (Rapid-acting)"
    assert df.iloc[1]["Insulina"] == "-"
    assert list(df["Carbohidratos"]) == ["45g", "-", "15g"]
    assert df.iloc[0]["Fecha / Hora"] == datetime(2025, 12, 15, 12, 0)


def test_journal_frame_limits_rows() -> None:
    assert len(journal_frame(_logs(), 2, tz.UTC)) == 2


def test_write_clinical_report_happy_path(tmp_path: Path) -> None:
    logs = _logs()
    out = tmp_path / "nested" / "reporte.xlsx"
    layout = ReportLayout()
    write_clinical_report(
        logs,
        compute_stats(logs),
        out,
        layout,
        profile_id="ana",
        window="day",
        generated=NOW,
        local_tz=tz.UTC,
    )

    wb = load_workbook(out)
    assert wb.sheetnames == ["Resumen", "Diario", "Por día"]

    summary = cast(Worksheet, wb[layout.summary_sheet])
    values = {
        summary.cell(row=r, column=1).value: summary.cell(row=r, column=2).value
        for r in range(2, summary.max_row + 1)
    }
    assert values["Perfil"] == "ana"
    assert values["Período"] == "Últimas 24 horas"
    assert values["Glucosa promedio (mg/dL)"] == 104
    assert values["Eventos hipo (<70)"] == 1

    journal = cast(Worksheet, wb[layout.journal_sheet])
    headers = [cell.value for cell in journal[1]]
    assert headers == [
        "Día",
        "Fecha / Hora",
        "Valor",
        "Estado",
        "Insulina",
        "Carbohidratos",
    ]
    assert journal.cell(row=1, column=1).font.bold is True
    assert journal.cell(row=2, column=3).value == "142 mg/dL"
    assert journal.cell(row=2, column=2).number_format == "dd/mm/yyyy hh:mm"
    assert journal.column_dimensions["B"].width == 18

    daily = cast(Worksheet, wb[layout.daily_sheet])
    assert daily.cell(row=1, column=1).value == "Fecha"
    assert daily.cell(row=2, column=2).value == 2


def test_write_clinical_report_without_logs(tmp_path: Path) -> None:
    out = tmp_path / "vacio.xlsx"
    write_clinical_report(
        [],
        compute_stats([]),
        out,
        ReportLayout(),
        profile_id="ana",
        window="week",
    )
    wb = load_workbook(out)
    journal = cast(Worksheet, wb["Diario"])
    assert journal.max_row == 1
