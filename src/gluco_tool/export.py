"""Exportación e importación JSON de los registros de un perfil."""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import date, tzinfo
from pathlib import Path
from typing import Any

from gluco_tool.log_store import duplicate_id
from gluco_tool.model import GlucoseLog, log_from_dict, log_to_dict


def dumps_logs(logs: Sequence[GlucoseLog]) -> str:
    """JSON array of the logs, in the given order."""
    return json.dumps([log_to_dict(log) for log in logs], ensure_ascii=False, indent=2)


def loads_logs(text: str, default_tz: tzinfo | None = None) -> list[GlucoseLog]:
    """Parse an exported JSON array, keeping its order.

    Raises:
        ValueError: If the JSON is invalid, is not a list of log objects, or
            repeats an id.
    """
    raw: Any = json.loads(text)
    if not isinstance(raw, list):
        raise ValueError("Exported logs JSON must be a list")
    out: list[GlucoseLog] = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValueError(f"Item {index} is not an object")
        out.append(log_from_dict(item, default_tz))
    clash = duplicate_id(out)
    if clash is not None:
        raise ValueError(f"Duplicate log id in export: {clash}")
    return out


def export_filename(day: date) -> str:
    return f"gluco_logs_{day.isoformat()}.json"


def write_export(logs: Sequence[GlucoseLog], out_dir: Path, day: date) -> Path:
    """Write ``gluco_logs_<day>.json`` into ``out_dir`` and return its path."""
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / export_filename(day)
    out_path.write_text(dumps_logs(logs), encoding="utf-8")
    return out_path


def read_export(path: Path, default_tz: tzinfo | None = None) -> list[GlucoseLog]:
    """Read a file written by :func:`write_export`."""
    return loads_logs(path.read_text(encoding="utf-8"), default_tz)
