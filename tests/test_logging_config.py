from __future__ import annotations

import json
import logging

import pytest

from gluco_tool.logging_config import (
    JsonFormatter,
    TextFormatter,
    get_logger,
    profile_id_ctx,
    setup_logging,
)


def _record(msg: str, **extra_fields: object) -> logging.LogRecord:
    record = logging.LogRecord(
        "gluco_tool.test", logging.INFO, __file__, 1, msg, None, None
    )
    if extra_fields:
        record.extra_fields = extra_fields
    return record


def test_json_formatter_includes_profile_and_extra() -> None:
    token = profile_id_ctx.set("ana")
    try:
        line = JsonFormatter().format(_record("added", count=3))
    finally:
        profile_id_ctx.reset(token)
    data = json.loads(line)
    assert data["message"] == "added"
    assert data["service"] == "gluco-tool"
    assert data["profile_id"] == "ana"
    assert data["count"] == 3


def test_text_formatter_without_profile() -> None:
    token = profile_id_ctx.set(None)
    try:
        line = TextFormatter().format(_record("Log store opened", count=0))
    finally:
        profile_id_ctx.reset(token)
    assert "[-] - Log store opened count=0" in line
    assert " INFO " in line


def test_structured_logger_passes_extra_fields(
    caplog: pytest.LogCaptureFixture,
) -> None:
    logger = get_logger("gluco_tool.test")
    with caplog.at_level(logging.INFO, logger="gluco_tool.test"):
        logger.info("Logs saved", profile_id="ana", count=2)
    (record,) = caplog.records
    assert record.getMessage() == "Logs saved"
    assert record.extra_fields == {"profile_id": "ana", "count": 2}


def test_setup_logging_installs_single_handler() -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging("json", "debug")
        setup_logging("json", "debug")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        assert logging.getLogger("google_genai").level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
