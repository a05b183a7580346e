from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any

import pytest
from dateutil import tz

from gluco_tool.model import GlucoseLog

UTC = tz.UTC
NOW = datetime(2025, 12, 15, 12, 0, tzinfo=UTC)


def make_log(
    log_id: str,
    timestamp: datetime = NOW,
    profile_id: str = "ana",
    **fields: Any,
) -> GlucoseLog:
    return GlucoseLog(id=log_id, profile_id=profile_id, timestamp=timestamp, **fields)


class FakeRepository:
    """In-memory repository that records every save."""

    def __init__(self, stored: dict[str, list[GlucoseLog]] | None = None) -> None:
        self.stored = {k: list(v) for k, v in (stored or {}).items()}
        self.saves: list[tuple[str, list[GlucoseLog]]] = []
        self.fail = False

    def load(self, profile_id: str) -> list[GlucoseLog]:
        return list(self.stored.get(profile_id, []))

    def save(self, profile_id: str, logs: Sequence[GlucoseLog]) -> bool:
        self.saves.append((profile_id, list(logs)))
        if self.fail:
            return False
        self.stored[profile_id] = list(logs)
        return True


@pytest.fixture
def repo() -> FakeRepository:
    return FakeRepository()
