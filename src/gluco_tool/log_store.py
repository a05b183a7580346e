"""Colección ordenada de registros de un perfil (alta, edición, baja, lote)."""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import asdict

from gluco_tool.logging_config import get_logger
from gluco_tool.model import GlucoseLog, NewLogData
from gluco_tool.storage import LogRepository

logger = get_logger(__name__)

Observer = Callable[[str, object], None]


def sort_descending(logs: Iterable[GlucoseLog]) -> list[GlucoseLog]:
    """Newest first; ties keep their current relative order."""
    return sorted(logs, key=lambda log: log.timestamp, reverse=True)


def new_log_id() -> str:
    return str(uuid.uuid4())


def duplicate_id(logs: Iterable[GlucoseLog]) -> str | None:
    """First id that appears more than once, if any."""
    seen: set[str] = set()
    for log in logs:
        if log.id in seen:
            return log.id
        seen.add(log.id)
    return None


class LogStore:
    """Authoritative log collection of one profile.

    The collection is kept sorted newest first after every mutation, and
    every mutation writes the whole collection through the repository.
    New records are placed ahead of the existing ones before sorting, so
    among equal timestamps the most recently added come first.
    """

    def __init__(
        self,
        profile_id: str,
        repository: LogRepository,
        initial: Sequence[GlucoseLog] = (),
    ) -> None:
        """Create a store over an already ordered initial collection.

        Args:
            profile_id: Owner of every log in the store.
            repository: Persistence collaborator.
            initial: Collection as loaded, kept in the given order.
        """
        self.profile_id = profile_id
        self._repository = repository
        self._logs: list[GlucoseLog] = list(initial)
        self._observers: list[Observer] = []
        self._lock = threading.RLock()

    @classmethod
    def open(cls, profile_id: str, repository: LogRepository) -> LogStore:
        """Load the profile's collection from the repository."""
        logs = repository.load(profile_id)
        logger.info("Log store opened", profile_id=profile_id, count=len(logs))
        return cls(profile_id, repository, logs)

    @property
    def logs(self) -> tuple[GlucoseLog, ...]:
        return tuple(self._logs)

    def __len__(self) -> int:
        return len(self._logs)

    def __iter__(self) -> Iterator[GlucoseLog]:
        return iter(tuple(self._logs))

    def get(self, log_id: str) -> GlucoseLog | None:
        for log in self._logs:
            if log.id == log_id:
                return log
        return None

    def subscribe(self, observer: Observer) -> None:
        """Register ``observer(event, payload)`` for successful mutations."""
        self._observers.append(observer)

    def add(self, data: NewLogData) -> None:
        """Insert a new log with a fresh id owned by this profile."""
        log = self._stamp(data)
        with self._lock:
            self._logs = sort_descending([log, *self._logs])
            self._commit("added", log)

    def update(self, log: GlucoseLog) -> None:
        """Replace the log with the same id; unknown ids are ignored."""
        with self._lock:
            index = self._index_of(log.id)
            if index is None:
                logger.debug("Update ignored, unknown log", log_id=log.id)
                return
            logs = list(self._logs)
            logs[index] = log
            self._logs = sort_descending(logs)
            self._commit("updated", log)

    def delete(self, log_id: str) -> None:
        """Remove the log with ``log_id``; unknown ids are ignored."""
        with self._lock:
            index = self._index_of(log_id)
            if index is None:
                logger.debug("Delete ignored, unknown log", log_id=log_id)
                return
            logs = list(self._logs)
            removed = logs.pop(index)
            self._logs = logs
            self._commit("deleted", removed)

    def bulk_add(self, logs: Sequence[GlucoseLog]) -> None:
        """Insert a batch of complete logs with a single sort and save.

        Raises:
            ValueError: If an id repeats inside the batch or is already stored.
        """
        if not logs:
            return
        with self._lock:
            clash = duplicate_id([*logs, *self._logs])
            if clash is not None:
                raise ValueError(f"Duplicate log id: {clash}")
            self._logs = sort_descending([*logs, *self._logs])
            self._commit("bulk_added", list(logs))

    def replace_all(self, logs: Sequence[GlucoseLog]) -> None:
        """Swap the whole collection for ``logs``, kept in the given order.

        Raises:
            ValueError: If an id repeats in ``logs``.
        """
        clash = duplicate_id(logs)
        if clash is not None:
            raise ValueError(f"Duplicate log id: {clash}")
        with self._lock:
            self._logs = list(logs)
            self._commit("imported", len(self._logs))

    def _stamp(self, data: NewLogData) -> GlucoseLog:
        return GlucoseLog(id=new_log_id(), profile_id=self.profile_id, **asdict(data))

    def _index_of(self, log_id: str) -> int | None:
        for index, log in enumerate(self._logs):
            if log.id == log_id:
                return index
        return None

    def _commit(self, event: str, payload: object) -> None:
        if not self._repository.save(self.profile_id, self._logs):
            logger.warning(
                "Logs could not be persisted",
                profile_id=self.profile_id,
                event=event,
            )
        logger.info(event, profile_id=self.profile_id, count=len(self._logs))
        for observer in list(self._observers):
            observer(event, payload)
