"""In-memory aggregation of classified edits."""

from __future__ import annotations

import hashlib
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from .models import (
    FILE_HISTORY_LIMIT,
    GLOBAL_HISTORY_LIMIT,
    DailyStats,
    EditDelta,
    FileStats,
    HistoryEvent,
    SessionStats,
    TrackerData,
)

logger = logging.getLogger(__name__)


class StoreNotInitializedError(RuntimeError):
    """Raised when the store is used before tracker data was loaded or created."""


def now_ms() -> int:
    return int(time.time() * 1000)


def local_day(timestamp: int) -> str:
    """Return the local calendar day of a millisecond timestamp."""

    return datetime.fromtimestamp(timestamp / 1000).date().isoformat()


def hash_content(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def create_empty_tracker_data(workspace_id: str, *, timestamp: int | None = None) -> TrackerData:
    return TrackerData(
        workspace_id=workspace_id,
        last_updated=now_ms() if timestamp is None else timestamp,
    )


@dataclass(slots=True)
class StatsSummary:
    """Headline human/AI split, rounded the way the status bar shows it."""

    total_lines: int
    human_lines: int
    ai_lines: int
    human_percent: int
    ai_percent: int

    @property
    def has_activity(self) -> bool:
        return self.total_lines > 0

    def label(self) -> str:
        if not self.has_activity:
            return "whoDare: No activity"
        return f"whoDare: Human {self.human_percent}% | AI {self.ai_percent}%"


@dataclass(slots=True)
class FileBreakdown:
    path: str
    human_lines: int
    ai_lines: int
    human_percent: int
    ai_percent: int
    events: int


def _split(human: int, ai: int) -> tuple[int, int]:
    total = human + ai
    if total == 0:
        return 0, 0
    human_percent = math.floor(human / total * 100 + 0.5)
    return human_percent, 100 - human_percent


class AggregationStore:
    """Owns the single ``TrackerData`` instance for a workspace.

    Mutation happens only through :meth:`apply_event`, :meth:`update_fingerprint`
    and :meth:`touch`; readers get deep copies from :meth:`snapshot`.
    """

    def __init__(
        self,
        data: TrackerData | None = None,
        *,
        clock: Callable[[], int] | None = None,
        day_of: Callable[[int], str] | None = None,
    ) -> None:
        self._data = data
        self._clock = clock or now_ms
        self._day_of = day_of or local_day

    @property
    def initialized(self) -> bool:
        return self._data is not None

    @property
    def workspace_id(self) -> str:
        return self._require().workspace_id

    def initialize(self, data: TrackerData) -> None:
        self._data = data

    def create_empty(self, workspace_id: str) -> TrackerData:
        self._data = create_empty_tracker_data(workspace_id, timestamp=self._clock())
        return self.snapshot()

    def _require(self) -> TrackerData:
        if self._data is None:
            raise StoreNotInitializedError("Tracker data not initialized")
        return self._data

    def _file(self, file_id: str) -> FileStats:
        data = self._require()
        stats = data.files.get(file_id)
        if stats is None:
            stats = FileStats()
            data.files[file_id] = stats
        return stats

    def _day(self, timestamp: int) -> DailyStats:
        data = self._require()
        day = self._day_of(timestamp)
        for record in reversed(data.daily_stats):
            if record.date == day:
                return record
        record = DailyStats(date=day)
        data.daily_stats.append(record)
        return record

    def apply_event(
        self, file_id: str, delta: EditDelta
    ) -> tuple[FileStats, SessionStats, DailyStats]:
        """Fold one classified edit into file, session and daily totals."""

        data = self._require()
        stats = self._file(file_id)
        session = data.session_stats
        daily = self._day(delta.timestamp)

        event = HistoryEvent(
            timestamp=delta.timestamp,
            file_id=file_id,
            origin=delta.origin,
            lines_added=delta.lines_added,
            chars_added=delta.chars_added,
            lines_deleted=delta.lines_deleted,
            chars_deleted=delta.chars_deleted,
            operation=delta.operation,
        )
        stats.history.append(event)
        if len(stats.history) > FILE_HISTORY_LIMIT:
            stats.history = stats.history[-FILE_HISTORY_LIMIT:]
        data.global_history.append(event)
        if len(data.global_history) > GLOBAL_HISTORY_LIMIT:
            data.global_history = data.global_history[-GLOBAL_HISTORY_LIMIT:]

        if delta.origin == "human":
            stats.human_lines += delta.lines_added
            stats.human_chars += delta.chars_added
            session.total_human_lines += delta.lines_added
            session.total_human_chars += delta.chars_added
            daily.human_lines += delta.lines_added
            daily.human_chars += delta.chars_added
        else:
            stats.ai_lines += delta.lines_added
            stats.ai_chars += delta.chars_added
            session.total_ai_lines += delta.lines_added
            session.total_ai_chars += delta.chars_added
            daily.ai_lines += delta.lines_added
            daily.ai_chars += delta.chars_added
        daily.events += 1

        # Deleted text has no known origin: take it from whichever bucket can
        # absorb it, human first, and skip when neither can.
        if delta.lines_deleted > 0:
            if stats.human_lines >= delta.lines_deleted:
                stats.human_lines -= delta.lines_deleted
                session.total_human_lines -= delta.lines_deleted
            elif stats.ai_lines >= delta.lines_deleted:
                stats.ai_lines -= delta.lines_deleted
                session.total_ai_lines -= delta.lines_deleted
            else:
                logger.debug(
                    "Skipped line deletion attribution",
                    extra={"file_id": file_id, "lines_deleted": delta.lines_deleted},
                )
        if delta.chars_deleted > 0:
            if stats.human_chars >= delta.chars_deleted:
                stats.human_chars -= delta.chars_deleted
                session.total_human_chars -= delta.chars_deleted
            elif stats.ai_chars >= delta.chars_deleted:
                stats.ai_chars -= delta.chars_deleted
                session.total_ai_chars -= delta.chars_deleted

        data.last_updated = max(data.last_updated, delta.timestamp)
        return (
            stats.model_copy(deep=True),
            session.model_copy(deep=True),
            daily.model_copy(deep=True),
        )

    def update_fingerprint(self, file_id: str, content: str) -> str:
        digest = hash_content(content)
        self._file(file_id).hash = digest
        return digest

    def touch(self, timestamp: int | None = None) -> None:
        self._require().last_updated = self._clock() if timestamp is None else timestamp

    def snapshot(self) -> TrackerData:
        return self._require().model_copy(deep=True)

    def summary(self) -> StatsSummary:
        session = self._require().session_stats
        human_percent, ai_percent = _split(session.total_human_lines, session.total_ai_lines)
        return StatsSummary(
            total_lines=session.total_lines,
            human_lines=session.total_human_lines,
            ai_lines=session.total_ai_lines,
            human_percent=human_percent,
            ai_percent=ai_percent,
        )

    def file_breakdown(self) -> list[FileBreakdown]:
        rows: list[FileBreakdown] = []
        for path, stats in self._require().files.items():
            if stats.total_lines == 0:
                continue
            human_percent, ai_percent = _split(stats.human_lines, stats.ai_lines)
            rows.append(
                FileBreakdown(
                    path=path,
                    human_lines=stats.human_lines,
                    ai_lines=stats.ai_lines,
                    human_percent=human_percent,
                    ai_percent=ai_percent,
                    events=len(stats.history),
                )
            )
        return rows


__all__ = [
    "AggregationStore",
    "FileBreakdown",
    "StatsSummary",
    "StoreNotInitializedError",
    "create_empty_tracker_data",
    "hash_content",
    "local_day",
    "now_ms",
]
