"""Data models for persistent tracking.

Attribute names are snake_case; aliases carry the camelCase keys used by the
editor extension and the web viewer so the JSON stays interchangeable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from ..classifier.models import Origin

FORMAT_VERSION = "1.0"
FILE_HISTORY_LIMIT = 30
GLOBAL_HISTORY_LIMIT = 100

Operation = Literal["add", "delete", "modify"]


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class HistoryEvent(_WireModel):
    """A single classified edit. Immutable once recorded."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    timestamp: int = Field(..., ge=0, description="Unix time in milliseconds.")
    file_id: str = Field(..., alias="fileName")
    origin: Origin = Field(..., alias="type")
    lines_added: int = Field(default=0, ge=0, alias="linesAdded")
    chars_added: int = Field(default=0, ge=0, alias="charsAdded")
    lines_deleted: int = Field(default=0, ge=0, alias="linesDeleted")
    chars_deleted: int = Field(default=0, ge=0, alias="charsDeleted")
    operation: Operation = "add"


class FileStats(_WireModel):
    human_lines: int = Field(default=0, ge=0, alias="humanLines")
    ai_lines: int = Field(default=0, ge=0, alias="aiLines")
    human_chars: int = Field(default=0, ge=0, alias="humanChars")
    ai_chars: int = Field(default=0, ge=0, alias="aiChars")
    hash: str | None = Field(default=None, description="SHA-256 of the last seen content.")
    history: list[HistoryEvent] = Field(default_factory=list)

    @property
    def lines_by_origin(self) -> dict[str, int]:
        return {"human": self.human_lines, "ai": self.ai_lines}

    @property
    def chars_by_origin(self) -> dict[str, int]:
        return {"human": self.human_chars, "ai": self.ai_chars}

    @property
    def total_lines(self) -> int:
        return self.human_lines + self.ai_lines


class SessionStats(_WireModel):
    total_human_lines: int = Field(default=0, ge=0, alias="totalHumanLines")
    total_ai_lines: int = Field(default=0, ge=0, alias="totalAiLines")
    total_human_chars: int = Field(default=0, ge=0, alias="totalHumanChars")
    total_ai_chars: int = Field(default=0, ge=0, alias="totalAiChars")

    @property
    def total_lines(self) -> int:
        return self.total_human_lines + self.total_ai_lines


class DailyStats(_WireModel):
    """Per-calendar-day rollup. Only ever incremented."""

    date: str = Field(..., description="Local calendar day, YYYY-MM-DD.")
    human_lines: int = Field(default=0, ge=0, alias="humanLines")
    ai_lines: int = Field(default=0, ge=0, alias="aiLines")
    human_chars: int = Field(default=0, ge=0, alias="humanChars")
    ai_chars: int = Field(default=0, ge=0, alias="aiChars")
    events: int = Field(default=0, ge=0)


class TrackerData(_WireModel):
    format_version: str = Field(default=FORMAT_VERSION, alias="version")
    workspace_id: str = Field(..., alias="workspaceId", min_length=1)
    files: dict[str, FileStats] = Field(default_factory=dict)
    global_history: list[HistoryEvent] = Field(default_factory=list, alias="globalHistory")
    session_stats: SessionStats = Field(default_factory=SessionStats, alias="sessionStats")
    daily_stats: list[DailyStats] = Field(default_factory=list, alias="dailyStats")
    last_updated: int = Field(default=0, ge=0, alias="lastUpdated")

    def to_wire(self) -> dict[str, Any]:
        """Return the camelCase JSON-ready mapping."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_wire(cls, payload: dict[str, Any]) -> "TrackerData":
        return cls.model_validate(payload)


@dataclass(slots=True, frozen=True)
class EditDelta:
    """A classified edit ready to be folded into the aggregate."""

    origin: Origin
    timestamp: int
    lines_added: int = 0
    chars_added: int = 0
    lines_deleted: int = 0
    chars_deleted: int = 0

    @property
    def operation(self) -> Operation:
        deleted = self.lines_deleted > 0 or self.chars_deleted > 0
        added = self.chars_added > 0
        if deleted and added:
            return "modify"
        if deleted:
            return "delete"
        return "add"


__all__ = [
    "DailyStats",
    "EditDelta",
    "FILE_HISTORY_LIMIT",
    "FORMAT_VERSION",
    "FileStats",
    "GLOBAL_HISTORY_LIMIT",
    "HistoryEvent",
    "Operation",
    "SessionStats",
    "TrackerData",
]
