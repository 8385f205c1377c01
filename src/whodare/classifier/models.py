"""Value types consumed and produced by the edit classifier."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

Origin = Literal["human", "ai"]


@dataclass(slots=True, frozen=True)
class EditDescription:
    """One content change reported by the editor.

    ``range_length`` is the number of characters the change replaced and
    ``start_line``/``end_line`` bound the replaced range (zero-based, inclusive).
    """

    text: str = ""
    range_length: int = 0
    start_line: int = 0
    end_line: int = 0

    @property
    def is_empty(self) -> bool:
        return self.range_length == 0 and not self.text

    @property
    def is_pure_deletion(self) -> bool:
        return self.range_length > 0 and not self.text

    @property
    def is_multiline(self) -> bool:
        return "\n" in self.text

    @property
    def newline_count(self) -> int:
        return self.text.count("\n")

    @property
    def lines_added(self) -> int:
        if not self.text:
            return 0
        return max(1, len(self.text.split("\n")))

    @property
    def chars_added(self) -> int:
        return len(self.text)

    @property
    def lines_deleted(self) -> int:
        if self.range_length <= 0:
            return 0
        return max(1, self.end_line - self.start_line + 1)

    @property
    def chars_deleted(self) -> int:
        return max(0, self.range_length)


@dataclass(slots=True, frozen=True)
class CompletionCandidate:
    """Selection text recently observed in the editor, timestamped in milliseconds."""

    text: str
    observed_at: int

    def age(self, now: int) -> int:
        return now - self.observed_at


__all__ = ["CompletionCandidate", "EditDescription", "Origin"]
