"""Ordered rule table that labels an edit as human or AI authored."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterator

from .models import CompletionCandidate, EditDescription, Origin

logger = logging.getLogger(__name__)

CANDIDATE_RULE = "candidate_match"


@dataclass(slots=True, frozen=True)
class ClassifierThresholds:
    """Policy constants for the heuristic. Defaults mirror the editor extension."""

    large_insert_chars: int = 50
    multiline_newlines: int = 2
    paste_chars: int = 30
    candidate_prefix_chars: int = 20
    candidate_match_ms: int = 1000
    candidate_ttl_ms: int = 5000


DEFAULT_THRESHOLDS = ClassifierThresholds()


class CandidateWindow:
    """Short-lived set of selections that may be accepted completions.

    Candidates are kept in observation order; the oldest matching one wins.
    """

    def __init__(self, thresholds: ClassifierThresholds = DEFAULT_THRESHOLDS) -> None:
        self._thresholds = thresholds
        self._pending: list[CompletionCandidate] = []

    def __len__(self) -> int:
        return len(self._pending)

    def __iter__(self) -> Iterator[CompletionCandidate]:
        return iter(list(self._pending))

    def observe(self, text: str, at: int) -> CompletionCandidate | None:
        """Record a non-empty selection and prune expired entries."""

        self.prune(at)
        if not text:
            return None
        candidate = CompletionCandidate(text=text, observed_at=at)
        self._pending.append(candidate)
        return candidate

    def prune(self, now: int) -> int:
        """Drop candidates older than the TTL. Returns how many were removed."""

        ttl = self._thresholds.candidate_ttl_ms
        kept = [candidate for candidate in self._pending if candidate.age(now) <= ttl]
        removed = len(self._pending) - len(kept)
        self._pending = kept
        return removed

    def consume_match(self, inserted: str, now: int) -> CompletionCandidate | None:
        """Remove and return the first eligible candidate whose prefix occurs in ``inserted``."""

        if not inserted:
            return None
        limit = self._thresholds.candidate_prefix_chars
        for index, candidate in enumerate(self._pending):
            if candidate.age(now) >= self._thresholds.candidate_match_ms:
                continue
            if candidate.text[:limit] in inserted:
                del self._pending[index]
                return candidate
        return None


@dataclass(slots=True, frozen=True)
class Rule:
    name: str
    predicate: Callable[[EditDescription, ClassifierThresholds], bool]
    origin: Origin


def _is_large_insertion(change: EditDescription, limits: ClassifierThresholds) -> bool:
    return len(change.text) > limits.large_insert_chars


def _has_many_lines(change: EditDescription, limits: ClassifierThresholds) -> bool:
    return change.newline_count > limits.multiline_newlines


def _looks_pasted(change: EditDescription, limits: ClassifierThresholds) -> bool:
    if len(change.text) <= limits.paste_chars:
        return False
    return change.is_multiline or change.text[:1].isspace()


RULES: tuple[Rule, ...] = (
    Rule("pure_deletion", lambda change, _: change.is_pure_deletion, "human"),
    Rule("large_insertion", lambda change, limits: bool(change.text) and _is_large_insertion(change, limits), "ai"),
    Rule("multiline_insertion", lambda change, limits: bool(change.text) and _has_many_lines(change, limits), "ai"),
    Rule("pasted_block", lambda change, limits: bool(change.text) and _looks_pasted(change, limits), "ai"),
    Rule("small_insertion", lambda change, _: bool(change.text), "human"),
    Rule("fallback", lambda change, _: True, "human"),
)


def evaluate(
    change: EditDescription,
    candidates: CandidateWindow,
    *,
    now: int,
    thresholds: ClassifierThresholds = DEFAULT_THRESHOLDS,
    rules: tuple[Rule, ...] = RULES,
) -> tuple[Origin, str]:
    """Return the origin and the name of the rule that decided it."""

    candidates.prune(now)
    if candidates.consume_match(change.text, now) is not None:
        return "ai", CANDIDATE_RULE

    for rule in rules:
        if rule.predicate(change, thresholds):
            return rule.origin, rule.name
    return "human", "fallback"


def classify(
    change: EditDescription,
    candidates: CandidateWindow,
    *,
    now: int,
    thresholds: ClassifierThresholds = DEFAULT_THRESHOLDS,
) -> Origin:
    origin, _ = evaluate(change, candidates, now=now, thresholds=thresholds)
    return origin


class EditClassifier:
    """Classifier bound to one workspace's candidate window."""

    def __init__(self, thresholds: ClassifierThresholds | None = None) -> None:
        self._thresholds = thresholds or DEFAULT_THRESHOLDS
        self._candidates = CandidateWindow(self._thresholds)

    @property
    def thresholds(self) -> ClassifierThresholds:
        return self._thresholds

    @property
    def candidates(self) -> CandidateWindow:
        return self._candidates

    def observe_selection(self, text: str, at: int) -> None:
        self._candidates.observe(text, at)

    def classify(self, change: EditDescription, at: int) -> Origin:
        origin, rule = evaluate(change, self._candidates, now=at, thresholds=self._thresholds)
        logger.debug(
            "Classified edit",
            extra={"origin": origin, "rule": rule, "chars": len(change.text)},
        )
        return origin


__all__ = [
    "CANDIDATE_RULE",
    "CandidateWindow",
    "ClassifierThresholds",
    "DEFAULT_THRESHOLDS",
    "EditClassifier",
    "RULES",
    "Rule",
    "classify",
    "evaluate",
]
