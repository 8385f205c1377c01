"""Edit classification heuristics and exports."""

from .models import CompletionCandidate, EditDescription, Origin
from .rules import (
    CandidateWindow,
    ClassifierThresholds,
    DEFAULT_THRESHOLDS,
    EditClassifier,
    classify,
    evaluate,
)

__all__ = [
    "CandidateWindow",
    "ClassifierThresholds",
    "CompletionCandidate",
    "DEFAULT_THRESHOLDS",
    "EditClassifier",
    "EditDescription",
    "Origin",
    "classify",
    "evaluate",
]
