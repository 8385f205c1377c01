"""Storage abstractions for whoDare."""

from .aggregate import AggregationStore, StatsSummary, StoreNotInitializedError, create_empty_tracker_data
from .envelope import (
    DecodeAuthError,
    EnvelopeError,
    FormatUnsupportedError,
    decode,
    encode,
    encode_plaintext,
    generate_default_key,
)
from .models import DailyStats, EditDelta, FileStats, HistoryEvent, SessionStats, TrackerData
from .persistence import DebounceTimer, PersistenceCoordinator, StorageUnavailableError

__all__ = [
    "AggregationStore",
    "DailyStats",
    "DebounceTimer",
    "DecodeAuthError",
    "EditDelta",
    "EnvelopeError",
    "FileStats",
    "FormatUnsupportedError",
    "HistoryEvent",
    "PersistenceCoordinator",
    "SessionStats",
    "StatsSummary",
    "StorageUnavailableError",
    "StoreNotInitializedError",
    "TrackerData",
    "create_empty_tracker_data",
    "decode",
    "encode",
    "encode_plaintext",
    "generate_default_key",
]
