"""Workspace-level wiring of classifier, aggregate and persistence."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable

from .classifier import EditClassifier, EditDescription, Origin
from .config import WhodareSettings, get_settings
from .storage import (
    AggregationStore,
    EditDelta,
    PersistenceCoordinator,
    StoreNotInitializedError,
    TrackerData,
)
from .storage.aggregate import FileBreakdown, StatsSummary, now_ms
from .storage.persistence import LoopProtocol

logger = logging.getLogger(__name__)


class WorkspaceTracker:
    """Attribute edits in one workspace and keep ``stats.json`` current.

    The host feeds selection observations and change batches; all calls are
    expected from a single thread of control.
    """

    def __init__(
        self,
        workspace: Path,
        *,
        workspace_id: str | None = None,
        settings: WhodareSettings | None = None,
        loop: LoopProtocol | None = None,
        clock: Callable[[], int] | None = None,
        day_of: Callable[[int], str] | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._workspace = Path(workspace)
        self._workspace_id = workspace_id or str(self._workspace.resolve())
        self._clock = clock or now_ms
        self._classifier = EditClassifier(settings.thresholds)
        self._store = AggregationStore(clock=self._clock, day_of=day_of)
        self._persistence = PersistenceCoordinator(
            self._workspace,
            self._store.snapshot,
            password=settings.password,
            encrypt=settings.encrypt,
            debounce_ms=settings.save_debounce_ms,
            storage_dir=settings.storage_dir,
            stats_file=settings.stats_file,
            loop=loop,
        )

    @property
    def workspace_id(self) -> str:
        return self._workspace_id

    @property
    def classifier(self) -> EditClassifier:
        return self._classifier

    @property
    def store(self) -> AggregationStore:
        return self._store

    @property
    def persistence(self) -> PersistenceCoordinator:
        return self._persistence

    @property
    def ready(self) -> bool:
        return self._store.initialized

    def activate(self) -> TrackerData:
        """Load existing statistics or start empty ones. Decode errors propagate."""

        loaded = self._persistence.load()
        if loaded is not None:
            self._store.initialize(loaded)
            logger.info("Loaded existing data", extra={"workspace_id": loaded.workspace_id})
        else:
            self._store.create_empty(self._workspace_id)
            logger.info("Created new tracker data", extra={"workspace_id": self._workspace_id})
        return self._store.snapshot()

    def observe_selection(self, text: str, at: int | None = None) -> None:
        self._classifier.observe_selection(text, self._clock() if at is None else at)

    def record_changes(
        self,
        file_id: str,
        changes: Iterable[EditDescription],
        *,
        content: str | None = None,
        at: int | None = None,
    ) -> list[Origin]:
        """Classify and fold one batch of changes to ``file_id``.

        ``content`` is the document text after the batch and refreshes the
        file fingerprint. Returns the origin assigned to each non-empty change.
        """

        if not self._store.initialized:
            raise StoreNotInitializedError("Tracker data not initialized")

        timestamp = self._clock() if at is None else at
        origins: list[Origin] = []
        for change in changes:
            if change.is_empty:
                continue
            origin = self._classifier.classify(change, timestamp)
            self._store.apply_event(
                file_id,
                EditDelta(
                    origin=origin,
                    timestamp=timestamp,
                    lines_added=change.lines_added,
                    chars_added=change.chars_added,
                    lines_deleted=change.lines_deleted,
                    chars_deleted=change.chars_deleted,
                ),
            )
            origins.append(origin)

        if not origins:
            return origins

        if content is not None:
            self._store.update_fingerprint(file_id, content)
        self._store.touch(timestamp)
        self._persistence.schedule()
        return origins

    def snapshot(self) -> TrackerData:
        return self._store.snapshot()

    def summary(self) -> StatsSummary:
        return self._store.summary()

    def file_breakdown(self) -> list[FileBreakdown]:
        return self._store.file_breakdown()

    def flush(self) -> Path:
        return self._persistence.flush()

    def deactivate(self) -> Path | None:
        """Forced save for shutdown. No-op when nothing was ever loaded."""

        if not self._store.initialized:
            self._persistence.cancel()
            return None
        return self.flush()


__all__ = ["WorkspaceTracker"]
