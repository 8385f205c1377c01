"""Debounced persistence of tracker snapshots to ``<workspace>/.howdare/stats.json``."""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Protocol

from .envelope import EnvelopeError, decode, encode, encode_plaintext
from .models import TrackerData

logger = logging.getLogger(__name__)

STORAGE_DIR = ".howdare"
STORAGE_FILE = "stats.json"
SAVE_DEBOUNCE_MS = 2000


class StorageUnavailableError(RuntimeError):
    """Raised when the stats file cannot be read or written."""


class TimerHandleProtocol(Protocol):
    def cancel(self) -> None:
        ...


class LoopProtocol(Protocol):
    """The slice of ``asyncio.AbstractEventLoop`` the coordinator relies on."""

    def time(self) -> float:
        ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandleProtocol:
        ...

    def run_in_executor(self, executor: Any, func: Callable[..., Any], *args: Any) -> Any:
        ...


class TimerState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"


class DebounceTimer:
    """Trailing-edge timer: every :meth:`schedule` pushes the deadline back.

    ``cancel`` is safe to call in any state.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], None],
        *,
        loop: LoopProtocol | None = None,
    ) -> None:
        self._delay = delay
        self._callback = callback
        self._loop = loop
        self._handle: TimerHandleProtocol | None = None
        self._deadline: float | None = None

    @property
    def state(self) -> TimerState:
        return TimerState.PENDING if self._handle is not None else TimerState.IDLE

    @property
    def deadline(self) -> float | None:
        return self._deadline

    @property
    def loop(self) -> LoopProtocol:
        return self._resolve_loop()

    def _resolve_loop(self) -> LoopProtocol:
        if self._loop is None:
            # Requires a running loop; hosts without one must inject a loop.
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self) -> None:
        loop = self._resolve_loop()
        self.cancel()
        self._deadline = loop.time() + self._delay
        self._handle = loop.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._deadline = None

    def _fire(self) -> None:
        self._handle = None
        self._deadline = None
        self._callback()


def atomic_write_bytes(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f"{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(content)
        os.replace(tmp, path)
    except OSError:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


class PersistenceCoordinator:
    """Schedule and perform writes of the current snapshot. Holds no statistics itself."""

    def __init__(
        self,
        workspace: Path,
        snapshot: Callable[[], TrackerData],
        *,
        password: str | None = None,
        encrypt: bool = True,
        debounce_ms: int = SAVE_DEBOUNCE_MS,
        storage_dir: str = STORAGE_DIR,
        stats_file: str = STORAGE_FILE,
        loop: LoopProtocol | None = None,
    ) -> None:
        self._path = Path(workspace) / storage_dir / stats_file
        self._snapshot = snapshot
        self._password = password
        self._encrypt = encrypt
        self._timer = DebounceTimer(debounce_ms / 1000, self._on_timer, loop=loop)
        self._writes = 0
        self._lock = threading.Lock()
        self._generation = 0
        self._written_generation = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def pending(self) -> bool:
        return self._timer.state is TimerState.PENDING

    @property
    def timer(self) -> DebounceTimer:
        return self._timer

    @property
    def writes(self) -> int:
        return self._writes

    def load(self) -> TrackerData | None:
        """Return stored tracker data, or ``None`` when no stats file exists yet.

        Decode failures propagate: a file that cannot be authenticated is never
        replaced by fresh empty data behind the caller's back.
        """

        if not self._path.exists():
            logger.info("No existing stats file", extra={"path": str(self._path)})
            return None
        try:
            raw = self._path.read_bytes()
        except OSError as exc:
            raise StorageUnavailableError(f"Failed to read {self._path}: {exc}") from exc

        data = decode(raw, self._password)
        logger.info(
            "Loaded tracker data",
            extra={"path": str(self._path), "files": len(data.files)},
        )
        return data

    def serialize(self, data: TrackerData) -> bytes:
        if self._encrypt:
            return encode(data, self._password)
        return encode_plaintext(data)

    def _next_generation(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def _commit(self, data: TrackerData, generation: int) -> bool:
        """Write ``data`` unless a newer snapshot already reached the disk."""

        payload = self.serialize(data)
        with self._lock:
            if generation < self._written_generation:
                logger.debug(
                    "Skipped stale save",
                    extra={"path": str(self._path), "generation": generation},
                )
                return False
            try:
                atomic_write_bytes(self._path, payload)
            except OSError as exc:
                raise StorageUnavailableError(f"Failed to write {self._path}: {exc}") from exc
            self._written_generation = generation
            self._writes += 1
        logger.info("Saved tracker data", extra={"path": str(self._path), "bytes": len(payload)})
        return True

    def write(self, data: TrackerData) -> Path:
        self._commit(data, self._next_generation())
        return self._path

    def schedule(self) -> None:
        """(Re)start the quiet-period timer after a mutation."""

        self._timer.schedule()

    def cancel(self) -> None:
        self._timer.cancel()

    def flush(self) -> Path:
        """Write the current snapshot now, bypassing any pending timer.

        A debounced write still running in the executor holds an older
        snapshot and is discarded once this one lands.
        """

        self._timer.cancel()
        return self.write(self._snapshot())

    def _on_timer(self) -> None:
        snapshot = self._snapshot()
        generation = self._next_generation()
        loop = self._timer.loop
        future = loop.run_in_executor(None, self._write_in_background, snapshot, generation)
        future.add_done_callback(self._on_write_done)

    def _write_in_background(self, data: TrackerData, generation: int) -> None:
        try:
            self._commit(data, generation)
        except (StorageUnavailableError, EnvelopeError) as exc:
            # Left for the next mutation to reschedule.
            logger.error("Debounced save failed", extra={"path": str(self._path), "error": str(exc)})

    def _on_write_done(self, future: Any) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(
                "Debounced save crashed",
                exc_info=exc,
                extra={"path": str(self._path), "error": repr(exc)},
            )


__all__ = [
    "DebounceTimer",
    "LoopProtocol",
    "PersistenceCoordinator",
    "SAVE_DEBOUNCE_MS",
    "STORAGE_DIR",
    "STORAGE_FILE",
    "StorageUnavailableError",
    "TimerState",
    "atomic_write_bytes",
]
