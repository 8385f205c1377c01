from __future__ import annotations

from concurrent.futures import Future
from typing import Any, Callable

import pytest


class FakeHandle:
    def __init__(self, when: float, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeLoop:
    """Manually advanced clock implementing the loop calls the coordinator makes.

    Executor work runs inline unless ``defer_executor`` is set, in which case
    it waits for :meth:`run_deferred`.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.handles: list[FakeHandle] = []
        self.fired_at: list[float] = []
        self.executor_calls = 0
        self.defer_executor = False
        self.deferred: list[tuple[Future, Callable[..., Any], tuple[Any, ...]]] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> FakeHandle:
        handle = FakeHandle(self.now + delay, callback, args)
        self.handles.append(handle)
        return handle

    def run_in_executor(self, executor: Any, func: Callable[..., Any], *args: Any) -> Future:
        self.executor_calls += 1
        future: Future = Future()
        if self.defer_executor:
            self.deferred.append((future, func, args))
        else:
            self._run(future, func, args)
        return future

    def run_deferred(self) -> None:
        pending, self.deferred = self.deferred, []
        for future, func, args in pending:
            self._run(future, func, args)

    @staticmethod
    def _run(future: Future, func: Callable[..., Any], args: tuple[Any, ...]) -> None:
        try:
            future.set_result(func(*args))
        except Exception as exc:
            future.set_exception(exc)

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [h for h in self.handles if not h.cancelled and h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.handles.remove(handle)
            self.now = handle.when
            self.fired_at.append(handle.when)
            handle.callback(*handle.args)
        self.now = target


@pytest.fixture
def fake_loop() -> FakeLoop:
    return FakeLoop()
