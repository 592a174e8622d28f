"""Background execution with ordered stage events.

A StageTask runs one pipeline operation on a worker thread and exposes
its progress labels as an ordered stream of ProgressEvent values, so any
host (CLI, IDE panel, web view) can render progress the same way:

    task = StageTask.start(pipeline.scan, Path("."))
    for event in task.events():
        print(event.label)
    findings = task.result()

Cancellation only succeeds before the operation starts. A running
operation is bounded by its subprocess timeouts instead.
"""

from __future__ import annotations

import itertools
import queue
import threading
from collections.abc import Callable, Iterator
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Generic, TypeVar

from leaklock.models import ProgressEvent

T = TypeVar("T")

_DONE = object()


class StageTask(Generic[T]):
    """Handle for an operation that accepts an ``on_progress`` callback."""

    def __init__(self, future: Future[T], events: queue.Queue) -> None:
        self._future = future
        self._events = events

    @classmethod
    def start(
        cls,
        fn: Callable[..., T],
        *args: Any,
        pool: Executor | None = None,
        **kwargs: Any,
    ) -> StageTask[T]:
        """Submit ``fn(*args, on_progress=..., **kwargs)`` for background execution.

        Args:
            fn: Operation to run; must accept an ``on_progress`` keyword.
            pool: Executor to submit to. A private single-worker pool is
                used when omitted.
        """
        events: queue.Queue = queue.Queue()
        counter = itertools.count(1)
        lock = threading.Lock()

        def on_progress(label: str) -> None:
            with lock:
                events.put(ProgressEvent(sequence=next(counter), label=label))

        own_pool = pool is None
        executor = pool or ThreadPoolExecutor(max_workers=1, thread_name_prefix="leaklock")
        future = executor.submit(fn, *args, on_progress=on_progress, **kwargs)
        future.add_done_callback(lambda _f: events.put(_DONE))
        if own_pool:
            executor.shutdown(wait=False)
        return cls(future, events)

    def events(self, timeout: float | None = None) -> Iterator[ProgressEvent]:
        """Yield progress events in emission order until the operation ends.

        Raises:
            queue.Empty: If ``timeout`` elapses with no new event.
        """
        while True:
            item = self._events.get(timeout=timeout)
            if item is _DONE:
                return
            yield item

    def result(self, timeout: float | None = None) -> T:
        """Return the operation's result, re-raising its exception."""
        return self._future.result(timeout=timeout)

    def exception(self, timeout: float | None = None) -> BaseException | None:
        return self._future.exception(timeout=timeout)

    def done(self) -> bool:
        return self._future.done()

    def cancel(self) -> bool:
        """Cancel the operation if it has not started yet."""
        return self._future.cancel()
