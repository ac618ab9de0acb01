"""
Cooperative game loop plumbing.

All session and sync bookkeeping happens on one loop thread. Other threads
(serial reader, console input, network worker) never touch that state
directly; they `post()` callables to the `Dispatcher`, which the loop
`drain()`s once per frame before ticking the session.

Data Flow:
    ReaderBridge thread --post--> Dispatcher --drain--> CardRegistry / ResultSyncService
    ThreadRunner worker --post--> Dispatcher --drain--> sync completion bookkeeping
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable

    type Job = Callable[[], Any]
    type Done = Callable[[Any], None]


_log = logging.getLogger("Dispatcher")


class Dispatcher:
    """Thread-safe FIFO of callables executed on the loop thread."""

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[tuple[Callable[..., Any], tuple[Any, ...]]] = queue.SimpleQueue()

    def post(self, fn: Callable[..., Any], *args: Any) -> None:  # noqa: ANN401
        """Queue `fn(*args)` for the loop thread. Safe from any thread."""
        self._queue.put((fn, args))

    def drain(self) -> int:
        """Run everything queued so far, in order. Returns the number of callables run."""
        ran = 0
        while True:
            try:
                fn, args = self._queue.get_nowait()
            except queue.Empty:
                return ran

            ran += 1
            try:
                fn(*args)
            except Exception:
                _log.exception("Posted callable %r failed", fn)

    def pending(self) -> bool:
        return not self._queue.empty()


class Runner(Protocol):
    def run(self, job: Job, done: Done) -> None: ...


class InlineRunner:
    """Runs jobs synchronously on the caller's thread (tests, scripted play)."""

    def run(self, job: Job, done: Done) -> None:
        try:
            res = job()
        except Exception as e:  # noqa: BLE001
            res = e
        done(res)


class ThreadRunner:
    """Runs jobs one at a time on a background worker, reporting back through the dispatcher.

    Exceptions raised by a job are passed to `done` as the result, so completion
    handling always happens on the loop thread.
    """

    _STOP = object()

    def __init__(self, dispatcher: Dispatcher, *, name: str = "sync-worker") -> None:
        self._dispatcher = dispatcher
        self._jobs: queue.SimpleQueue[Any] = queue.SimpleQueue()
        self._thread = threading.Thread(target=self._work, name=name, daemon=True)
        self._thread.start()

    def run(self, job: Job, done: Done) -> None:
        self._jobs.put((job, done))

    def shutdown(self, timeout: float | None = None) -> None:
        """Finish queued jobs, then stop the worker."""
        self._jobs.put(ThreadRunner._STOP)
        self._thread.join(timeout)

    def _work(self) -> None:
        while True:
            item = self._jobs.get()
            if item is ThreadRunner._STOP:
                return

            job, done = item
            try:
                res = job()
            except Exception as e:  # noqa: BLE001
                res = e
            self._dispatcher.post(done, res)
