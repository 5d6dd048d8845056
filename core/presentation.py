"""Single-consumer task queue owned by the presentation context.

Workers never touch presentation state directly: they post callables here and
await the returned Future. Headless callers drain the queue with
``process_pending``; the Qt GUI uses ``gui.qt_presentation.QtPresentationQueue``
which posts onto the GUI thread's event loop instead.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import Future
from typing import Any, Callable, Optional, Tuple

logger = logging.getLogger(__name__)

_Task = Tuple[Callable[..., Any], Tuple[Any, ...], "Future[Any]"]


class PresentationQueue:
    """Message-passing boundary into the thread that owns user-visible state."""

    def __init__(self, *, owner: Optional[threading.Thread] = None) -> None:
        self._tasks: "queue.Queue[_Task]" = queue.Queue()
        self._owner_ident: Optional[int] = (owner or threading.current_thread()).ident
        self._closed = threading.Event()

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    def bind_to_current_thread(self) -> None:
        self._owner_ident = threading.get_ident()

    def is_owner_thread(self) -> bool:
        return threading.get_ident() == self._owner_ident

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def submit(self, fn: Callable[..., Any], *args: Any) -> "Future[Any]":
        """Schedule ``fn(*args)`` on the presentation context.

        Calls made from the owner thread run inline so that a caller already
        on the presentation context cannot deadlock waiting on itself.
        """
        future: "Future[Any]" = Future()
        if self._closed.is_set():
            future.set_exception(RuntimeError("presentation queue is closed"))
            return future
        if self.is_owner_thread():
            self._run_task((fn, args, future))
        else:
            self._post((fn, args, future))
        return future

    def call(self, fn: Callable[..., Any], *args: Any, timeout: Optional[float] = None) -> Any:
        """Run ``fn(*args)`` on the presentation context and return its result."""
        return self.submit(fn, *args).result(timeout=timeout)

    def _post(self, task: _Task) -> None:
        self._tasks.put(task)

    # ------------------------------------------------------------------
    # Draining (owner thread)
    # ------------------------------------------------------------------

    def process_pending(self, timeout: float = 0.0, max_items: Optional[int] = None) -> int:
        """Run queued tasks on the calling (owner) thread.

        Waits up to ``timeout`` seconds for the first task, then drains whatever
        is queued without blocking. Returns the number of tasks run.
        """
        processed = 0
        block = timeout > 0
        while max_items is None or processed < max_items:
            try:
                if block:
                    task = self._tasks.get(timeout=timeout)
                    block = False
                else:
                    task = self._tasks.get_nowait()
            except queue.Empty:
                break
            try:
                self._run_task(task)
            finally:
                self._tasks.task_done()
            processed += 1
        return processed

    def run_until(self, predicate: Callable[[], bool], timeout: float = 5.0, poll: float = 0.01) -> bool:
        """Pump the queue until ``predicate()`` holds or ``timeout`` elapses."""
        deadline = time.monotonic() + timeout
        while not predicate():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            self.process_pending(timeout=min(poll, remaining))
        return True

    def close(self) -> None:
        """Reject further work and fail anything still queued."""
        self._closed.set()
        while True:
            try:
                _, _, future = self._tasks.get_nowait()
            except queue.Empty:
                break
            if future.set_running_or_notify_cancel():
                future.set_exception(RuntimeError("presentation queue is closed"))
            self._tasks.task_done()

    @staticmethod
    def _run_task(task: _Task) -> None:
        fn, args, future = task
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = fn(*args)
        except Exception as exc:
            future.set_exception(exc)
        else:
            future.set_result(result)


__all__ = ["PresentationQueue"]
