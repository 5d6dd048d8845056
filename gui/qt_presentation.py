"""Qt event-loop backed presentation queue.

Posting from a worker thread emits a queued signal, so the task runs on the
GUI thread's event loop. This keeps PySide6 dependencies out of the core
module.
"""
from __future__ import annotations

from typing import Optional

from PySide6 import QtCore

from core.presentation import PresentationQueue


class _TaskBridge(QtCore.QObject):
    """Carries posted tasks across threads via a queued connection."""
    taskPosted = QtCore.Signal(object)


class QtPresentationQueue(PresentationQueue):
    """PresentationQueue whose owner is the thread running the Qt event loop."""

    def __init__(self, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__()
        self._bridge = _TaskBridge(parent)
        self._bridge.taskPosted.connect(self._run_task, QtCore.Qt.QueuedConnection)

    def _post(self, task) -> None:
        self._bridge.taskPosted.emit(task)


__all__ = ["QtPresentationQueue"]
