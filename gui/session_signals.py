"""SessionSignals - Qt adapter for TelemetrySession.

Converts the session's callback-based events into Qt signals for the widgets.
Session events are always emitted on the presentation (GUI) thread.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from PySide6 import QtCore

from core.session import SessionEvent, SessionEventType

if TYPE_CHECKING:  # pragma: no cover
    from core.session import TelemetrySession


class SessionSignals(QtCore.QObject):
    """Qt adapter that exposes TelemetrySession events as Qt signals."""

    datasetLoaded = QtCore.Signal(object)      # Optional[TelemetryDataset]
    windowUpdated = QtCore.Signal(object)      # WindowResult
    cursorChanged = QtCore.Signal(float)
    playbackStateChanged = QtCore.Signal(bool)
    exportProgress = QtCore.Signal(int)
    exportFinished = QtCore.Signal(object)     # ExportResult
    errorOccurred = QtCore.Signal(str)

    def __init__(
        self,
        session: "TelemetrySession",
        parent: Optional[QtCore.QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._session = session
        self._listener_token: Optional[int] = session.add_listener(self._on_session_event)

    def _on_session_event(self, event: SessionEvent) -> None:
        kind = event.event_type
        if kind == SessionEventType.DATASET_LOADED:
            self.datasetLoaded.emit(event.data)
        elif kind == SessionEventType.WINDOW_RESULT:
            self.windowUpdated.emit(event.data)
        elif kind == SessionEventType.CURSOR_CHANGED:
            self.cursorChanged.emit(float(event.data))
        elif kind == SessionEventType.PLAYBACK_STATE_CHANGED:
            self.playbackStateChanged.emit(bool(event.data))
        elif kind == SessionEventType.EXPORT_PROGRESS:
            self.exportProgress.emit(int(event.data))
        elif kind == SessionEventType.EXPORT_FINISHED:
            self.exportFinished.emit(event.data)
        elif kind == SessionEventType.ERROR:
            self.errorOccurred.emit(str(event.data))

    @property
    def session(self) -> "TelemetrySession":
        return self._session

    def disconnect_session(self) -> None:
        if self._listener_token is not None:
            self._session.remove_listener(self._listener_token)
            self._listener_token = None


__all__ = ["SessionSignals"]
