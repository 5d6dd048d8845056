from __future__ import annotations

import logging
from dataclasses import dataclass, replace
import threading
from typing import Callable, Dict, Optional

from PySide6.QtCore import QSettings

logger = logging.getLogger(__name__)

WINDOW_MODES = ("forward", "trailing")


@dataclass(frozen=True)
class AppSettings:
    playback_tick_hz: float = 120.0
    default_window_sec: float = 5.0
    window_mode: str = "forward"
    export_fps: int = 30
    clear_on_failed_load: bool = False
    default_visible_channels: int = 2
    last_open_dir: Optional[str] = None
    last_export_path: Optional[str] = None


def _as_bool(value: object) -> bool:
    return bool(int(value)) if isinstance(value, str) else bool(value)


class AppSettingsStore:
    """Thread-safe persistent settings store for application-wide preferences."""

    def __init__(
        self,
        *,
        organization: str = "TelemetryTrace",
        application: str = "TelemetryTrace",
        qsettings: Optional[QSettings] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._subscribers: Dict[int, Callable[[AppSettings], None]] = {}
        self._next_token = 0
        self._qsettings = qsettings if qsettings is not None else QSettings(organization, application)
        self._settings = self._load_settings(self._qsettings)

    def _load_settings(self, qsettings: QSettings) -> AppSettings:
        try:
            tick_hz = float(qsettings.value("playback_tick_hz", AppSettings.playback_tick_hz))
        except (TypeError, ValueError):
            tick_hz = AppSettings.playback_tick_hz
        if tick_hz <= 0:
            tick_hz = AppSettings.playback_tick_hz
        try:
            window_sec = float(qsettings.value("default_window_sec", AppSettings.default_window_sec))
        except (TypeError, ValueError):
            window_sec = AppSettings.default_window_sec
        window_sec = max(0.0, window_sec)
        mode = str(qsettings.value("window_mode", AppSettings.window_mode))
        if mode not in WINDOW_MODES:
            logger.warning("Ignoring unknown window_mode %r in settings", mode)
            mode = AppSettings.window_mode
        try:
            fps = int(qsettings.value("export_fps", AppSettings.export_fps))
        except (TypeError, ValueError):
            fps = AppSettings.export_fps
        if fps <= 0:
            fps = AppSettings.export_fps

        clear_on_fail = _as_bool(qsettings.value("clear_on_failed_load", AppSettings.clear_on_failed_load))

        try:
            visible = int(qsettings.value("default_visible_channels", AppSettings.default_visible_channels))
        except (TypeError, ValueError):
            visible = AppSettings.default_visible_channels

        open_dir = qsettings.value("last_open_dir", AppSettings.last_open_dir)
        if open_dir is not None:
            open_dir = str(open_dir)
        export_path = qsettings.value("last_export_path", AppSettings.last_export_path)
        if export_path is not None:
            export_path = str(export_path)

        return AppSettings(
            playback_tick_hz=tick_hz,
            default_window_sec=window_sec,
            window_mode=mode,
            export_fps=fps,
            clear_on_failed_load=clear_on_fail,
            default_visible_channels=max(0, visible),
            last_open_dir=open_dir,
            last_export_path=export_path,
        )

    def get(self) -> AppSettings:
        with self._lock:
            return self._settings

    def update(self, **kwargs) -> AppSettings:
        mode = kwargs.get("window_mode")
        if mode is not None and mode not in WINDOW_MODES:
            raise ValueError(f"window_mode must be one of {WINDOW_MODES}, got {mode!r}")
        with self._lock:
            new_settings = replace(self._settings, **kwargs)
            self._settings = new_settings
            callbacks = list(self._subscribers.values())
            self._persist(new_settings)
        for callback in callbacks:
            try:
                callback(new_settings)
            except Exception as exc:
                logger.debug("App settings subscriber callback failed: %s", exc)
                continue
        return new_settings

    def subscribe(self, callback: Callable[[AppSettings], None], *, replay: bool = True) -> Callable[[], None]:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = callback
            snapshot = self._settings
        if replay:
            callback(snapshot)

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(token, None)

        return unsubscribe

    def _persist(self, settings: AppSettings) -> None:
        self._qsettings.setValue("playback_tick_hz", settings.playback_tick_hz)
        self._qsettings.setValue("default_window_sec", settings.default_window_sec)
        self._qsettings.setValue("window_mode", settings.window_mode)
        self._qsettings.setValue("export_fps", int(settings.export_fps))
        self._qsettings.setValue("clear_on_failed_load", int(bool(settings.clear_on_failed_load)))
        self._qsettings.setValue("default_visible_channels", int(settings.default_visible_channels))
        for key in ("last_open_dir", "last_export_path"):
            value = getattr(settings, key)
            if value is None:
                self._qsettings.remove(key)
            else:
                self._qsettings.setValue(key, value)


__all__ = ["AppSettings", "AppSettingsStore", "WINDOW_MODES"]
