from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from enum import Enum
from typing import Callable, Dict, Optional

from .presentation import PresentationQueue

logger = logging.getLogger(__name__)

CursorListener = Callable[[float], None]
StateListener = Callable[[bool], None]

DEFAULT_TICK_HZ = 120.0


class PlaybackState(Enum):
    STOPPED = "stopped"
    PLAYING = "playing"


class PlaybackClock:
    """Cooperative playback clock owned by the presentation context.

    ``tick`` advances the cursor by the wall-clock time elapsed since the
    previous tick while playing, and stops exactly at the dataset duration.
    Pausing is STOPPED with the cursor retained; there is no separate state.
    """

    def __init__(
        self,
        *,
        tick_hz: float = DEFAULT_TICK_HZ,
        time_source: Callable[[], float] = time.perf_counter,
    ) -> None:
        if tick_hz <= 0:
            raise ValueError("tick_hz must be positive")
        self._tick_interval = 1.0 / float(tick_hz)
        self._time_source = time_source
        self._duration: Optional[float] = None
        self._cursor = 0.0
        self._state = PlaybackState.STOPPED
        self._last_tick: Optional[float] = None
        self._cursor_listeners: Dict[int, CursorListener] = {}
        self._state_listeners: Dict[int, StateListener] = {}
        self._next_token = 0

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def cursor(self) -> float:
        return self._cursor

    @property
    def duration(self) -> Optional[float]:
        return self._duration

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def is_playing(self) -> bool:
        return self._state is PlaybackState.PLAYING

    @property
    def tick_interval(self) -> float:
        return self._tick_interval

    def set_tick_hz(self, hz: float) -> None:
        self._tick_interval = 1.0 / max(float(hz), 1.0)

    def can_play(self) -> bool:
        return self._duration is not None and self._duration > 0 and not self.is_playing

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_cursor_changed(self, callback: CursorListener) -> Callable[[], None]:
        return self._subscribe(self._cursor_listeners, callback)

    def on_state_changed(self, callback: StateListener) -> Callable[[], None]:
        return self._subscribe(self._state_listeners, callback)

    def _subscribe(self, registry: Dict[int, Callable], callback: Callable) -> Callable[[], None]:
        token = self._next_token
        self._next_token += 1
        registry[token] = callback

        def unsubscribe() -> None:
            registry.pop(token, None)

        return unsubscribe

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def set_duration(self, duration: Optional[float]) -> None:
        """Bind the clock to a dataset's duration (``None`` when unloaded)."""
        self._duration = None if duration is None else max(0.0, float(duration))
        self.reset()

    def play(self) -> bool:
        """Start ticking. Returns False when there is nothing to play."""
        if not self.can_play():
            return False
        if self._cursor >= self._duration:
            self._set_cursor(0.0)
        self._last_tick = self._time_source()
        self._set_state(PlaybackState.PLAYING)
        return True

    def pause(self) -> bool:
        if not self.is_playing:
            return False
        self._last_tick = None
        self._set_state(PlaybackState.STOPPED)
        return True

    def toggle(self) -> bool:
        return self.pause() if self.is_playing else self.play()

    def reset(self) -> None:
        self.pause()
        self._set_cursor(0.0, force=True)

    def seek(self, position: float) -> float:
        limit = self._duration or 0.0
        self._set_cursor(min(max(float(position), 0.0), limit))
        if self.is_playing:
            self._last_tick = self._time_source()
        return self._cursor

    def tick(self, now: Optional[float] = None) -> float:
        """Advance the cursor by the elapsed wall-clock time since the last tick."""
        if not self.is_playing or self._duration is None:
            return self._cursor
        now = self._time_source() if now is None else float(now)
        last = self._last_tick if self._last_tick is not None else now
        self._last_tick = now
        target = self._cursor + max(0.0, now - last)
        if target >= self._duration:
            self._set_cursor(self._duration)
            self.pause()
        else:
            self._set_cursor(target)
        return self._cursor

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _set_cursor(self, value: float, *, force: bool = False) -> None:
        if value == self._cursor and not force:
            return
        self._cursor = value
        for callback in list(self._cursor_listeners.values()):
            try:
                callback(value)
            except Exception as exc:
                logger.warning("Cursor listener failed: %s", exc)

    def _set_state(self, state: PlaybackState) -> None:
        if state is self._state:
            return
        self._state = state
        playing = state is PlaybackState.PLAYING
        for callback in list(self._state_listeners.values()):
            try:
                callback(playing)
            except Exception as exc:
                logger.warning("Playback state listener failed: %s", exc)


class TickDriver:
    """Headless fixed-rate timer that posts ``clock.tick`` onto the presentation queue.

    At most one tick is outstanding; a slow presentation context skips ticks
    rather than accumulating them. Intended for embedding the session without
    a Qt event loop, where PresentationQueue.run_until drains the ticks; the
    Qt GUI drives the clock from a QTimer instead.
    """

    def __init__(self, clock: PlaybackClock, presentation: PresentationQueue) -> None:
        self._clock = clock
        self._presentation = presentation
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._pending: Optional[Future] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._tick_loop, name="PlaybackTick", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _tick_loop(self) -> None:
        while not self._stop_event.is_set():
            pending = self._pending
            if pending is None or pending.done():
                try:
                    self._pending = self._presentation.submit(self._clock.tick)
                except Exception as exc:
                    logger.error("Playback tick error: %s", exc)
            self._stop_event.wait(self._clock.tick_interval)


__all__ = ["DEFAULT_TICK_HZ", "PlaybackClock", "PlaybackState", "TickDriver"]
