from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import AbstractSet, Callable, Dict, Optional

from shared.errors import WindowCancelled
from shared.models import TelemetryDataset, WindowResult

from .presentation import PresentationQueue
from .windowing import WindowComputer

logger = logging.getLogger(__name__)

ResultCallback = Callable[[WindowResult], None]
ErrorCallback = Callable[[BaseException], None]


@dataclass
class SchedulerStats:
    requested: int = 0
    delivered: int = 0
    superseded: int = 0
    failed: int = 0

    def snapshot(self) -> Dict[str, int]:
        return {
            "requested": self.requested,
            "delivered": self.delivered,
            "superseded": self.superseded,
            "failed": self.failed,
        }


class WindowingScheduler:
    """Runs window computations off the presentation context, latest request wins.

    Every ``request_update`` bumps a generation counter; a computation captures
    its generation and aborts at the next checkpoint once a newer one exists.
    Completed results are re-checked on the presentation context before
    delivery, so a stale result is never handed to the surface even if it
    finished computing.
    """

    def __init__(
        self,
        presentation: PresentationQueue,
        on_result: ResultCallback,
        *,
        computer: Optional[WindowComputer] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._presentation = presentation
        self._on_result = on_result
        self._on_error = on_error
        self._computer = computer or WindowComputer()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="WindowingWorker")
        self._dataset: Optional[TelemetryDataset] = None
        self._lock = threading.Lock()
        self._generation = 0
        self._stats = SchedulerStats()
        self._stats_lock = threading.Lock()
        self._shutdown = False

    @property
    def computer(self) -> WindowComputer:
        return self._computer

    def set_computer(self, computer: WindowComputer) -> None:
        self._computer = computer
        self.cancel_pending()

    def set_dataset(self, dataset: Optional[TelemetryDataset]) -> None:
        """Swap the dataset snapshot used by subsequent requests."""
        self.cancel_pending()
        self._dataset = dataset

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def request_update(
        self,
        cursor: float,
        window_length: float,
        visibility_mask: AbstractSet[str],
    ) -> int:
        """Queue a window computation and return its generation. Never blocks."""
        dataset = self._dataset
        mask = frozenset(visibility_mask)
        with self._lock:
            self._generation += 1
            generation = self._generation
        if dataset is None or self._shutdown:
            return generation
        with self._stats_lock:
            self._stats.requested += 1
        self._executor.submit(self._compute, dataset, float(cursor), float(window_length), mask, generation)
        return generation

    def cancel_pending(self) -> None:
        with self._lock:
            self._generation += 1

    def snapshot(self) -> Dict[str, int]:
        with self._stats_lock:
            return self._stats.snapshot()

    def shutdown(self, wait: bool = True) -> None:
        self._shutdown = True
        self.cancel_pending()
        self._executor.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def _is_stale(self, generation: int) -> bool:
        with self._lock:
            return generation != self._generation

    def _compute(
        self,
        dataset: TelemetryDataset,
        cursor: float,
        window_length: float,
        mask: frozenset,
        generation: int,
    ) -> None:
        try:
            result = self._computer.compute(
                dataset,
                cursor,
                window_length,
                mask,
                cancelled=lambda: self._is_stale(generation),
                generation=generation,
            )
        except WindowCancelled:
            self._count_superseded()
            logger.debug("Window generation %d superseded before completion", generation)
            return
        except Exception as exc:
            with self._stats_lock:
                self._stats.failed += 1
            logger.error("Window computation failed (cursor=%.3f): %s", cursor, exc)
            self._presentation.submit(self._report_error, exc)
            return
        if self._is_stale(generation):
            self._count_superseded()
            return
        self._presentation.submit(self._deliver_if_current, result)

    # ------------------------------------------------------------------
    # Presentation side
    # ------------------------------------------------------------------

    def _deliver_if_current(self, result: WindowResult) -> None:
        if self._is_stale(result.generation):
            self._count_superseded()
            return
        with self._stats_lock:
            self._stats.delivered += 1
        try:
            self._on_result(result)
        except Exception as exc:
            logger.error("Window result callback failed: %s", exc)
            self._report_error(exc)

    def _report_error(self, exc: BaseException) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(exc)
        except Exception as cb_exc:
            logger.debug("Scheduler error callback failed: %s", cb_exc)

    def _count_superseded(self) -> None:
        with self._stats_lock:
            self._stats.superseded += 1


__all__ = ["SchedulerStats", "WindowingScheduler"]
