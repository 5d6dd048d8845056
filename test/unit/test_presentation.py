"""Unit tests for the presentation task queue."""
from __future__ import annotations

import threading

import pytest

from core.presentation import PresentationQueue


class TestPresentationQueue:
    def test_owner_thread_runs_inline(self):
        queue = PresentationQueue()
        future = queue.submit(lambda x: x * 2, 21)
        assert future.done()
        assert future.result() == 42

    def test_worker_posts_run_on_owner(self):
        queue = PresentationQueue()
        seen = []

        def worker():
            queue.submit(lambda: seen.append(threading.current_thread().name))

        t = threading.Thread(target=worker, name="Worker")
        t.start()
        t.join()
        assert seen == []
        assert queue.process_pending() == 1
        assert seen == [threading.current_thread().name]

    def test_call_blocks_until_processed(self):
        queue = PresentationQueue()
        results = []

        def worker():
            results.append(queue.call(lambda: "rendered", timeout=5.0))

        t = threading.Thread(target=worker)
        t.start()
        assert queue.run_until(lambda: bool(results), timeout=5.0)
        t.join()
        assert results == ["rendered"]

    def test_exceptions_travel_through_future(self):
        queue = PresentationQueue()

        def boom():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            queue.submit(boom).result()

    def test_tasks_run_in_post_order(self):
        queue = PresentationQueue()
        order = []

        def worker():
            for i in range(5):
                queue.submit(order.append, i)

        t = threading.Thread(target=worker)
        t.start()
        t.join()
        queue.process_pending()
        assert order == [0, 1, 2, 3, 4]

    def test_close_fails_pending_and_rejects_new(self):
        queue = PresentationQueue()
        pending = []
        t = threading.Thread(target=lambda: pending.append(queue.submit(lambda: 1)))
        t.start()
        t.join()
        queue.close()
        with pytest.raises(RuntimeError):
            pending[0].result(timeout=1.0)
        with pytest.raises(RuntimeError):
            queue.submit(lambda: 1).result()

    def test_run_until_times_out(self):
        queue = PresentationQueue()
        assert not queue.run_until(lambda: False, timeout=0.05)
