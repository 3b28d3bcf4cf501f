# Copyright (c) Syntropy Systems
"""Tests for the work queue."""

import threading
import time

from finetune_controller.workqueue import WorkQueue


class TestWorkQueue:
    """Tests for queueing, single flight and backoff."""

    def test_add_dedupes(self) -> None:
        """A key queued twice is handed out once."""
        queue = WorkQueue()
        queue.add("default/exp1")
        queue.add("default/exp1")
        queue.add("default/exp2")

        assert len(queue) == 2
        assert queue.get(timeout=0) == "default/exp1"
        assert queue.get(timeout=0) == "default/exp2"
        assert queue.get(timeout=0) is None

    def test_single_flight(self) -> None:
        """A key re-added while processing waits for done."""
        queue = WorkQueue()
        queue.add("default/exp1")
        key = queue.get(timeout=0)

        queue.add("default/exp1")
        assert queue.get(timeout=0) is None

        queue.done(key)
        assert queue.get(timeout=0) == "default/exp1"

    def test_done_without_readd(self) -> None:
        """Finishing a key that was not re-added leaves the queue empty."""
        queue = WorkQueue()
        queue.add("default/exp1")
        queue.done(queue.get(timeout=0))

        assert queue.get(timeout=0) is None

    def test_add_after(self) -> None:
        """Delayed keys become available after the delay."""
        queue = WorkQueue()
        queue.add_after("default/exp1", 0.05)

        assert queue.get(timeout=0) is None
        assert queue.get(timeout=1.0) == "default/exp1"

    def test_backoff_grows_and_caps(self) -> None:
        """Rate-limited delays double per failure up to the cap."""
        queue = WorkQueue(base_delay=1.0, max_delay=5.0)

        delays = [queue.when("k") for _ in range(5)]

        assert delays == [1.0, 2.0, 4.0, 5.0, 5.0]
        assert queue.num_requeues("k") == 5

        queue.forget("k")
        assert queue.num_requeues("k") == 0
        assert queue.when("k") == 1.0

    def test_add_rate_limited(self) -> None:
        """Rate-limited keys are delivered after their backoff."""
        queue = WorkQueue(base_delay=0.01, max_delay=0.1)
        queue.add_rate_limited("default/exp1")

        assert queue.get(timeout=1.0) == "default/exp1"
        assert queue.num_requeues("default/exp1") == 1

    def test_shut_down_wakes_waiters(self) -> None:
        """Blocked getters return None on shutdown."""
        queue = WorkQueue()
        results: list = []

        def waiter() -> None:
            results.append(queue.get())

        thread = threading.Thread(target=waiter)
        thread.start()
        time.sleep(0.05)
        queue.shut_down()
        thread.join(timeout=2.0)

        assert results == [None]
        queue.add("default/exp1")
        assert queue.get(timeout=0) is None
