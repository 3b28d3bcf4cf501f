# Copyright (c) Syntropy Systems
"""Deduplicating work queue with per-key single flight and backoff."""

from __future__ import annotations

import heapq
import itertools
import time
from collections import deque
from threading import Condition
from typing import Optional


class WorkQueue:
    """Thread-safe queue of string keys.

    - A key is queued at most once at a time.
    - A key handed out by ``get`` is not handed out again until ``done``
      is called for it; re-adds in the meantime are replayed on ``done``.
    - ``add_rate_limited`` delays a key by ``base_delay * 2**failures``
      (capped at ``max_delay``); ``forget`` resets the failure count.
    """

    def __init__(self, base_delay: float = 0.005, max_delay: float = 1000.0) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay

        self._cond = Condition()
        self._queue: deque[str] = deque()
        self._dirty: set[str] = set()
        self._processing: set[str] = set()
        self._waiting: list[tuple[float, int, str]] = []
        self._seq = itertools.count()
        self._failures: dict[str, int] = {}
        self._shutting_down = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def add(self, key: str) -> None:
        """Queue a key for processing."""
        with self._cond:
            self._add_locked(key)

    def _add_locked(self, key: str) -> None:
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        self._cond.notify()

    def add_after(self, key: str, delay: float) -> None:
        """Queue a key once ``delay`` seconds have passed."""
        if delay <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutting_down:
                return
            heapq.heappush(self._waiting, (time.monotonic() + delay, next(self._seq), key))
            self._cond.notify()

    def when(self, key: str) -> float:
        """Return the backoff delay for the key's next failure and count it."""
        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        # Guard against overflow for keys that keep failing
        if failures > 62:
            return self.max_delay
        return min(self.base_delay * (2 ** failures), self.max_delay)

    def add_rate_limited(self, key: str) -> None:
        """Queue a key after its exponential backoff delay."""
        self.add_after(key, self.when(key))

    def forget(self, key: str) -> None:
        """Reset the key's failure count."""
        with self._cond:
            _ = self._failures.pop(key, None)

    def num_requeues(self, key: str) -> int:
        """Number of rate-limited requeues since the last ``forget``."""
        with self._cond:
            return self._failures.get(key, 0)

    def get(self, timeout: Optional[float] = None) -> Optional[str]:
        """Block until a key is ready and mark it as processing.

        Returns None on shutdown or when ``timeout`` elapses.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                if self._shutting_down:
                    return None
                self._promote_ready()
                if self._queue:
                    key = self._queue.popleft()
                    self._processing.add(key)
                    self._dirty.discard(key)
                    return key

                wait = None
                if self._waiting:
                    wait = max(0.0, self._waiting[0][0] - time.monotonic())
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                _ = self._cond.wait(wait)

    def done(self, key: str) -> None:
        """Mark a key as finished; replay it if it was re-added meanwhile."""
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    def shut_down(self) -> None:
        """Stop accepting keys and wake every waiter."""
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()

    def _promote_ready(self) -> None:
        now = time.monotonic()
        while self._waiting and self._waiting[0][0] <= now:
            _, _, key = heapq.heappop(self._waiting)
            self._add_locked(key)
