# Copyright (c) Syntropy Systems
"""Cancellation and deadline token threaded through store calls."""

from __future__ import annotations

import time
from threading import Event
from typing import Optional

from finetune_controller.errors import ContextCancelledError


class Context:
    """A cancellable context with an optional deadline.

    Child contexts observe their parent's cancellation and never outlive
    the parent's deadline.
    """

    def __init__(
        self,
        deadline: Optional[float] = None,
        parent: Optional[Context] = None,
    ) -> None:
        self._cancelled = Event()
        self._parent = parent
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline

    def with_timeout(self, seconds: float) -> Context:
        """Return a child context that expires after ``seconds``."""
        return Context(deadline=time.monotonic() + seconds, parent=self)

    def cancel(self) -> None:
        """Cancel this context and, transitively, its children."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        """Return True if cancelled, directly or through a parent."""
        if self._cancelled.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    @property
    def expired(self) -> bool:
        """Return True if the deadline has passed."""
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, or None if there is none."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        """Raise ContextCancelledError if cancelled or expired."""
        if self.cancelled:
            msg = "context cancelled"
            raise ContextCancelledError(msg)
        if self.expired:
            msg = "context deadline exceeded"
            raise ContextCancelledError(msg)


def background() -> Context:
    """Return a fresh context that is never cancelled on its own."""
    return Context()
