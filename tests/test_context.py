# Copyright (c) Syntropy Systems
"""Tests for reconcile contexts."""

import time

import pytest

from finetune_controller.context import Context, background
from finetune_controller.errors import ContextCancelledError


class TestContext:
    """Tests for cancellation and deadlines."""

    def test_background_never_cancelled(self) -> None:
        """A background context passes checks."""
        ctx = background()
        ctx.check()
        assert ctx.remaining() is None

    def test_cancel(self) -> None:
        """A cancelled context fails checks."""
        ctx = Context()
        ctx.cancel()

        assert ctx.cancelled
        with pytest.raises(ContextCancelledError):
            ctx.check()

    def test_parent_cancel_reaches_child(self) -> None:
        """Cancelling a parent cancels its children."""
        parent = Context()
        child = parent.with_timeout(60)

        parent.cancel()

        assert child.cancelled
        with pytest.raises(ContextCancelledError):
            child.check()

    def test_child_cancel_does_not_reach_parent(self) -> None:
        """Cancelling a child leaves the parent alone."""
        parent = Context()
        child = parent.with_timeout(60)

        child.cancel()

        assert not parent.cancelled

    def test_deadline(self) -> None:
        """An expired deadline fails checks."""
        ctx = background().with_timeout(0.01)
        time.sleep(0.02)

        assert ctx.expired
        with pytest.raises(ContextCancelledError):
            ctx.check()

    def test_child_never_outlives_parent(self) -> None:
        """A child's deadline is capped by the parent's."""
        parent = background().with_timeout(1)
        child = parent.with_timeout(100)

        assert child.deadline == parent.deadline
