"""Tests for CancelScope."""

from __future__ import annotations

import time

import pytest

from hieracap.core.cancellation import POLL_INTERVAL_SECONDS, CancelScope, ensure_scope
from hieracap.core.exceptions import CanceledError, DeadlineExceededError


class TestCancelScope:
    """Tests for cancel events and deadlines."""

    def test_fresh_scope_passes_check(self):
        """A new scope without deadline never raises."""
        scope = CancelScope()

        scope.check("op")
        assert scope.remaining() is None
        assert scope.next_wait() == POLL_INTERVAL_SECONDS

    def test_cancel(self):
        """cancel() makes check() raise CanceledError naming the operation."""
        scope = CancelScope()
        scope.cancel()

        assert scope.cancelled
        with pytest.raises(CanceledError) as exc_info:
            scope.check("delegate")
        assert exc_info.value.operation == "delegate"
        assert not isinstance(exc_info.value, DeadlineExceededError)

    def test_deadline(self):
        """A passed deadline raises DeadlineExceededError."""
        scope = CancelScope(deadline=time.monotonic() - 1)

        assert scope.expired
        assert scope.remaining() == 0.0
        with pytest.raises(DeadlineExceededError):
            scope.check()

    def test_with_timeout(self):
        """with_timeout() sets a deadline in the future."""
        scope = CancelScope.with_timeout(10)

        assert 0 < scope.remaining() <= 10
        assert scope.next_wait() == POLL_INTERVAL_SECONDS

    def test_with_timeout_none(self):
        """with_timeout(None) has no deadline."""
        assert CancelScope.with_timeout(None).deadline is None

    def test_next_wait_bounded_by_remaining(self):
        """Waiters never sleep past the deadline."""
        scope = CancelScope.with_timeout(0.01)

        assert scope.next_wait() <= 0.01


class TestEnsureScope:
    """Tests for ensure_scope()."""

    def test_passthrough(self):
        scope = CancelScope()
        assert ensure_scope(scope, timeout=1) is scope

    def test_default_timeout(self):
        scope = ensure_scope(None, timeout=5)
        assert scope.deadline is not None

    def test_no_timeout(self):
        assert ensure_scope(None).deadline is None
