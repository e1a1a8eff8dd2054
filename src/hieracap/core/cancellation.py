# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Cancellation signals and deadlines for blocking engine operations.

Every public operation that may block (``delegate``, ``decide``,
``revoke``) accepts an optional ``CancelScope``. A scope carries a cancel
event that any thread may set, plus an optional deadline on the monotonic
clock.
"""

from __future__ import annotations

import threading
import time

from .exceptions import CanceledError, DeadlineExceededError

# Longest single sleep while waiting on a lock or a single-flight leader;
# bounds how late a cancel() is noticed.
POLL_INTERVAL_SECONDS = 0.05


class CancelScope:
    """Cancel event plus optional deadline for one call.

    Example:
        scope = CancelScope.with_timeout(0.5)
        engine.decide(cap, identity, scope=scope)

        # from another thread
        scope.cancel()
    """

    def __init__(self, deadline: float | None = None) -> None:
        """
        Args:
            deadline: Absolute ``time.monotonic()`` value after which the
                      scope counts as expired, or None for no deadline.
        """
        self._event = threading.Event()
        self.deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: float | None) -> CancelScope:
        """Create a scope whose deadline is ``seconds`` from now."""
        if seconds is None:
            return cls()
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        """Signal cancellation to every operation using this scope."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline (never negative), or None."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self, operation: str | None = None) -> None:
        """Raise if the scope has been canceled or its deadline passed.

        Raises:
            CanceledError: If ``cancel()`` was called.
            DeadlineExceededError: If the deadline has passed.
        """
        if self.cancelled:
            raise CanceledError(f"{operation or 'Operation'} canceled", operation=operation)
        if self.expired:
            raise DeadlineExceededError(
                f"{operation or 'Operation'} exceeded its deadline", operation=operation
            )

    def next_wait(self) -> float:
        """How long a waiter may sleep before re-checking this scope."""
        remaining = self.remaining()
        if remaining is None:
            return POLL_INTERVAL_SECONDS
        return min(POLL_INTERVAL_SECONDS, remaining)

    def __repr__(self) -> str:
        return f"CancelScope(cancelled={self.cancelled}, remaining={self.remaining()})"


def ensure_scope(scope: CancelScope | None, timeout: float | None = None) -> CancelScope:
    """Return ``scope`` or a fresh scope honoring the default ``timeout``."""
    if scope is not None:
        return scope
    return CancelScope.with_timeout(timeout)
