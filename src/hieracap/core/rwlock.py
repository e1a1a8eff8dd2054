# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Writer-preferring reader-writer lock with cancellation support."""

from __future__ import annotations

import threading
from collections.abc import Callable, Generator
from contextlib import contextmanager

from .cancellation import CancelScope, ensure_scope


class ReadWriteLock:
    """Reader-writer lock that lets any number of readers or one writer in.

    Writers are preferred: once a writer is waiting, new readers queue
    behind it. This keeps a steady stream of ``decide`` calls from starving
    ``revoke``.

    Acquisition honors a ``CancelScope``: waiting stops with
    ``CanceledError`` or ``DeadlineExceededError`` as soon as the scope is
    canceled or its deadline passes.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    def _wait_until(
        self,
        ready: Callable[[], bool],
        scope: CancelScope,
        operation: str,
    ) -> None:
        # Caller holds self._cond.
        while not ready():
            scope.check(operation)
            self._cond.wait(timeout=scope.next_wait())

    def acquire_read(self, scope: CancelScope | None = None) -> None:
        scope = ensure_scope(scope)
        with self._cond:
            self._wait_until(
                lambda: not self._writer and self._waiting_writers == 0,
                scope,
                "read lock acquisition",
            )
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            if self._readers <= 0:
                raise RuntimeError("release_read() without matching acquire_read()")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self, scope: CancelScope | None = None) -> None:
        scope = ensure_scope(scope)
        with self._cond:
            self._waiting_writers += 1
            try:
                self._wait_until(
                    lambda: not self._writer and self._readers == 0,
                    scope,
                    "write lock acquisition",
                )
            finally:
                self._waiting_writers -= 1
                if not self._waiting_writers:
                    # Readers parked behind a writer that gave up can proceed.
                    self._cond.notify_all()
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            if not self._writer:
                raise RuntimeError("release_write() without matching acquire_write()")
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self, scope: CancelScope | None = None) -> Generator[None, None, None]:
        """Hold the lock shared for the duration of the block."""
        self.acquire_read(scope)
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self, scope: CancelScope | None = None) -> Generator[None, None, None]:
        """Hold the lock exclusively for the duration of the block."""
        self.acquire_write(scope)
        try:
            yield
        finally:
            self.release_write()

    def stats(self) -> dict[str, int | bool]:
        with self._cond:
            return {
                "readers": self._readers,
                "writer": self._writer,
                "waiting_writers": self._waiting_writers,
            }
