"""Tests for the writer-preferring reader-writer lock."""

from __future__ import annotations

import threading
import time

import pytest

from hieracap.core.cancellation import CancelScope
from hieracap.core.exceptions import CanceledError, DeadlineExceededError
from hieracap.core.rwlock import ReadWriteLock


class TestReadWriteLockBasics:
    """Single-threaded behavior."""

    def test_multiple_readers(self):
        """Several readers may hold the lock at once."""
        lock = ReadWriteLock()
        lock.acquire_read()
        lock.acquire_read()

        assert lock.stats()["readers"] == 2

        lock.release_read()
        lock.release_read()
        assert lock.stats()["readers"] == 0

    def test_write_context_manager(self):
        """write_locked() holds and then releases exclusively."""
        lock = ReadWriteLock()
        with lock.write_locked():
            assert lock.stats()["writer"] is True
        assert lock.stats()["writer"] is False

    def test_release_without_acquire(self):
        """Unbalanced releases raise RuntimeError."""
        lock = ReadWriteLock()
        with pytest.raises(RuntimeError):
            lock.release_read()
        with pytest.raises(RuntimeError):
            lock.release_write()


class TestReadWriteLockConcurrency:
    """Blocking, preference and cancellation."""

    def test_writer_excludes_readers(self):
        """A reader waits while a writer holds the lock."""
        lock = ReadWriteLock()
        lock.acquire_write()
        acquired = threading.Event()

        def reader():
            with lock.read_locked():
                acquired.set()

        t = threading.Thread(target=reader)
        t.start()
        assert not acquired.wait(0.1)

        lock.release_write()
        assert acquired.wait(2)
        t.join()

    def test_waiting_writer_blocks_new_readers(self):
        """Once a writer waits, new readers queue behind it."""
        lock = ReadWriteLock()
        lock.acquire_read()
        order: list[str] = []

        def writer():
            with lock.write_locked():
                order.append("writer")

        def late_reader():
            with lock.read_locked():
                order.append("reader")

        w = threading.Thread(target=writer)
        w.start()
        deadline = time.monotonic() + 2
        while lock.stats()["waiting_writers"] == 0 and time.monotonic() < deadline:
            time.sleep(0.005)

        r = threading.Thread(target=late_reader)
        r.start()
        time.sleep(0.1)
        assert order == []

        lock.release_read()
        w.join(2)
        r.join(2)
        assert order == ["writer", "reader"]

    def test_read_deadline(self):
        """A reader gives up with DeadlineExceededError when its deadline passes."""
        lock = ReadWriteLock()
        lock.acquire_write()

        with pytest.raises(DeadlineExceededError):
            lock.acquire_read(CancelScope.with_timeout(0.05))

        lock.release_write()
        assert lock.stats()["readers"] == 0

    def test_write_cancel(self):
        """A canceled writer stops waiting and no longer blocks readers."""
        lock = ReadWriteLock()
        lock.acquire_read()
        scope = CancelScope()
        errors: list[Exception] = []

        def writer():
            try:
                lock.acquire_write(scope)
            except CanceledError as e:
                errors.append(e)

        t = threading.Thread(target=writer)
        t.start()
        time.sleep(0.05)
        scope.cancel()
        t.join(2)

        assert len(errors) == 1
        assert lock.stats()["waiting_writers"] == 0
        # New readers are admitted again.
        lock.acquire_read(CancelScope.with_timeout(1))
        lock.release_read()
        lock.release_read()
