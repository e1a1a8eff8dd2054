# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Single-flight coordination.

Concurrent calls with the same key collapse into one computation. The
first caller (the leader) runs the function; every caller arriving while
it runs (a follower) waits for the leader's outcome and receives the same
result or exception.

Followers wait on their own ``CancelScope``: canceling a follower raises
``CanceledError`` in that follower only, and the leader keeps going.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Hashable
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Generic, TypeVar

from ..core.cancellation import CancelScope, ensure_scope
from ..core.exceptions import CapacityError
from ..core.metrics import EngineMetrics

logger = logging.getLogger(__name__)

DEFAULT_MAX_INFLIGHT = 1024

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """At most one concurrent computation per key.

    Example:
        flight = SingleFlight(max_inflight=64)
        capability = flight.do(key, lambda: derive(...), scope=scope)
    """

    def __init__(
        self,
        max_inflight: int = DEFAULT_MAX_INFLIGHT,
        metrics: EngineMetrics | None = None,
    ) -> None:
        if max_inflight < 1:
            raise ValueError("max_inflight must be at least 1")
        self.max_inflight = max_inflight
        self.metrics = metrics if metrics is not None else EngineMetrics()
        self._lock = threading.Lock()
        self._calls: dict[Hashable, Future[T]] = {}

    def do(self, key: Hashable, fn: Callable[[], T], scope: CancelScope | None = None) -> T:
        """Run ``fn`` unless an identical call is in flight, then share its outcome.

        Raises:
            CapacityError: If ``max_inflight`` distinct keys are already running.
            CanceledError: If this follower's scope is canceled or expires.
        """
        with self._lock:
            future = self._calls.get(key)
            leader = future is None
            if leader:
                if len(self._calls) >= self.max_inflight:
                    raise CapacityError(
                        f"Too many in-flight derivations ({self.max_inflight})",
                        limit=self.max_inflight,
                    )
                future = Future()
                self._calls[key] = future

        if leader:
            self.metrics.increment("hieracap_singleflight_total", role="leader")
            return self._lead(key, future, fn)

        self.metrics.increment("hieracap_singleflight_total", role="shared")
        return self._follow(future, ensure_scope(scope))

    def _lead(self, key: Hashable, future: Future[T], fn: Callable[[], T]) -> T:
        try:
            result = fn()
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._calls.pop(key, None)

    def _follow(self, future: Future[T], scope: CancelScope) -> T:
        while True:
            scope.check("single-flight wait")
            try:
                return future.result(timeout=scope.next_wait())
            except FutureTimeoutError:
                if future.done():
                    # The leader itself failed with a timeout.
                    raise

    def inflight(self) -> int:
        with self._lock:
            return len(self._calls)

    def stats(self) -> dict[str, Any]:
        return {
            "inflight": self.inflight(),
            "max_inflight": self.max_inflight,
            "leaders": self.metrics.value("hieracap_singleflight_total", role="leader"),
            "shared": self.metrics.value("hieracap_singleflight_total", role="shared"),
        }
