# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Capability store.

An index of issued capabilities, not a source of truth: every capability
can be re-derived from its parent and the master secret. Two bounded LRU
maps are kept:

- fingerprint -> capability
- issuance key -> fingerprint, where the issuance key is
  ``(pattern bytes, not_before ms, not_after ms, parent fingerprint)``;
  this is what lets a repeated ``delegate`` return the existing capability

Expired capabilities are dropped lazily on access and periodically by
``StoreSweeper``.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any

from ..core.clock import Clock, normalize, to_millis, utcnow
from ..core.lru_cache import LRUDict
from ..core.metrics import EngineMetrics
from ..hierarchy.identity import Pattern, canonical_bytes
from .capability import Capability

logger = logging.getLogger(__name__)

DEFAULT_STORE_SIZE = 4096
DEFAULT_SWEEP_INTERVAL = 60.0

IssuanceKey = tuple[bytes, int, int, bytes]


def issuance_key(
    pattern: Pattern,
    not_before: datetime,
    not_after: datetime,
    parent_fingerprint: bytes | None,
) -> IssuanceKey:
    """Key identifying one derivation request."""
    return (
        canonical_bytes(pattern),
        to_millis(not_before),
        to_millis(not_after),
        parent_fingerprint or b"",
    )


class CapabilityStore:
    """Bounded, thread-safe index of issued capabilities."""

    def __init__(
        self,
        max_size: int = DEFAULT_STORE_SIZE,
        metrics: EngineMetrics | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._by_fingerprint: LRUDict[bytes, Capability] = LRUDict(max_size=max_size)
        self._issued: LRUDict[IssuanceKey, bytes] = LRUDict(max_size=max_size)
        self.metrics = metrics if metrics is not None else EngineMetrics()
        self._clock = clock

    def _now(self, now: datetime | None) -> datetime:
        return normalize(now) if now is not None else self._clock()

    def put(self, capability: Capability) -> None:
        """Index a capability under its fingerprint and issuance key."""
        self._by_fingerprint[capability.fingerprint] = capability
        key = issuance_key(
            capability.pattern,
            capability.not_before,
            capability.not_after,
            capability.parent_fingerprint,
        )
        self._issued[key] = capability.fingerprint

    def get(self, fingerprint: bytes, now: datetime | None = None) -> Capability | None:
        """Look up a live capability; expired entries are dropped."""
        capability = self._by_fingerprint.lookup(fingerprint)
        if capability is None:
            return None
        if self._now(now) > capability.not_after:
            self._expire(capability)
            return None
        return capability

    def lookup_issued(self, key: IssuanceKey, now: datetime | None = None) -> Capability | None:
        """Return the capability previously derived for ``key``, if still live."""
        fingerprint = self._issued.lookup(key)
        if fingerprint is None:
            return None
        capability = self.get(fingerprint, now)
        if capability is None:
            self._issued.pop(key, None)
        return capability

    def remove(self, fingerprint: bytes) -> bool:
        capability = self._by_fingerprint.pop(fingerprint, None)
        if capability is None:
            return False
        self._issued.remove_where(lambda _key, fp: fp == fingerprint)
        return True

    def _expire(self, capability: Capability) -> None:
        if self.remove(capability.fingerprint):
            self.metrics.increment("hieracap_store_expired_total")

    def sweep(self, now: datetime | None = None) -> int:
        """Drop every expired capability. Returns how many were removed."""
        now = self._now(now)
        expired = {
            fp for fp, cap in self._by_fingerprint.items() if cap is not None and now > cap.not_after
        }
        if not expired:
            return 0
        self._by_fingerprint.remove_where(lambda fp, _cap: fp in expired)
        self._issued.remove_where(lambda _key, fp: fp in expired)
        self.metrics.increment("hieracap_store_expired_total", len(expired))
        logger.debug(f"Swept {len(expired)} expired capabilities")
        return len(expired)

    def list(self, now: datetime | None = None) -> list[Capability]:
        """Live capabilities, least recently used first."""
        now = self._now(now)
        return [
            cap for cap in self._by_fingerprint.values() if cap is not None and now <= cap.not_after
        ]

    def children_of(self, fingerprint: bytes, now: datetime | None = None) -> list[Capability]:
        """Live capabilities delegated directly from ``fingerprint``."""
        return [cap for cap in self.list(now) if cap.parent_fingerprint == fingerprint]

    def descendants_of(self, fingerprint: bytes, now: datetime | None = None) -> list[Capability]:
        """Live capabilities with ``fingerprint`` anywhere in their issuer chain."""
        return [cap for cap in self.list(now) if fingerprint in cap.issuer_chain]

    def __len__(self) -> int:
        return len(self._by_fingerprint)

    def __contains__(self, fingerprint: object) -> bool:
        return fingerprint in self._by_fingerprint

    def clear(self) -> None:
        self._by_fingerprint.clear()
        self._issued.clear()

    def stats(self) -> dict[str, Any]:
        return {
            "capabilities": self._by_fingerprint.stats(),
            "issuance": self._issued.stats(),
            "expired_total": self.metrics.total("hieracap_store_expired_total"),
        }


class StoreSweeper:
    """Background thread that periodically sweeps expired capabilities.

    Example:
        sweeper = StoreSweeper(store, interval=60)
        sweeper.start()
        ...
        sweeper.stop()
    """

    def __init__(self, store: CapabilityStore, interval: float = DEFAULT_SWEEP_INTERVAL) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.store = store
        self.interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="hieracap-store-sweeper")
        self._thread.start()
        logger.debug(f"Store sweeper started (interval={self.interval}s)")

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.store.sweep()
            except Exception:
                logger.exception("Capability store sweep failed")

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.debug("Store sweeper stopped")
