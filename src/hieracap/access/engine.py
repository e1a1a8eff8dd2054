# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Engine context.

``AccessEngine`` is the long-lived object that wires the authority,
capability store, single-flight group, revocation registry, pattern cache
and decision point together. Embedding services create one and pass it
explicitly; there are no module-level registries.

Usage:
    engine = AccessEngine.from_config()
    root = engine.mint_root("facility/zone-a/**", now + timedelta(hours=1))
    child = engine.delegate(root, "facility/zone-a/bin/*", now + timedelta(minutes=30))
    if engine.decide(child, "facility/zone-a/bin/BIN-001"):
        ...
"""

from __future__ import annotations

import logging
from datetime import datetime
from types import TracebackType
from typing import Any

from ..core.cancellation import CancelScope
from ..core.clock import Clock, normalize, utcnow
from ..core.config import CoreSettings, get_config
from ..core.metrics import EngineMetrics
from ..hierarchy.identity import Identity, Pattern, as_pattern
from ..hierarchy.matching import PatternCache
from .authority import Authority
from .capability import FINGERPRINT_SIZE, Capability
from .decision import AccessDecisionPoint, Decision
from .delegation import DelegationService
from .revocation import RevocationEntry, RevocationLog, RevocationRegistry
from .singleflight import DEFAULT_MAX_INFLIGHT, SingleFlight
from .store import DEFAULT_STORE_SIZE, DEFAULT_SWEEP_INTERVAL, CapabilityStore, StoreSweeper

logger = logging.getLogger(__name__)


class AccessEngine:
    """Authority context shared by delegation and access decisions."""

    def __init__(
        self,
        authority: Authority,
        store: CapabilityStore,
        registry: RevocationRegistry,
        pattern_cache: PatternCache,
        flight: SingleFlight[Capability],
        metrics: EngineMetrics,
        clock: Clock = utcnow,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
    ) -> None:
        self.authority = authority
        self.store = store
        self.registry = registry
        self.pattern_cache = pattern_cache
        self.metrics = metrics
        self._clock = clock
        self.delegation = DelegationService(
            authority, store, registry, flight=flight, metrics=metrics, clock=clock
        )
        self.adp = AccessDecisionPoint(
            authority.verifier,
            registry,
            pattern_cache=pattern_cache,
            max_depth=authority.policy.max_depth,
            metrics=metrics,
            clock=clock,
        )
        self._sweeper = StoreSweeper(store, sweep_interval)

    @classmethod
    def build(
        cls,
        authority: Authority,
        *,
        revocation_log: str | None = None,
        pattern_cache_size: int = 4096,
        capability_cache_size: int = DEFAULT_STORE_SIZE,
        singleflight_max_inflight: int = DEFAULT_MAX_INFLIGHT,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        lock_timeout: float | None = None,
        clock: Clock = utcnow,
    ) -> AccessEngine:
        """Assemble an engine around ``authority`` with explicit settings.

        The engine shares the authority's metrics so one
        ``render_prometheus()`` covers every component.
        """
        metrics = authority.metrics
        log = RevocationLog(revocation_log, authority.policy.max_depth) if revocation_log else None
        return cls(
            authority,
            store=CapabilityStore(capability_cache_size, metrics=metrics, clock=clock),
            registry=RevocationRegistry(
                log,
                metrics=metrics,
                clock=clock,
                lock_timeout=lock_timeout,
                max_depth=authority.policy.max_depth,
            ),
            pattern_cache=PatternCache(pattern_cache_size),
            flight=SingleFlight(singleflight_max_inflight, metrics=metrics),
            metrics=metrics,
            clock=clock,
            sweep_interval=sweep_interval,
        )

    @classmethod
    def from_config(
        cls,
        settings: CoreSettings | None = None,
        authority: Authority | None = None,
        clock: Clock = utcnow,
    ) -> AccessEngine:
        """Build an engine from ``HIERACAP_*`` settings.

        Raises:
            ConfigException: If no authority is given and no valid master
                secret is configured.
        """
        settings = settings or get_config()
        authority = authority or Authority.from_config(settings, clock=clock)
        return cls.build(
            authority,
            revocation_log=settings.revocation_log,
            pattern_cache_size=settings.pattern_cache_size,
            capability_cache_size=settings.capability_cache_size,
            singleflight_max_inflight=settings.singleflight_max_inflight,
            sweep_interval=settings.sweep_interval_seconds,
            lock_timeout=settings.lock_timeout_seconds,
            clock=clock,
        )

    # -------------------------------------------------------------------------
    # Issuance
    # -------------------------------------------------------------------------

    def mint_root(
        self,
        pattern: Pattern | str | bytes,
        not_after: datetime,
        *,
        not_before: datetime | None = None,
        now: datetime | None = None,
    ) -> Capability:
        """Mint a root capability valid from ``not_before`` (default: now)."""
        now = normalize(now) if now is not None else self._clock()
        capability = self.authority.mint_root(pattern, not_before or now, not_after, now=now)
        self.store.put(capability)
        self.registry.note_issued(capability)
        return capability

    def delegate(
        self,
        parent: Capability,
        child_pattern: Pattern | str | bytes,
        not_after: datetime,
        *,
        not_before: datetime | None = None,
        now: datetime | None = None,
        scope: CancelScope | None = None,
    ) -> Capability:
        return self.delegation.delegate(
            parent, child_pattern, not_after, not_before=not_before, now=now, scope=scope
        )

    # -------------------------------------------------------------------------
    # Revocation
    # -------------------------------------------------------------------------

    def revoke(
        self,
        target: Capability | Pattern | bytes | str,
        effective_at: datetime | None = None,
        *,
        reason: str = "",
        revoked_by: str = "",
        scope: CancelScope | None = None,
    ) -> RevocationEntry:
        """Revoke a capability, fingerprint or pattern.

        A fingerprint of a capability held in the store is revoked as that
        capability so the entry can be reaped once it expires.
        """
        if isinstance(target, bytes) and len(target) == FINGERPRINT_SIZE:
            known = self.store.get(target)
            if known is not None:
                target = known
        return self.registry.revoke(
            target, effective_at, reason=reason, revoked_by=revoked_by, scope=scope
        )

    def reap(self, now: datetime | None = None, scope: CancelScope | None = None) -> int:
        return self.registry.reap(now, scope)

    # -------------------------------------------------------------------------
    # Decisions
    # -------------------------------------------------------------------------

    def decide(
        self,
        capability: Capability | bytes,
        identity: Identity | str | bytes,
        now: datetime | None = None,
        *,
        scope: CancelScope | None = None,
    ) -> Decision:
        return self.adp.decide(capability, identity, now, scope=scope)

    def warm(self, patterns: list[Pattern | str]) -> int:
        """Precompile frequently used patterns into the decision cache."""
        max_depth = self.authority.policy.max_depth
        return self.pattern_cache.warm([as_pattern(p, max_depth) for p in patterns])

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get(self, fingerprint: bytes, now: datetime | None = None) -> Capability | None:
        return self.store.get(fingerprint, now)

    def children_of(self, capability: Capability | bytes, now: datetime | None = None) -> list[Capability]:
        fingerprint = capability.fingerprint if isinstance(capability, Capability) else capability
        return self.store.children_of(fingerprint, now)

    def public_params(self) -> bytes:
        return self.authority.public_params()

    def stats(self) -> dict[str, Any]:
        return {
            "store": self.store.stats(),
            "pattern_cache": self.pattern_cache.stats(),
            "revocations": self.registry.stats(),
            "singleflight": self.delegation.flight.stats(),
        }

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start_sweeper(self) -> None:
        self._sweeper.start()

    def close(self) -> None:
        self._sweeper.stop()

    def __enter__(self) -> AccessEngine:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"AccessEngine(authority={self.authority!r}, capabilities={len(self.store)})"
