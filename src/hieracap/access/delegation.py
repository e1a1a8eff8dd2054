# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Delegation: deriving narrower capabilities from existing ones.

Preconditions are checked in a fixed order, each with its own error:

1. the child pattern parses (``MalformedError``)
2. the parent has not expired (``ParentExpiredError``)
3. the parent and its ancestors are not revoked (``RevokedError``)
4. the child pattern refines the parent's (``NotRefinementError``)
5. the child window lies inside the parent's (``ValidityExceedsParentError``)
6. the child not_after is in the future (``ValidityInPastError``)

Nothing is written unless every check passes. Identical concurrent
requests share one derivation through ``SingleFlight``, and a repeat of a
completed request returns the stored capability.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..core.cancellation import CancelScope, ensure_scope
from ..core.clock import Clock, normalize, utcnow
from ..core.exceptions import (
    CanceledError,
    CapacityError,
    ParentExpiredError,
    RevokedError,
    ValidityExceedsParentError,
    ValidityInPastError,
)
from ..core.metrics import EngineMetrics
from ..hierarchy.identity import Pattern, as_pattern
from ..hierarchy.matching import require_refinement
from .authority import Authority
from .capability import MAX_CHAIN_LENGTH, Capability
from .revocation import RevocationRegistry
from .singleflight import SingleFlight
from .store import CapabilityStore, IssuanceKey, issuance_key

logger = logging.getLogger(__name__)


class DelegationService:
    """Issues derived capabilities on behalf of capability holders."""

    def __init__(
        self,
        authority: Authority,
        store: CapabilityStore,
        registry: RevocationRegistry,
        flight: SingleFlight[Capability] | None = None,
        metrics: EngineMetrics | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.authority = authority
        self.store = store
        self.registry = registry
        self.metrics = metrics if metrics is not None else EngineMetrics()
        self.flight = flight if flight is not None else SingleFlight(metrics=self.metrics)
        self._clock = clock

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
        """Derive a capability for ``child_pattern`` from ``parent``.

        ``not_before`` defaults to the parent's not_before, so identical
        requests made at different times name the same capability.

        Raises:
            MalformedError: If the child pattern cannot be parsed.
            ParentExpiredError: If the parent has expired.
            RevokedError: If the parent or an ancestor is revoked.
            NotRefinementError: If the child would widen the parent.
            ValidityExceedsParentError: If the window is not inside the parent's.
            ValidityInPastError: If ``not_after`` has already passed.
            CapacityError: If the issuer chain is full or too many
                derivations are in flight.
            CanceledError: If ``scope`` is canceled or expires.
        """
        scope = ensure_scope(scope)
        scope.check("delegate")

        child = as_pattern(child_pattern, self.authority.policy.max_depth)
        now = normalize(now) if now is not None else self._clock()
        not_after = normalize(not_after)
        not_before = normalize(not_before) if not_before is not None else parent.not_before

        if now >= parent.not_after:
            raise ParentExpiredError(
                f"Parent capability {parent.short_id} expired at {parent.not_after.isoformat()}",
                {"fingerprint": parent.fingerprint.hex()},
            )

        entry = self.registry.find_revocation(parent, now, scope)
        if entry is not None:
            raise RevokedError(
                f"Parent capability {parent.short_id} is revoked "
                f"({entry.kind.name.lower()} {entry.target_text})",
                fingerprint=parent.fingerprint.hex(),
            )

        require_refinement(child, parent.pattern)

        if not_after > parent.not_after:
            raise ValidityExceedsParentError(
                "Requested not_after is later than the parent's",
                {"not_after": not_after.isoformat(), "parent_not_after": parent.not_after.isoformat()},
            )
        if not_before < parent.not_before or not_before >= not_after:
            raise ValidityExceedsParentError(
                "Requested window is not inside the parent's window",
                {"not_before": not_before.isoformat(), "not_after": not_after.isoformat()},
            )

        if not_after <= now:
            raise ValidityInPastError(
                "Requested not_after is already in the past",
                {"not_after": not_after.isoformat(), "now": now.isoformat()},
            )

        if len(parent.issuer_chain) >= MAX_CHAIN_LENGTH:
            raise CapacityError(
                f"Issuer chain is limited to {MAX_CHAIN_LENGTH} entries", limit=MAX_CHAIN_LENGTH
            )

        key = issuance_key(child, not_before, not_after, parent.fingerprint)
        existing = self.store.lookup_issued(key, now)
        if existing is not None:
            return existing

        while True:
            try:
                return self.flight.do(
                    key,
                    lambda: self._derive(key, parent, child, not_before, not_after, now, scope),
                    scope,
                )
            except CanceledError:
                if scope.cancelled or scope.expired:
                    raise
                # The leader we waited on was canceled; take over.
                logger.debug(f"Retrying derivation of {child} after leader cancellation")

    def _derive(
        self,
        key: IssuanceKey,
        parent: Capability,
        child: Pattern,
        not_before: datetime,
        not_after: datetime,
        now: datetime,
        scope: CancelScope,
    ) -> Capability:
        existing = self.store.lookup_issued(key, now)
        if existing is not None:
            return existing

        scope.check("narrow")
        material = self.authority.narrow(parent, child)
        capability = Capability(
            pattern=child,
            not_before=not_before,
            not_after=not_after,
            issuer_chain=parent.lineage(),
            material=material,
        )
        self.store.put(capability)
        self.registry.note_issued(capability)
        self.metrics.increment("hieracap_delegations_total")
        logger.info(
            f"Delegated {capability.short_id} ({child}) from {parent.short_id} ({parent.pattern})"
        )
        return capability
