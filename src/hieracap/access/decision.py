# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Access decision point (ADP).

``decide`` runs the checks in a fixed order and returns the first denial:

1. structural validity of the capability and identity -> MALFORMED
2. ``not_before <= now <= not_after`` -> EXPIRED
3. no effective revocation of the capability or an ancestor -> REVOKED
4. key material check and structural match, computed independently:
   both accept -> allow, both reject -> NOT_COVERED, disagreement ->
   KEY_MISMATCH (also logged at the SECURITY level)

The ADP has no side effects beyond metrics and logs. Waiting on the
revocation registry honors the caller's ``CancelScope``; cancellation
raises rather than producing a decision.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from ..core.cancellation import CancelScope, ensure_scope
from ..core.clock import Clock, normalize, utcnow
from ..core.exceptions import ErrorKind, MalformedError
from ..core.logging import DecisionLogger, decision_logger
from ..core.metrics import EngineMetrics
from ..hierarchy.identity import DEFAULT_MAX_DEPTH, Identity, as_identity
from ..hierarchy.matching import PatternCache
from ..keys.primitive import KeyPrimitive
from .capability import Capability
from .revocation import RevocationRegistry

logger = logging.getLogger(__name__)


class DenyReason(str, Enum):
    """Why access was denied."""

    MALFORMED = "malformed"
    EXPIRED = "expired"
    REVOKED = "revoked"
    NOT_COVERED = "not_covered"
    KEY_MISMATCH = "key_mismatch"

    @property
    def kind(self) -> ErrorKind | None:
        """Matching error kind, if the denial corresponds to one."""
        return {
            DenyReason.MALFORMED: ErrorKind.MALFORMED,
            DenyReason.EXPIRED: ErrorKind.EXPIRED,
            DenyReason.REVOKED: ErrorKind.REVOKED,
            DenyReason.KEY_MISMATCH: ErrorKind.KEY_MISMATCH,
        }.get(self)


@dataclass(frozen=True)
class Decision:
    """Outcome of one access decision. Truthy iff access is allowed."""

    allowed: bool
    reason: DenyReason | None = None
    fingerprint: bytes | None = None
    identity: str | None = None
    detail: str = ""

    def __bool__(self) -> bool:
        return self.allowed

    @property
    def outcome(self) -> str:
        return "allow" if self.allowed else self.reason.value  # type: ignore[union-attr]

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason.value if self.reason else None,
            "fingerprint": self.fingerprint.hex() if self.fingerprint else None,
            "identity": self.identity,
            "detail": self.detail,
        }


class AccessDecisionPoint:
    """Evaluates capabilities against identities."""

    def __init__(
        self,
        verifier: KeyPrimitive,
        registry: RevocationRegistry,
        pattern_cache: PatternCache | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        metrics: EngineMetrics | None = None,
        clock: Clock = utcnow,
        audit: DecisionLogger | None = None,
    ) -> None:
        self.verifier = verifier
        self.registry = registry
        self.pattern_cache = pattern_cache if pattern_cache is not None else PatternCache()
        self.max_depth = max_depth
        self.metrics = metrics if metrics is not None else EngineMetrics()
        self._clock = clock
        self._audit = audit if audit is not None else decision_logger

    def decide(
        self,
        capability: Capability | bytes,
        identity: Identity | str | bytes,
        now: datetime | None = None,
        *,
        scope: CancelScope | None = None,
    ) -> Decision:
        """Decide whether ``capability`` grants access to ``identity`` at ``now``.

        Raises:
            CanceledError: If ``scope`` is canceled or its deadline passes
                while waiting on the revocation registry.
        """
        scope = ensure_scope(scope)
        scope.check("decide")
        now = normalize(now) if now is not None else self._clock()

        # 1. Structure
        try:
            cap = self._load(capability)
            target = as_identity(identity, self.max_depth)
        except MalformedError as e:
            fingerprint = capability.fingerprint if isinstance(capability, Capability) else None
            return self._finish(
                Decision(False, DenyReason.MALFORMED, fingerprint, _describe(identity), e.message)
            )

        ident = str(target)

        # 2. Validity window
        if not cap.is_valid_at(now):
            return self._finish(
                Decision(
                    False,
                    DenyReason.EXPIRED,
                    cap.fingerprint,
                    ident,
                    f"valid {cap.not_before.isoformat()} .. {cap.not_after.isoformat()}",
                )
            )

        # 3. Revocation
        entry = self.registry.find_revocation(cap, now, scope)
        if entry is not None:
            return self._finish(
                Decision(
                    False,
                    DenyReason.REVOKED,
                    cap.fingerprint,
                    ident,
                    f"{entry.kind.name.lower()} {entry.target_text}",
                )
            )

        # 4/5. Key material and structure
        key_ok = self.verifier.covers(cap.material, cap.pattern, target)
        structure_ok = self.pattern_cache.covers(cap.pattern, target)

        if key_ok and structure_ok:
            return self._finish(Decision(True, None, cap.fingerprint, ident))
        if not key_ok and not structure_ok:
            return self._finish(
                Decision(False, DenyReason.NOT_COVERED, cap.fingerprint, ident, str(cap.pattern))
            )

        decision = Decision(
            False,
            DenyReason.KEY_MISMATCH,
            cap.fingerprint,
            ident,
            f"key={'accept' if key_ok else 'reject'} structure={'accept' if structure_ok else 'reject'}",
        )
        self._audit.log_key_mismatch(
            {
                "fingerprint": cap.fingerprint,
                "pattern": str(cap.pattern),
                "identity": ident,
                "key_accepts": key_ok,
                "structure_accepts": structure_ok,
                "material": cap.material,
            }
        )
        return self._finish(decision)

    def _load(self, capability: Capability | bytes) -> Capability:
        if isinstance(capability, Capability):
            capability.pattern.check_depth(self.max_depth)
            return capability
        if isinstance(capability, (bytes, bytearray, memoryview)):
            return Capability.parse(bytes(capability), self.max_depth)
        raise MalformedError("Capability must be a Capability or bytes", value=capability)

    def _finish(self, decision: Decision) -> Decision:
        self.metrics.increment("hieracap_decisions_total", outcome=decision.outcome)
        self._audit.log_decision(
            {
                "fingerprint": decision.fingerprint,
                "identity": decision.identity,
                "reason": decision.outcome,
                "detail": decision.detail,
            },
            decision.allowed,
        )
        return decision


def _describe(identity: Any) -> str | None:
    if isinstance(identity, Identity):
        return str(identity)
    if isinstance(identity, str):
        return identity
    if isinstance(identity, bytes):
        return identity.decode("utf-8", errors="replace")
    return None
