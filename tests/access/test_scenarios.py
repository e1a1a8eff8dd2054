"""End-to-end scenarios and engine-wide properties."""

from __future__ import annotations

import dataclasses
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta

import pytest

from hieracap.access.capability import Capability
from hieracap.access.decision import DenyReason
from hieracap.core.exceptions import NotRefinementError
from hieracap.hierarchy.identity import SegmentKind, parse_identity
from hieracap.hierarchy.matching import covers

T = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)
ROOT_PATTERN = "facility/zone-a/bin/*/sensor-data/**"
BIN_001 = "facility/zone-a/bin/BIN-001/sensor-data/**"
FILL_LEVEL = "facility/zone-a/bin/BIN-001/sensor-data/fill-level"
OTHER_BIN = "facility/zone-a/bin/BIN-002/sensor-data/fill-level"


@pytest.fixture
def narrowed(engine, root):
    return engine.delegate(root, BIN_001, T + timedelta(minutes=30))


class TestScenarios:
    """Waste-management walkthrough of mint, delegate, revoke and decide."""

    def test_root_mint_and_match(self, engine, root):
        assert engine.decide(root, FILL_LEVEL, now=T).allowed
        assert engine.decide(root, FILL_LEVEL, now=T + timedelta(hours=2)).reason is DenyReason.EXPIRED

    def test_narrowing_then_denial(self, engine, narrowed):
        assert engine.decide(narrowed, OTHER_BIN).reason is DenyReason.NOT_COVERED
        assert engine.decide(narrowed, FILL_LEVEL).allowed

    def test_forbidden_widening(self, engine, narrowed):
        with pytest.raises(NotRefinementError):
            engine.delegate(narrowed, ROOT_PATTERN, T + timedelta(minutes=20))

    def test_prefix_revocation(self, engine, root, narrowed):
        """A pattern revocation denies every capability under it, whatever the identity."""
        engine.revoke("facility/zone-a/**", T + timedelta(minutes=10))
        later = T + timedelta(minutes=11)

        for cap in (root, narrowed):
            for identity in (FILL_LEVEL, OTHER_BIN, "clinic/ward-3"):
                assert engine.decide(cap, identity, now=later).reason is DenyReason.REVOKED

        assert engine.decide(root, FILL_LEVEL, now=T + timedelta(minutes=9)).allowed

    def test_single_flight(self, engine, root):
        """100 identical concurrent delegations cause one narrow and equal results."""
        barrier = threading.Barrier(100)

        def delegate():
            barrier.wait(5)
            return engine.delegate(root, BIN_001, T + timedelta(minutes=30))

        with ThreadPoolExecutor(max_workers=100) as pool:
            results = [f.result(timeout=10) for f in [pool.submit(delegate) for _ in range(100)]]

        assert engine.metrics.value("hieracap_narrow_total") == 1
        assert len({cap.fingerprint for cap in results}) == 1
        assert all(cap == results[0] for cap in results)

    def test_key_structure_cross_check(self, engine, root):
        forged = dataclasses.replace(root, material=os.urandom(len(root.material)))

        decision = engine.decide(forged, FILL_LEVEL)

        assert forged.fingerprint == root.fingerprint
        assert decision.reason is DenyReason.KEY_MISMATCH


class TestProperties:
    """Engine-wide guarantees over a small delegation tree."""

    CHILDREN = [
        BIN_001,
        "facility/zone-a/bin/*/sensor-data/fill-level",
        "facility/zone-a/bin/BIN-002/sensor-data/*",
        "facility/zone-a/bin/BIN-003/sensor-data/temp/**",
    ]

    IDENTITIES = [
        FILL_LEVEL,
        OTHER_BIN,
        "facility/zone-a/bin/BIN-002/sensor-data/temp",
        "facility/zone-a/bin/BIN-003/sensor-data/temp/celsius",
        "facility/zone-a/bin/BIN-003/sensor-data",
        "facility/zone-b/bin/BIN-001/sensor-data/fill-level",
    ]

    def test_narrowing_soundness(self, engine, root):
        for pattern in self.CHILDREN:
            child = engine.delegate(root, pattern, T + timedelta(minutes=30))
            for raw in self.IDENTITIES:
                identity = parse_identity(raw)
                if covers(child.pattern, identity):
                    assert covers(root.pattern, identity), (pattern, raw)

    def test_expiry_monotonic(self, engine, root):
        child = engine.delegate(root, BIN_001, T + timedelta(minutes=30))
        leaf = engine.delegate(child, FILL_LEVEL, T + timedelta(minutes=20))

        assert leaf.not_after <= child.not_after <= root.not_after

    def test_revocation_covers_descendants(self, engine, root):
        child = engine.delegate(root, BIN_001, T + timedelta(minutes=30))
        leaf = engine.delegate(child, FILL_LEVEL, T + timedelta(minutes=20))

        engine.revoke(child)

        assert engine.decide(leaf, FILL_LEVEL).reason is DenyReason.REVOKED
        assert engine.decide(child, FILL_LEVEL).reason is DenyReason.REVOKED
        assert engine.decide(root, FILL_LEVEL).allowed

    def test_decision_determinism(self, engine, root):
        for raw in self.IDENTITIES:
            first = engine.decide(root, raw, now=T + timedelta(minutes=1))
            second = engine.decide(root, raw, now=T + timedelta(minutes=1))
            assert first == second

    def test_serialization_round_trip(self, engine, root):
        child = engine.delegate(root, BIN_001, T + timedelta(minutes=30))
        for cap in (root, child):
            assert Capability.parse(cap.serialize()) == cap

    def test_multi_wildcard_only_terminal(self, engine, root):
        issued = [engine.delegate(root, p, T + timedelta(minutes=30)) for p in self.CHILDREN]
        for cap in [root, *issued]:
            assert all(s.kind != SegmentKind.MULTI for s in cap.pattern.segments[:-1])

    def test_serialized_capability_decides(self, engine, narrowed):
        """A capability handed over as bytes decides the same as the object."""
        assert engine.decide(narrowed.serialize(), FILL_LEVEL).allowed
        assert engine.decide(narrowed.serialize(), OTHER_BIN).reason is DenyReason.NOT_COVERED
