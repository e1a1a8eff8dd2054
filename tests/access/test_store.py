"""Tests for CapabilityStore and StoreSweeper."""

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta

import pytest

from hieracap.access.capability import Capability
from hieracap.access.store import CapabilityStore, StoreSweeper, issuance_key
from hieracap.hierarchy.identity import parse_pattern

T = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


def make(pattern="a/**", hours=1, chain=()):
    return Capability(
        pattern=parse_pattern(pattern),
        not_before=T,
        not_after=T + timedelta(hours=hours),
        issuer_chain=chain,
        material=b"\x00" * 32,
    )


@pytest.fixture
def store():
    return CapabilityStore(clock=lambda: T)


class TestIssuanceKey:
    """Tests for issuance_key()."""

    def test_fields(self):
        key = issuance_key(parse_pattern("a/*"), T, T + timedelta(seconds=1), None)
        assert key[0] == b"a/*"
        assert key[2] - key[1] == 1000
        assert key[3] == b""

    def test_parent_distinguishes(self):
        a = issuance_key(parse_pattern("a"), T, T + timedelta(hours=1), b"\x01" * 32)
        b = issuance_key(parse_pattern("a"), T, T + timedelta(hours=1), b"\x02" * 32)
        assert a != b


class TestCapabilityStore:
    """Tests for indexing and expiry."""

    def test_put_and_get(self, store):
        cap = make()
        store.put(cap)

        assert store.get(cap.fingerprint) is cap
        assert cap.fingerprint in store
        assert len(store) == 1

    def test_get_missing(self, store):
        assert store.get(b"\x00" * 32) is None

    def test_lookup_issued(self, store):
        """A derivation request maps back to the capability it produced."""
        root = make()
        child = make("a/b", chain=root.lineage())
        store.put(child)

        key = issuance_key(child.pattern, child.not_before, child.not_after, root.fingerprint)

        assert store.lookup_issued(key) is child

    def test_get_drops_expired(self, store):
        cap = make()
        store.put(cap)

        assert store.get(cap.fingerprint, now=T + timedelta(hours=2)) is None
        assert cap.fingerprint not in store
        assert store.metrics.value("hieracap_store_expired_total") == 1

    def test_lookup_issued_drops_expired(self, store):
        cap = make()
        store.put(cap)
        key = issuance_key(cap.pattern, cap.not_before, cap.not_after, None)

        assert store.lookup_issued(key, now=T + timedelta(hours=2)) is None
        assert store.lookup_issued(key) is None

    def test_valid_until_not_after_inclusive(self, store):
        cap = make()
        store.put(cap)
        assert store.get(cap.fingerprint, now=cap.not_after) is cap

    def test_remove(self, store):
        cap = make()
        store.put(cap)

        assert store.remove(cap.fingerprint)
        assert not store.remove(cap.fingerprint)
        assert store.lookup_issued(issuance_key(cap.pattern, cap.not_before, cap.not_after, None)) is None

    def test_sweep(self, store):
        short = make("a/b", hours=1)
        long = make("a/c", hours=3)
        store.put(short)
        store.put(long)

        removed = store.sweep(now=T + timedelta(hours=2))

        assert removed == 1
        assert short.fingerprint not in store
        assert long.fingerprint in store
        assert store.sweep(now=T + timedelta(hours=2)) == 0

    def test_bounded(self):
        store = CapabilityStore(max_size=2, clock=lambda: T)
        caps = [make(p) for p in ("a", "b", "c")]
        for cap in caps:
            store.put(cap)

        assert len(store) == 2
        assert caps[0].fingerprint not in store

    def test_children_and_descendants(self, store):
        root = make("a/**")
        child = make("a/b/**", chain=root.lineage())
        grandchild = make("a/b/c", chain=child.lineage())
        for cap in (root, child, grandchild):
            store.put(cap)

        assert store.children_of(root.fingerprint) == [child]
        assert set(c.fingerprint for c in store.descendants_of(root.fingerprint)) == {
            child.fingerprint,
            grandchild.fingerprint,
        }

    def test_list_excludes_expired(self, store):
        store.put(make("a", hours=1))
        store.put(make("b", hours=3))

        assert [str(c.pattern) for c in store.list(now=T + timedelta(hours=2))] == ["b"]

    def test_clear_and_stats(self, store):
        store.put(make())
        store.clear()

        assert len(store) == 0
        stats = store.stats()
        assert stats["capabilities"]["size"] == 0
        assert stats["expired_total"] == 0


class TestStoreSweeper:
    """Tests for the background sweeper thread."""

    def test_invalid_interval(self, store):
        with pytest.raises(ValueError):
            StoreSweeper(store, interval=0)

    def test_sweeps_periodically(self):
        clock_value = [T]
        store = CapabilityStore(clock=lambda: clock_value[0])
        cap = make()
        store.put(cap)
        clock_value[0] = T + timedelta(hours=2)

        sweeper = StoreSweeper(store, interval=0.01)
        sweeper.start()
        try:
            deadline = time.monotonic() + 2
            while cap.fingerprint in store and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            sweeper.stop()

        assert cap.fingerprint not in store
        assert not sweeper.running

    def test_start_is_idempotent(self, store):
        sweeper = StoreSweeper(store, interval=10)
        sweeper.start()
        thread = sweeper._thread
        sweeper.start()
        try:
            assert sweeper._thread is thread
            assert sweeper.running
        finally:
            sweeper.stop()
