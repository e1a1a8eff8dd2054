"""Tests for covers(), refines() and the compiled-pattern cache."""

from __future__ import annotations

import itertools

import pytest

from hieracap.core.exceptions import IncomparableError, NotRefinementError
from hieracap.hierarchy.identity import parse_identity, parse_pattern
from hieracap.hierarchy.matching import (
    CompiledPattern,
    PatternCache,
    Relation,
    compare,
    covers,
    refines,
    require_refinement,
)


def P(text):
    return parse_pattern(text)


def I(text):  # noqa: E743
    return parse_identity(text)


class TestCovers:
    """Tests for the match predicate."""

    @pytest.mark.parametrize(
        "pattern,identity,expected",
        [
            ("a/b", "a/b", True),
            ("a/b", "a/c", False),
            ("a/b", "a/b/c", False),
            ("a/*", "a/x", True),
            ("a/*", "a", False),
            ("a/*", "a/x/y", False),
            ("a/**", "a/x", True),
            ("a/**", "a/x/y/z", True),
            ("a/**", "a", False),
            ("**", "a", True),
            ("**", "a/b/c/d/e/f/g/h", True),
            ("*/b/**", "x/b/c", True),
            ("*/b/**", "x/c/c", False),
            (
                "facility/zone-a/bin/*/sensor-data/**",
                "facility/zone-a/bin/BIN-001/sensor-data/fill-level",
                True,
            ),
            (
                "facility/zone-a/bin/*/sensor-data/**",
                "facility/zone-b/bin/BIN-001/sensor-data/fill-level",
                False,
            ),
        ],
    )
    def test_covers(self, pattern, identity, expected):
        assert covers(P(pattern), I(identity)) is expected

    def test_case_sensitive(self):
        assert not covers(P("a/B"), I("a/b"))


class TestRefines:
    """Tests for the refinement relation."""

    @pytest.mark.parametrize(
        "child,parent",
        [
            ("a/b", "a/b"),
            ("a/b", "a/*"),
            ("a/*", "a/*"),
            ("a/b", "a/**"),
            ("a/b/c", "a/**"),
            ("a/*/c", "a/**"),
            ("a/**", "a/**"),
            ("a/b/**", "a/**"),
            ("a/*/**", "a/**"),
            ("a/**", "**"),
            ("*/x", "**"),
            ("a/b/**", "*/b/**"),
            (
                "facility/zone-a/bin/BIN-001/sensor-data/**",
                "facility/zone-a/bin/*/sensor-data/**",
            ),
            ("facility/zone-a/bin/*/sensor-data/**", "facility/zone-a/**"),
        ],
    )
    def test_refines(self, child, parent):
        assert refines(P(child), P(parent))

    @pytest.mark.parametrize(
        "child,parent",
        [
            ("a/*", "a/b"),  # widening a literal
            ("a/**", "a/b"),  # open child, closed parent
            ("a/**", "a/*"),  # '**' matches deeper identities than '*'
            ("a", "a/**"),  # '**' needs at least one segment
            ("a/b", "a/b/c"),  # different depth
            ("a/**", "a/b/**"),  # wider prefix
            ("**", "a/**"),
            ("b/c", "a/**"),
            ("*/b", "a/*"),
            ("facility/zone-a/bin/*/sensor-data/**", "facility/zone-a/bin/BIN-001/sensor-data/**"),
        ],
    )
    def test_not_refines(self, child, parent):
        assert not refines(P(child), P(parent))

    def test_refinement_is_match_set_inclusion(self):
        """Whenever refines() holds, every sampled identity matched by the child is matched by the parent."""
        patterns = [
            P(t)
            for t in ["a", "*", "a/b", "a/*", "*/b", "*/*", "a/**", "*/**", "**", "a/b/**", "a/*/c", "a/b/c"]
        ]
        identities = [
            I("/".join(parts))
            for depth in range(1, 4)
            for parts in itertools.product(["a", "b", "c"], repeat=depth)
        ]
        for child, parent in itertools.product(patterns, patterns):
            if refines(child, parent):
                for identity in identities:
                    if covers(child, identity):
                        assert covers(parent, identity), (child, parent, identity)

    def test_refinement_is_exact_on_samples(self):
        """When refines() fails, some sampled identity separates the patterns."""
        patterns = [P(t) for t in ["a/b", "a/*", "*/b", "a/**", "**", "a/b/**", "*/*/**"]]
        identities = [
            I("/".join(parts))
            for depth in range(1, 5)
            for parts in itertools.product(["a", "b", "z"], repeat=depth)
        ]
        for child, parent in itertools.product(patterns, patterns):
            if not refines(child, parent):
                assert any(covers(child, i) and not covers(parent, i) for i in identities), (
                    child,
                    parent,
                )


class TestCompare:
    """Tests for compare() and require_refinement()."""

    def test_equal(self):
        assert compare(P("a/*"), P("a/*")) is Relation.EQUAL

    def test_narrower_and_wider(self):
        assert compare(P("a/b"), P("a/*")) is Relation.NARROWER
        assert compare(P("a/*"), P("a/b")) is Relation.WIDER

    def test_incomparable(self):
        """Siblings stand in no refinement relation."""
        with pytest.raises(IncomparableError) as exc_info:
            compare(P("a/b"), P("a/c"))
        assert exc_info.value.left == "a/b"
        assert exc_info.value.right == "a/c"

    def test_require_refinement(self):
        require_refinement(P("a/b"), P("a/**"))
        with pytest.raises(NotRefinementError):
            require_refinement(P("a/**"), P("a/b"))


class TestCompiledPattern:
    """Compiled patterns agree with covers()."""

    def test_agrees_with_covers(self):
        patterns = [P(t) for t in ["a/b", "a/*", "*/**", "**", "a/*/c", "a/b/**"]]
        identities = [
            I("/".join(parts))
            for depth in range(1, 4)
            for parts in itertools.product(["a", "b", "c"], repeat=depth)
        ]
        for pattern in patterns:
            compiled = CompiledPattern.from_pattern(pattern)
            for identity in identities:
                assert compiled.matches(identity) == covers(pattern, identity)

    def test_literals_layout(self):
        compiled = CompiledPattern.from_pattern(P("a/*/c/**"))
        assert compiled.literals == ("a", None, "c")
        assert compiled.open_ended


class TestPatternCache:
    """Tests for the LRU compiled-pattern cache."""

    def test_hit_and_miss(self):
        cache = PatternCache(max_size=4)

        first = cache.compile(P("a/**"))
        second = cache.compile(P("a/**"))

        assert first is second
        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1

    def test_covers(self):
        cache = PatternCache()
        assert cache.covers(P("a/*"), I("a/b"))
        assert not cache.covers(P("a/*"), I("b/b"))

    def test_bounded(self):
        cache = PatternCache(max_size=2)
        for text in ["a", "b", "c"]:
            cache.compile(P(text))
        assert len(cache) == 2

    def test_warm(self):
        """warm() precompiles patterns and skips ones already cached."""
        cache = PatternCache()
        cache.compile(P("a/**"))

        added = cache.warm([P("a/**"), P("b/*"), P("c")])

        assert added == 2
        assert len(cache) == 3

    def test_clear(self):
        cache = PatternCache()
        cache.compile(P("a"))
        cache.clear()
        assert len(cache) == 0
