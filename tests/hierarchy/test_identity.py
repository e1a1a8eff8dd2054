"""Tests for identity and pattern parsing."""

from __future__ import annotations

import pytest

from hieracap.core.exceptions import MalformedError
from hieracap.hierarchy.identity import (
    MULTI,
    SINGLE,
    Identity,
    Pattern,
    PatternSegment,
    SegmentKind,
    as_identity,
    as_pattern,
    canonical_bytes,
    parse_identity,
    parse_pattern,
)


class TestParseIdentity:
    """Tests for parse_identity()."""

    def test_simple_path(self):
        """Segments are split on '/' and kept verbatim."""
        identity = parse_identity("facility/zone-a/bin/BIN-001/sensor-data/fill-level")

        assert identity.depth == 6
        assert identity.segments[3] == "BIN-001"
        assert str(identity) == "facility/zone-a/bin/BIN-001/sensor-data/fill-level"

    def test_bytes_input(self):
        """UTF-8 bytes are accepted."""
        assert parse_identity("clinic/ward-3".encode()) == Identity(("clinic", "ward-3"))

    def test_unicode_segments(self):
        """Non-ASCII printable segments are valid."""
        assert parse_identity("site/Zürich").segments == ("site", "Zürich")

    def test_case_sensitive(self):
        """No normalization is applied."""
        assert parse_identity("a/B") != parse_identity("a/b")

    def test_no_percent_decoding(self):
        """Percent escapes stay literal."""
        assert parse_identity("a/b%2Fc").segments == ("a", "b%2Fc")

    @pytest.mark.parametrize(
        "raw",
        ["", "/a", "a/", "a//b", "a/*", "a/b*c", "a/\x00", "a/\n"],
    )
    def test_malformed(self, raw):
        """Empty paths, stray separators, wildcards and control characters are rejected."""
        with pytest.raises(MalformedError):
            parse_identity(raw)

    def test_invalid_utf8(self):
        """Bytes that are not UTF-8 are malformed."""
        with pytest.raises(MalformedError) as exc_info:
            parse_identity(b"a/\xff")
        assert exc_info.value.reason == "encoding"

    def test_depth_limit(self):
        """Identities deeper than max_depth are malformed."""
        parse_identity("/".join("abcdefgh"))

        with pytest.raises(MalformedError) as exc_info:
            parse_identity("/".join("abcdefghi"))
        assert exc_info.value.reason == "too_deep"

    def test_custom_depth_limit(self):
        assert parse_identity("/".join("abcdefghi"), max_depth=9).depth == 9

    def test_non_string(self):
        with pytest.raises(MalformedError):
            parse_identity(42)  # type: ignore[arg-type]


class TestParsePattern:
    """Tests for parse_pattern()."""

    def test_wildcards(self):
        """'*' and '**' become wildcard segments."""
        pattern = parse_pattern("facility/zone-a/bin/*/sensor-data/**")

        assert pattern.depth == 6
        assert pattern.segments[3] is SINGLE or pattern.segments[3] == SINGLE
        assert pattern.segments[-1] == MULTI
        assert pattern.open_ended
        assert len(pattern.fixed) == 5

    def test_literal_pattern(self):
        """A pattern without wildcards is concrete."""
        pattern = parse_pattern("a/b/c")

        assert pattern.is_concrete
        assert not pattern.open_ended
        assert pattern.literal_prefix == ("a", "b", "c")

    def test_literal_prefix_stops_at_wildcard(self):
        assert parse_pattern("a/*/c/**").literal_prefix == ("a",)

    def test_double_star_alone(self):
        pattern = parse_pattern("**")
        assert pattern.open_ended
        assert pattern.fixed == ()

    def test_round_trip_text(self):
        assert str(parse_pattern("a/*/b/**")) == "a/*/b/**"

    @pytest.mark.parametrize("raw", ["a/**/b", "**/a", "a/***", "a/b*", "a/*b", "", "a//*"])
    def test_malformed(self, raw):
        """'**' not last and mixed wildcard segments are rejected."""
        with pytest.raises(MalformedError):
            parse_pattern(raw)

    def test_non_terminal_multi_reason(self):
        with pytest.raises(MalformedError) as exc_info:
            parse_pattern("a/**/b")
        assert exc_info.value.reason == "non_terminal_multi_wildcard"

    def test_depth_limit(self):
        """Patterns deeper than max_depth would match nothing and are rejected."""
        with pytest.raises(MalformedError):
            parse_pattern("/".join(["*"] * 9))


class TestPatternConstruction:
    """Direct construction of Pattern and PatternSegment."""

    def test_empty_pattern(self):
        with pytest.raises(MalformedError):
            Pattern(())

    def test_multi_must_be_last(self):
        with pytest.raises(MalformedError):
            Pattern((MULTI, PatternSegment.literal("a")))

    def test_literal_requires_value(self):
        with pytest.raises(MalformedError):
            PatternSegment(SegmentKind.LITERAL)

    def test_wildcard_rejects_value(self):
        with pytest.raises(MalformedError):
            PatternSegment(SegmentKind.SINGLE, "x")

    def test_check_depth(self):
        pattern = parse_pattern("a/b/c")
        pattern.check_depth(3)
        with pytest.raises(MalformedError):
            pattern.check_depth(2)


class TestHelpers:
    """Tests for as_pattern(), as_identity() and canonical_bytes()."""

    def test_as_pattern_passthrough(self):
        pattern = parse_pattern("a/**")
        assert as_pattern(pattern) is pattern

    def test_as_pattern_enforces_depth(self):
        with pytest.raises(MalformedError):
            as_pattern(parse_pattern("a/b/c"), max_depth=2)

    def test_as_identity_parses(self):
        assert as_identity("a/b") == Identity(("a", "b"))

    def test_as_identity_enforces_depth(self):
        with pytest.raises(MalformedError):
            as_identity(Identity(("a", "b", "c")), max_depth=2)

    def test_canonical_bytes(self):
        """Canonical form is the UTF-8 of the '/'-joined segments."""
        assert canonical_bytes(parse_pattern("a/*/**")) == b"a/*/**"
        assert parse_pattern("a/b").to_bytes() == b"a/b"
        assert parse_identity("a/b").to_bytes() == b"a/b"

    def test_too_long(self):
        """Encodings over 65535 bytes are malformed."""
        with pytest.raises(MalformedError):
            parse_pattern("a" * 70000)
