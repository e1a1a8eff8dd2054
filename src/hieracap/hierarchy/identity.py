# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Hierarchical identities and wildcard patterns.

An identity names one protected object, e.g.
``facility/zone-a/bin/BIN-001/sensor-data/fill-level``. A pattern is an
identity in which segments may be replaced by wildcards:

- ``*`` matches exactly one segment
- ``**`` matches one or more trailing segments and may only appear last

Identities are canonical as given: case-sensitive, no percent-decoding,
no normalization. Two identities are equal iff their segments are equal.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from ..core.exceptions import MalformedError

DEFAULT_MAX_DEPTH = 8
SEPARATOR = "/"
SINGLE_WILDCARD = "*"
MULTI_WILDCARD = "**"

# pattern_len is a 2-byte field in the capability encoding
MAX_ENCODED_LENGTH = 0xFFFF


class SegmentKind(IntEnum):
    """Kind of a pattern segment."""

    LITERAL = 0
    SINGLE = 1  # *
    MULTI = 2  # **


@dataclass(frozen=True, slots=True)
class PatternSegment:
    """One position of a pattern."""

    kind: SegmentKind
    value: str | None = None

    def __post_init__(self) -> None:
        if self.kind == SegmentKind.LITERAL:
            if self.value is None:
                raise MalformedError("Literal segment requires a value")
            validate_segment(self.value)
        elif self.value is not None:
            raise MalformedError("Wildcard segments carry no value", value=self.value)

    @classmethod
    def literal(cls, value: str) -> PatternSegment:
        return cls(SegmentKind.LITERAL, value)

    @property
    def is_wildcard(self) -> bool:
        return self.kind != SegmentKind.LITERAL

    def __str__(self) -> str:
        if self.kind == SegmentKind.SINGLE:
            return SINGLE_WILDCARD
        if self.kind == SegmentKind.MULTI:
            return MULTI_WILDCARD
        return self.value or ""


SINGLE = PatternSegment(SegmentKind.SINGLE)
MULTI = PatternSegment(SegmentKind.MULTI)


@dataclass(frozen=True, slots=True)
class Identity:
    """A concrete hierarchical path."""

    segments: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.segments:
            raise MalformedError("Identity must have at least one segment")
        for segment in self.segments:
            validate_segment(segment)

    @property
    def depth(self) -> int:
        return len(self.segments)

    def to_bytes(self) -> bytes:
        return str(self).encode("utf-8")

    def __str__(self) -> str:
        return SEPARATOR.join(self.segments)


@dataclass(frozen=True, slots=True)
class Pattern:
    """A hierarchical path whose segments may be wildcards.

    Construction enforces that the pattern is non-empty and that ``**``
    only appears as the final segment. Depth limits are configuration
    dependent and are enforced by ``parse_pattern`` and ``check_depth``.
    """

    segments: tuple[PatternSegment, ...]

    def __post_init__(self) -> None:
        if not self.segments:
            raise MalformedError("Pattern must have at least one segment")
        for segment in self.segments[:-1]:
            if segment.kind == SegmentKind.MULTI:
                raise MalformedError(
                    "'**' may only appear as the last pattern segment",
                    value=str(self),
                    reason="non_terminal_multi_wildcard",
                )

    @property
    def depth(self) -> int:
        return len(self.segments)

    @property
    def open_ended(self) -> bool:
        """True when the pattern ends in ``**``."""
        return self.segments[-1].kind == SegmentKind.MULTI

    @property
    def fixed(self) -> tuple[PatternSegment, ...]:
        """Segments before a terminal ``**`` (all segments otherwise)."""
        return self.segments[:-1] if self.open_ended else self.segments

    @property
    def literal_prefix(self) -> tuple[str, ...]:
        """Leading literal segments up to the first wildcard."""
        prefix: list[str] = []
        for segment in self.segments:
            if segment.is_wildcard:
                break
            prefix.append(segment.value)  # type: ignore[arg-type]
        return tuple(prefix)

    @property
    def is_concrete(self) -> bool:
        """True when the pattern contains no wildcards."""
        return not any(s.is_wildcard for s in self.segments)

    def check_depth(self, max_depth: int) -> None:
        """Raise MalformedError if the pattern is deeper than ``max_depth``."""
        if self.depth > max_depth:
            raise MalformedError(
                f"Pattern depth {self.depth} exceeds maximum {max_depth}",
                value=str(self),
                reason="too_deep",
            )

    def to_bytes(self) -> bytes:
        return canonical_bytes(self)

    def __str__(self) -> str:
        return SEPARATOR.join(str(s) for s in self.segments)


def validate_segment(segment: str) -> None:
    """Check one segment against the identity alphabet.

    Segments are non-empty, printable, and contain neither the separator
    nor the wildcard character.

    Raises:
        MalformedError: If the segment is not acceptable.
    """
    if not isinstance(segment, str):
        raise MalformedError("Segment must be a string", value=segment)
    if not segment:
        raise MalformedError("Empty segment", reason="empty_segment")
    if SEPARATOR in segment:
        raise MalformedError("Segment contains '/'", value=segment, reason="separator")
    if SINGLE_WILDCARD in segment:
        raise MalformedError("Segment contains '*'", value=segment, reason="wildcard_char")
    if not segment.isprintable():
        raise MalformedError("Segment is not printable", value=segment, reason="unprintable")


def _split(raw: bytes | str, what: str) -> list[str]:
    if isinstance(raw, bytes):
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedError(f"{what} is not valid UTF-8", value=raw, reason="encoding") from e
    elif isinstance(raw, str):
        text = raw
    else:
        raise MalformedError(f"{what} must be bytes or str", value=raw)

    if not text:
        raise MalformedError(f"Empty {what.lower()}", reason="empty")
    if len(text.encode("utf-8")) > MAX_ENCODED_LENGTH:
        raise MalformedError(f"{what} is too long", reason="too_long")
    if text.startswith(SEPARATOR) or text.endswith(SEPARATOR):
        raise MalformedError(
            f"{what} must not start or end with '/'", value=text, reason="separator"
        )
    return text.split(SEPARATOR)


def parse_identity(raw: bytes | str, max_depth: int = DEFAULT_MAX_DEPTH) -> Identity:
    """Parse an identity path.

    Raises:
        MalformedError: For empty paths, paths deeper than ``max_depth``,
            and empty or non-alphabet segments.
    """
    parts = _split(raw, "Identity")
    if len(parts) > max_depth:
        raise MalformedError(
            f"Identity depth {len(parts)} exceeds maximum {max_depth}",
            value=SEPARATOR.join(parts),
            reason="too_deep",
        )
    return Identity(tuple(parts))


def parse_pattern(raw: bytes | str, max_depth: int = DEFAULT_MAX_DEPTH) -> Pattern:
    """Parse a pattern.

    Besides the identity rules, rejects ``**`` anywhere but last, segments
    that mix ``*`` with other characters, and patterns deeper than
    ``max_depth`` (which could never match an identity).

    Raises:
        MalformedError: If the pattern is not acceptable.
    """
    parts = _split(raw, "Pattern")
    segments: list[PatternSegment] = []
    for part in parts:
        if part == SINGLE_WILDCARD:
            segments.append(SINGLE)
        elif part == MULTI_WILDCARD:
            segments.append(MULTI)
        else:
            segments.append(PatternSegment.literal(part))
    pattern = Pattern(tuple(segments))
    pattern.check_depth(max_depth)
    return pattern


def as_pattern(value: Pattern | bytes | str, max_depth: int = DEFAULT_MAX_DEPTH) -> Pattern:
    """Accept an already-parsed pattern or parse raw input."""
    if isinstance(value, Pattern):
        value.check_depth(max_depth)
        return value
    return parse_pattern(value, max_depth)


def as_identity(value: Identity | bytes | str, max_depth: int = DEFAULT_MAX_DEPTH) -> Identity:
    """Accept an already-parsed identity or parse raw input."""
    if isinstance(value, Identity):
        if value.depth > max_depth:
            raise MalformedError(
                f"Identity depth {value.depth} exceeds maximum {max_depth}",
                value=str(value),
                reason="too_deep",
            )
        return value
    return parse_identity(value, max_depth)


def canonical_bytes(pattern: Pattern) -> bytes:
    """Deterministic encoding of a pattern, used in fingerprints and cache keys.

    Segments cannot contain the separator, so joining is unambiguous.
    """
    return str(pattern).encode("utf-8")
