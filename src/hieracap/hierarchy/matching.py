# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Pattern matching and refinement.

Two relations:

- ``covers(P, I)``: pattern P matches identity I, segment by segment from
  the left. A literal must equal the identity segment, ``*`` matches any
  one segment, and a terminal ``**`` matches one or more remaining
  segments. Without ``**`` the depths must be equal.
- ``refines(Q, P)``: every identity matched by Q is matched by P. This is
  what delegation narrowing is checked against.

Because ``**`` can only be terminal, every pattern has exactly one
structural reading (its fixed prefix plus an optional open tail), so
refinement is decided by comparing fixed prefixes position by position;
no search over alternative ``**`` alignments is needed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..core.exceptions import IncomparableError, NotRefinementError
from ..core.lru_cache import LRUDict
from .identity import Identity, Pattern, PatternSegment, SegmentKind, canonical_bytes

logger = logging.getLogger(__name__)

DEFAULT_PATTERN_CACHE_SIZE = 4096


class Relation(Enum):
    """Outcome of comparing two patterns."""

    EQUAL = "equal"
    NARROWER = "narrower"  # left refines right
    WIDER = "wider"  # right refines left


def segment_matches(segment: PatternSegment, value: str) -> bool:
    """Whether a single (non-``**``) pattern segment accepts ``value``."""
    if segment.kind == SegmentKind.LITERAL:
        return segment.value == value
    return True


def segment_refines(child: PatternSegment, parent: PatternSegment) -> bool:
    """Whether ``child`` accepts a subset of what ``parent`` accepts at one position.

    A literal refines the same literal and ``*``; ``*`` refines only ``*``.
    """
    if parent.kind == SegmentKind.LITERAL:
        return child.kind == SegmentKind.LITERAL and child.value == parent.value
    if parent.kind == SegmentKind.SINGLE:
        return child.kind in (SegmentKind.LITERAL, SegmentKind.SINGLE)
    return True


def covers(pattern: Pattern, identity: Identity) -> bool:
    """Decide whether ``pattern`` matches ``identity``."""
    fixed = pattern.fixed
    if pattern.open_ended:
        if identity.depth < len(fixed) + 1:
            return False
    elif identity.depth != len(fixed):
        return False
    return all(segment_matches(s, v) for s, v in zip(fixed, identity.segments))


def refines(child: Pattern, parent: Pattern) -> bool:
    """Decide whether every identity matched by ``child`` is matched by ``parent``.

    Rules, with ``m``/``n`` the fixed-prefix lengths of child/parent:

    - closed parent: child must be closed, ``m == n``, and each child
      segment must refine the parent segment at the same position
    - open parent (``**`` at position n): a closed child needs ``m > n``,
      an open child needs ``m >= n`` (its ``**`` sits at or right of the
      parent's); in both cases the first n child segments must refine the
      parent's, and anything past position n is absorbed by the parent's
      ``**``
    """
    c_fixed, p_fixed = child.fixed, parent.fixed
    m, n = len(c_fixed), len(p_fixed)

    if not parent.open_ended:
        if child.open_ended or m != n:
            return False
    elif child.open_ended:
        if m < n:
            return False
    elif m <= n:
        return False

    return all(segment_refines(c, p) for c, p in zip(c_fixed[:n], p_fixed))


def compare(left: Pattern, right: Pattern) -> Relation:
    """Classify the refinement relation between two patterns.

    Raises:
        IncomparableError: If neither pattern refines the other.
    """
    narrower = refines(left, right)
    wider = refines(right, left)
    if narrower and wider:
        return Relation.EQUAL
    if narrower:
        return Relation.NARROWER
    if wider:
        return Relation.WIDER
    raise IncomparableError(str(left), str(right))


def require_refinement(child: Pattern, parent: Pattern) -> None:
    """Raise NotRefinementError unless ``child`` refines ``parent``."""
    if not refines(child, parent):
        raise NotRefinementError(str(child), str(parent))


# =============================================================================
# COMPILED PATTERNS
# =============================================================================


@dataclass(frozen=True, slots=True)
class CompiledPattern:
    """Flat, allocation-free form of a pattern for the decision hot path.

    ``literals`` holds the literal text per fixed position, or None where
    the position is ``*``.
    """

    literals: tuple[str | None, ...]
    open_ended: bool

    @classmethod
    def from_pattern(cls, pattern: Pattern) -> CompiledPattern:
        return cls(
            literals=tuple(
                s.value if s.kind == SegmentKind.LITERAL else None for s in pattern.fixed
            ),
            open_ended=pattern.open_ended,
        )

    def matches(self, identity: Identity) -> bool:
        segments = identity.segments
        width = len(self.literals)
        if self.open_ended:
            if len(segments) <= width:
                return False
        elif len(segments) != width:
            return False
        for i in range(width):
            literal = self.literals[i]
            if literal is not None and literal != segments[i]:
                return False
        return True


class PatternCache:
    """LRU cache of compiled patterns keyed by canonical pattern bytes.

    Thread-safe. Consulted by the access decision point on every request.
    """

    def __init__(self, max_size: int = DEFAULT_PATTERN_CACHE_SIZE) -> None:
        self._cache: LRUDict[bytes, CompiledPattern] = LRUDict(max_size=max_size)

    def compile(self, pattern: Pattern) -> CompiledPattern:
        """Return the compiled form of ``pattern``, compiling on a miss."""
        key = canonical_bytes(pattern)
        compiled = self._cache.lookup(key)
        if compiled is None:
            # Two threads may compile the same pattern concurrently; the
            # results are equal so the second store is harmless.
            compiled = CompiledPattern.from_pattern(pattern)
            self._cache[key] = compiled
        return compiled

    def covers(self, pattern: Pattern, identity: Identity) -> bool:
        """Structural match through the cache."""
        return self.compile(pattern).matches(identity)

    def warm(self, patterns: list[Pattern]) -> int:
        """Precompile hot patterns. Returns how many were newly compiled."""
        added = 0
        for pattern in patterns:
            key = canonical_bytes(pattern)
            if self._cache.get(key) is None:
                self._cache[key] = CompiledPattern.from_pattern(pattern)
                added += 1
        if added:
            logger.debug(f"Precompiled {added} patterns")
        return added

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

    def stats(self) -> dict[str, Any]:
        return self._cache.stats()
