# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Hierarchical identities, patterns and the matching engine."""

from .identity import (
    DEFAULT_MAX_DEPTH,
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
from .matching import (
    CompiledPattern,
    PatternCache,
    Relation,
    compare,
    covers,
    refines,
    require_refinement,
)

__all__ = [
    "DEFAULT_MAX_DEPTH",
    "Identity",
    "Pattern",
    "PatternSegment",
    "SegmentKind",
    "as_identity",
    "as_pattern",
    "canonical_bytes",
    "parse_identity",
    "parse_pattern",
    "CompiledPattern",
    "PatternCache",
    "Relation",
    "compare",
    "covers",
    "refines",
    "require_refinement",
]
