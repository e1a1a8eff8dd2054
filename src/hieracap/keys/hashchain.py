# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Default key primitive: a keyed HMAC-SHA256 chain over pattern segments.

NOT CRYPTOGRAPHIC ACCESS CONTROL. Anyone holding the anchor can compute
material for any pattern. The chain only binds material to its pattern so
that tampering with either is detected; the authority keeps the anchor
inside its trust boundary.

Construction::

    anchor   = HKDF-SHA256(master_secret, info="hieracap-hashchain-anchor")
    state_0  = anchor
    digest_i = HMAC-SHA256(state_i, tag_i || i || segment_i)
    state_i+1 = digest_i
    material = digest_0 || digest_1 || ... || digest_(depth-1)

where ``tag_i`` is 0x00 for a literal (followed by its UTF-8 bytes), 0x01
for ``*`` and 0x02 for ``**``. Because each digest depends only on the
prefix before it, a child pattern sharing a prefix with its parent shares
those digests, and ``narrow`` only computes the tail.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import struct

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..core.exceptions import KeyMismatchError
from ..hierarchy.identity import Identity, Pattern, PatternSegment, SegmentKind
from ..hierarchy.matching import require_refinement
from .primitive import KeyPrimitive

logger = logging.getLogger(__name__)

DIGEST_SIZE = 32
KDF_INFO_ANCHOR = b"hieracap-hashchain-anchor"

TAG_LITERAL = b"\x00"
TAG_SINGLE = b"\x01"
TAG_MULTI = b"\x02"

_TAGS = {
    SegmentKind.LITERAL: TAG_LITERAL,
    SegmentKind.SINGLE: TAG_SINGLE,
    SegmentKind.MULTI: TAG_MULTI,
}


def derive_anchor(master_secret: bytes) -> bytes:
    """Derive the chain anchor from the authority's master secret."""
    return HKDF(
        algorithm=hashes.SHA256(),
        length=DIGEST_SIZE,
        salt=None,
        info=KDF_INFO_ANCHOR,
    ).derive(master_secret)


def _step(state: bytes, index: int, segment: PatternSegment) -> bytes:
    message = _TAGS[segment.kind] + struct.pack(">B", index)
    if segment.kind == SegmentKind.LITERAL:
        message += segment.value.encode("utf-8")  # type: ignore[union-attr]
    return hmac.new(state, message, hashlib.sha256).digest()


def _chain(anchor: bytes, segments: tuple[PatternSegment, ...], start: int = 0) -> list[bytes]:
    """Chain digests for ``segments`` beginning at position ``start``.

    ``anchor`` is the state entering position ``start``.
    """
    digests: list[bytes] = []
    state = anchor
    for offset, segment in enumerate(segments):
        state = _step(state, start + offset, segment)
        digests.append(state)
    return digests


class HashChainPrimitive(KeyPrimitive):
    """HMAC chain keyed by an anchor derived from the master secret.

    Example:
        primitive = HashChainPrimitive.from_master_secret(secret)
        material = primitive.derive_root(secret, parse_pattern("a/**"))
        child = primitive.narrow(material, parse_pattern("a/**"), parse_pattern("a/b"))
    """

    name = "hmac-sha256-chain/v1"

    def __init__(self, anchor: bytes) -> None:
        if len(anchor) != DIGEST_SIZE:
            raise ValueError(f"Anchor must be {DIGEST_SIZE} bytes")
        self.__anchor = anchor

    @classmethod
    def from_master_secret(cls, master_secret: bytes) -> HashChainPrimitive:
        return cls(derive_anchor(master_secret))

    def __repr__(self) -> str:
        return f"HashChainPrimitive(name={self.name!r}, anchor=<redacted>)"

    def material_for(self, pattern: Pattern) -> bytes:
        """Full chain for ``pattern`` under this primitive's anchor."""
        return b"".join(_chain(self.__anchor, pattern.segments))

    def derive_root(self, master_secret: bytes, root_pattern: Pattern) -> bytes:
        return b"".join(_chain(derive_anchor(master_secret), root_pattern.segments))

    def narrow(self, parent_material: bytes, parent_pattern: Pattern, child_pattern: Pattern) -> bytes:
        if not hmac.compare_digest(parent_material, self.material_for(parent_pattern)):
            raise KeyMismatchError(
                "Parent material is not genuine for its pattern",
                {"pattern": str(parent_pattern)},
            )
        require_refinement(child_pattern, parent_pattern)

        # Digests for the shared prefix carry over unchanged.
        shared = 0
        for parent_seg, child_seg in zip(parent_pattern.segments, child_pattern.segments):
            if parent_seg != child_seg:
                break
            shared += 1

        prefix = parent_material[: shared * DIGEST_SIZE]
        state = prefix[-DIGEST_SIZE:] if shared else self.__anchor
        tail = _chain(state, child_pattern.segments[shared:], start=shared)
        logger.debug(
            f"Narrowed {parent_pattern} -> {child_pattern} "
            f"(reused {shared}, computed {len(tail)} steps)"
        )
        return prefix + b"".join(tail)

    def covers(self, material: bytes, pattern: Pattern, identity: Identity) -> bool:
        if not hmac.compare_digest(material, self.material_for(pattern)):
            return False

        segments = identity.segments
        for index, segment in enumerate(pattern.segments):
            if segment.kind == SegmentKind.MULTI:
                # Terminal; must absorb at least one remaining segment.
                return len(segments) > index
            if index >= len(segments):
                return False
            if segment.kind == SegmentKind.LITERAL and segment.value != segments[index]:
                return False
        return len(segments) == len(pattern.segments)
