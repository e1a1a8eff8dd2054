# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Capability records and their byte encoding.

A capability grants access to every identity its pattern covers during
its validity window. Capabilities are immutable; the fingerprint is
computed from the non-secret fields on construction.

Wire format (all integers big-endian)::

    version(1) || pattern_len(2) || pattern || not_before(8, unix ms)
    || not_after(8) || chain_len(1) || chain(32 each)
    || material_len(2) || material || fingerprint(32)

The fingerprint is SHA-256 over every field before it except the two
material fields, so it names the capability without depending on secret
key bytes. Parsers reject unknown versions, truncation, trailing bytes
and fingerprint mismatches.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..core.clock import from_millis, normalize, to_millis
from ..core.exceptions import CapacityError, MalformedError
from ..hierarchy.identity import DEFAULT_MAX_DEPTH, Pattern, canonical_bytes, parse_pattern

FORMAT_VERSION = 1
FINGERPRINT_SIZE = 32
MAX_CHAIN_LENGTH = 255
MAX_MATERIAL_LENGTH = 0xFFFF

_U8 = struct.Struct(">B")
_U16 = struct.Struct(">H")
_I64 = struct.Struct(">q")


@dataclass(frozen=True)
class Capability:
    """An issued capability.

    Attributes:
        pattern: Authorization surface; every covered identity is granted
        not_before: Start of the validity window (inclusive, UTC, ms precision)
        not_after: End of the validity window (inclusive)
        issuer_chain: Fingerprints of the ancestors, root first, parent last
        material: Opaque key bytes from the key primitive
        fingerprint: SHA-256 digest over the non-secret fields (derived)
    """

    pattern: Pattern
    not_before: datetime
    not_after: datetime
    issuer_chain: tuple[bytes, ...] = ()
    material: bytes = field(default=b"", repr=False)
    fingerprint: bytes = field(init=False, default=b"")

    def __post_init__(self) -> None:
        object.__setattr__(self, "not_before", normalize(self.not_before))
        object.__setattr__(self, "not_after", normalize(self.not_after))
        object.__setattr__(self, "issuer_chain", tuple(self.issuer_chain))

        if self.not_after <= self.not_before:
            raise MalformedError(
                "Capability validity window is empty or inverted",
                reason="window",
            )
        if len(self.issuer_chain) > MAX_CHAIN_LENGTH:
            raise CapacityError(
                f"Issuer chain longer than {MAX_CHAIN_LENGTH} entries",
                limit=MAX_CHAIN_LENGTH,
            )
        for entry in self.issuer_chain:
            if len(entry) != FINGERPRINT_SIZE:
                raise MalformedError("Issuer chain entries must be 32 bytes", reason="chain")
        if len(self.material) > MAX_MATERIAL_LENGTH:
            raise MalformedError("Key material too long", reason="material")

        object.__setattr__(self, "fingerprint", hashlib.sha256(self._signed_fields()).digest())

    # -------------------------------------------------------------------------
    # Derived properties
    # -------------------------------------------------------------------------

    @property
    def parent_fingerprint(self) -> bytes | None:
        return self.issuer_chain[-1] if self.issuer_chain else None

    @property
    def is_root(self) -> bool:
        return not self.issuer_chain

    @property
    def fingerprint_hex(self) -> str:
        return self.fingerprint.hex()

    @property
    def short_id(self) -> str:
        """First 12 hex characters of the fingerprint, for logs."""
        return self.fingerprint.hex()[:12]

    def lineage(self) -> tuple[bytes, ...]:
        """Issuer chain followed by this capability's own fingerprint."""
        return self.issuer_chain + (self.fingerprint,)

    def is_valid_at(self, now: datetime) -> bool:
        """Whether ``now`` lies inside the validity window."""
        now = normalize(now)
        return self.not_before <= now <= self.not_after

    # -------------------------------------------------------------------------
    # Encoding
    # -------------------------------------------------------------------------

    def _signed_fields(self) -> bytes:
        pattern_bytes = canonical_bytes(self.pattern)
        return b"".join(
            [
                _U8.pack(FORMAT_VERSION),
                _U16.pack(len(pattern_bytes)),
                pattern_bytes,
                _I64.pack(to_millis(self.not_before)),
                _I64.pack(to_millis(self.not_after)),
                _U8.pack(len(self.issuer_chain)),
                *self.issuer_chain,
            ]
        )

    def serialize(self) -> bytes:
        """Deterministic byte encoding."""
        return b"".join(
            [
                self._signed_fields(),
                _U16.pack(len(self.material)),
                self.material,
                self.fingerprint,
            ]
        )

    def hex(self) -> str:
        return self.serialize().hex()

    @classmethod
    def parse(cls, data: bytes, max_depth: int = DEFAULT_MAX_DEPTH) -> Capability:
        """Decode a serialized capability.

        Raises:
            MalformedError: For unknown versions, truncated or trailing
                data, malformed patterns, and fingerprint mismatches.
        """
        reader = _Reader(data)
        version = reader.unpack(_U8)
        if version != FORMAT_VERSION:
            raise MalformedError(f"Unknown capability version {version}", reason="version")

        pattern_len = reader.unpack(_U16)
        pattern = parse_pattern(reader.take(pattern_len), max_depth)
        not_before = from_millis(reader.unpack(_I64))
        not_after = from_millis(reader.unpack(_I64))
        chain_len = reader.unpack(_U8)
        chain = tuple(reader.take(FINGERPRINT_SIZE) for _ in range(chain_len))
        material_len = reader.unpack(_U16)
        material = reader.take(material_len)
        fingerprint = reader.take(FINGERPRINT_SIZE)
        if reader.remaining:
            raise MalformedError(
                f"{reader.remaining} trailing bytes after capability", reason="trailing"
            )

        capability = cls(
            pattern=pattern,
            not_before=not_before,
            not_after=not_after,
            issuer_chain=chain,
            material=material,
        )
        if capability.fingerprint != fingerprint:
            raise MalformedError("Capability fingerprint mismatch", reason="fingerprint")
        return capability

    @classmethod
    def from_hex(cls, text: str, max_depth: int = DEFAULT_MAX_DEPTH) -> Capability:
        try:
            data = bytes.fromhex(text.strip())
        except ValueError as e:
            raise MalformedError("Capability is not valid hex", reason="encoding") from e
        return cls.parse(data, max_depth)

    def to_dict(self) -> dict[str, Any]:
        """Inspection view. Material is summarized, never included."""
        return {
            "fingerprint": self.fingerprint.hex(),
            "pattern": str(self.pattern),
            "not_before": self.not_before.isoformat(),
            "not_after": self.not_after.isoformat(),
            "issuer_chain": [fp.hex() for fp in self.issuer_chain],
            "parent_fingerprint": self.parent_fingerprint.hex() if self.parent_fingerprint else None,
            "material_length": len(self.material),
        }


class _Reader:
    """Bounds-checked cursor over a byte string."""

    def __init__(self, data: bytes) -> None:
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise MalformedError("Capability must be bytes", value=data)
        self._data = bytes(data)
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def take(self, size: int) -> bytes:
        if size > self.remaining:
            raise MalformedError("Truncated capability", reason="truncated")
        chunk = self._data[self._pos : self._pos + size]
        self._pos += size
        return chunk

    def unpack(self, fmt: struct.Struct) -> int:
        return fmt.unpack(self.take(fmt.size))[0]
