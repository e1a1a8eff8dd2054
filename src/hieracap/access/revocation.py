# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Revocation registry.

Two kinds of entry:

- FINGERPRINT: revokes one capability and, through issuer chains, every
  capability delegated from it
- PATTERN: revokes every capability whose pattern refines the given
  pattern (``facility/zone-a/**`` revokes everything issued under zone-a)

Each entry takes effect at ``effective_at``; a capability is revoked at
time t iff some entry with ``effective_at <= t`` matches it. The revoked
set only grows: recording the same target again with an earlier
``effective_at`` replaces the entry, a later one is ignored.

Concurrency: one writer-preferring reader-writer lock guards the entry
maps. Access decisions take it shared; ``revoke`` and ``reap`` take it
exclusively, and the log append happens while it is held, so a decision
either sees a revocation or finished before it was durable.

Persistence (``RevocationLog``) is an append-only file of records::

    record_len(4) || kind(1) || effective_at(8, unix ms) || payload

``record_len`` counts the bytes after itself. The payload is the pattern
bytes for PATTERN entries and the 32-byte fingerprint, optionally followed
by the revoked capability's not_after (8 bytes), for FINGERPRINT entries.
Reason and revoked-by metadata are kept in memory and logged, not persisted.
"""

from __future__ import annotations

import logging
import os
import struct
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from pathlib import Path
from typing import Any

from ..core.cancellation import CancelScope, ensure_scope
from ..core.clock import Clock, from_millis, normalize, to_millis, utcnow
from ..core.exceptions import MalformedError
from ..core.metrics import EngineMetrics
from ..core.rwlock import ReadWriteLock
from ..hierarchy.identity import DEFAULT_MAX_DEPTH, Pattern, canonical_bytes, parse_pattern
from ..hierarchy.matching import refines
from .capability import FINGERPRINT_SIZE, Capability

logger = logging.getLogger(__name__)

_LEN = struct.Struct(">I")
_HEADER = struct.Struct(">Bq")
_MILLIS = struct.Struct(">q")


class RevocationKind(IntEnum):
    FINGERPRINT = 0
    PATTERN = 1


@dataclass(frozen=True)
class RevocationEntry:
    """One recorded revocation.

    Attributes:
        kind: FINGERPRINT or PATTERN
        target: 32-byte fingerprint or a Pattern
        effective_at: When the revocation takes effect
        capability_not_after: For entries created from a capability, its
            not_after; nothing it could affect outlives this
        reason: Free-form reason (not persisted)
        revoked_by: Who requested the revocation (not persisted)
    """

    kind: RevocationKind
    target: bytes | Pattern
    effective_at: datetime
    capability_not_after: datetime | None = None
    reason: str = ""
    revoked_by: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "effective_at", normalize(self.effective_at))
        if self.capability_not_after is not None:
            object.__setattr__(self, "capability_not_after", normalize(self.capability_not_after))
        if self.kind == RevocationKind.FINGERPRINT:
            if not isinstance(self.target, bytes) or len(self.target) != FINGERPRINT_SIZE:
                raise MalformedError("Fingerprint revocations need a 32-byte fingerprint")
        elif not isinstance(self.target, Pattern):
            raise MalformedError("Pattern revocations need a Pattern target")

    @property
    def key(self) -> bytes:
        """Identity of the target within its kind."""
        if isinstance(self.target, Pattern):
            return canonical_bytes(self.target)
        return self.target

    @property
    def target_text(self) -> str:
        if isinstance(self.target, Pattern):
            return str(self.target)
        return self.target.hex()

    def matches(self, capability: Capability) -> bool:
        """Whether this entry applies to ``capability`` (ignoring time)."""
        if isinstance(self.target, Pattern):
            return refines(capability.pattern, self.target)
        return self.target in capability.lineage()

    def payload(self) -> bytes:
        if isinstance(self.target, Pattern):
            return canonical_bytes(self.target)
        if self.capability_not_after is not None:
            return self.target + _MILLIS.pack(to_millis(self.capability_not_after))
        return self.target

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.name.lower(),
            "target": self.target_text,
            "effective_at": self.effective_at.isoformat(),
            "capability_not_after": (
                self.capability_not_after.isoformat() if self.capability_not_after else None
            ),
            "reason": self.reason,
            "revoked_by": self.revoked_by,
        }


# =============================================================================
# PERSISTENCE
# =============================================================================


def encode_record(entry: RevocationEntry) -> bytes:
    body = _HEADER.pack(int(entry.kind), to_millis(entry.effective_at)) + entry.payload()
    return _LEN.pack(len(body)) + body


def decode_record(body: bytes, max_depth: int = DEFAULT_MAX_DEPTH) -> RevocationEntry:
    """Decode one record body (the bytes after ``record_len``)."""
    if len(body) < _HEADER.size:
        raise MalformedError("Revocation record too short", reason="truncated")
    kind_value, effective_ms = _HEADER.unpack(body[: _HEADER.size])
    payload = body[_HEADER.size :]
    try:
        kind = RevocationKind(kind_value)
    except ValueError as e:
        raise MalformedError(f"Unknown revocation kind {kind_value}", reason="kind") from e

    if kind == RevocationKind.PATTERN:
        return RevocationEntry(kind, parse_pattern(payload, max_depth), from_millis(effective_ms))

    if len(payload) == FINGERPRINT_SIZE:
        return RevocationEntry(kind, payload, from_millis(effective_ms))
    if len(payload) == FINGERPRINT_SIZE + _MILLIS.size:
        not_after = from_millis(_MILLIS.unpack(payload[FINGERPRINT_SIZE:])[0])
        return RevocationEntry(kind, payload[:FINGERPRINT_SIZE], from_millis(effective_ms), not_after)
    raise MalformedError("Bad fingerprint revocation payload", reason="payload")


class RevocationLog:
    """Append-only, fsync'd revocation file."""

    def __init__(self, path: str | os.PathLike[str], max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self.path = Path(path)
        self.max_depth = max_depth

    def append(self, entry: RevocationEntry) -> None:
        record = encode_record(entry)
        with open(self.path, "ab") as f:
            f.write(record)
            f.flush()
            os.fsync(f.fileno())

    def replay(self) -> list[RevocationEntry]:
        """Read every complete record.

        A truncated trailing record (a crash mid-append) is dropped with a
        warning and cut from the file so later appends stay aligned.

        Raises:
            MalformedError: If a complete record cannot be decoded.
        """
        if not self.path.exists():
            return []
        data = self.path.read_bytes()
        entries: list[RevocationEntry] = []
        offset = 0
        while offset < len(data):
            if len(data) - offset < _LEN.size:
                break
            (length,) = _LEN.unpack_from(data, offset)
            end = offset + _LEN.size + length
            if end > len(data):
                break
            entries.append(decode_record(data[offset + _LEN.size : end], self.max_depth))
            offset = end

        if offset < len(data):
            logger.warning(
                f"Ignoring truncated trailing revocation record in {self.path} "
                f"({len(data) - offset} bytes)"
            )
            with open(self.path, "r+b") as f:
                f.truncate(offset)
                f.flush()
                os.fsync(f.fileno())
        return entries

    def rewrite(self, entries: list[RevocationEntry]) -> None:
        """Atomically replace the log with ``entries``."""
        directory = self.path.parent
        fd, tmp_path = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=directory)
        try:
            with os.fdopen(fd, "wb") as f:
                for entry in entries:
                    f.write(encode_record(entry))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


# =============================================================================
# REGISTRY
# =============================================================================


class RevocationRegistry:
    """Thread-safe set of revocation entries."""

    def __init__(
        self,
        log: RevocationLog | None = None,
        metrics: EngineMetrics | None = None,
        clock: Clock = utcnow,
        lock_timeout: float | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self._lock = ReadWriteLock()
        self._exact: dict[bytes, RevocationEntry] = {}
        self._patterns: dict[bytes, RevocationEntry] = {}
        self._log = log
        self.metrics = metrics if metrics is not None else EngineMetrics()
        self._clock = clock
        self.lock_timeout = lock_timeout
        self.max_depth = max_depth

        self._horizon_lock = threading.Lock()
        self._horizon: datetime | None = None

        if log is not None:
            replayed = log.replay()
            for entry in replayed:
                self._apply(entry)
            logger.info(f"Replayed {len(replayed)} revocation records from {log.path}")

    def _scope(self, scope: CancelScope | None) -> CancelScope:
        return ensure_scope(scope, self.lock_timeout)

    def _table(self, kind: RevocationKind) -> dict[bytes, RevocationEntry]:
        return self._patterns if kind == RevocationKind.PATTERN else self._exact

    def _apply(self, entry: RevocationEntry) -> RevocationEntry | None:
        """Insert ``entry`` unless an entry at least as early exists. Lock held."""
        table = self._table(entry.kind)
        existing = table.get(entry.key)
        if existing is not None and existing.effective_at <= entry.effective_at:
            return None
        table[entry.key] = entry
        return entry

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def revoke(
        self,
        target: Capability | Pattern | bytes | str,
        effective_at: datetime | None = None,
        *,
        reason: str = "",
        revoked_by: str = "",
        scope: CancelScope | None = None,
    ) -> RevocationEntry:
        """Revoke a capability, a fingerprint, or everything under a pattern.

        A 32-byte ``bytes`` target is a fingerprint; any other ``bytes`` or
        ``str`` target is parsed as a pattern.
        """
        if isinstance(target, Capability):
            return self.revoke_capability(
                target, effective_at, reason=reason, revoked_by=revoked_by, scope=scope
            )
        if isinstance(target, bytes) and len(target) == FINGERPRINT_SIZE:
            return self.revoke_fingerprint(
                target, effective_at, reason=reason, revoked_by=revoked_by, scope=scope
            )
        if not isinstance(target, Pattern):
            target = parse_pattern(target, self.max_depth)
        return self.revoke_pattern(
            target, effective_at, reason=reason, revoked_by=revoked_by, scope=scope
        )

    def revoke_fingerprint(
        self,
        fingerprint: bytes,
        effective_at: datetime | None = None,
        *,
        reason: str = "",
        revoked_by: str = "",
        scope: CancelScope | None = None,
    ) -> RevocationEntry:
        entry = RevocationEntry(
            RevocationKind.FINGERPRINT,
            fingerprint,
            self._effective(effective_at),
            reason=reason,
            revoked_by=revoked_by,
        )
        return self._record(entry, scope)

    def revoke_capability(
        self,
        capability: Capability,
        effective_at: datetime | None = None,
        *,
        reason: str = "",
        revoked_by: str = "",
        scope: CancelScope | None = None,
    ) -> RevocationEntry:
        """Revoke by fingerprint, remembering the capability's not_after for reaping."""
        entry = RevocationEntry(
            RevocationKind.FINGERPRINT,
            capability.fingerprint,
            self._effective(effective_at),
            capability_not_after=capability.not_after,
            reason=reason,
            revoked_by=revoked_by,
        )
        return self._record(entry, scope)

    def revoke_pattern(
        self,
        pattern: Pattern | str | bytes,
        effective_at: datetime | None = None,
        *,
        reason: str = "",
        revoked_by: str = "",
        scope: CancelScope | None = None,
    ) -> RevocationEntry:
        if not isinstance(pattern, Pattern):
            pattern = parse_pattern(pattern, self.max_depth)
        entry = RevocationEntry(
            RevocationKind.PATTERN,
            pattern,
            self._effective(effective_at),
            reason=reason,
            revoked_by=revoked_by,
        )
        return self._record(entry, scope)

    def _effective(self, effective_at: datetime | None) -> datetime:
        return normalize(effective_at) if effective_at is not None else self._clock()

    def _record(self, entry: RevocationEntry, scope: CancelScope | None) -> RevocationEntry:
        with self._lock.write_locked(self._scope(scope)):
            existing = self._table(entry.kind).get(entry.key)
            if existing is not None and existing.effective_at <= entry.effective_at:
                logger.debug(
                    f"Revocation of {entry.target_text} already effective at "
                    f"{existing.effective_at.isoformat()}"
                )
                return existing
            if self._log is not None:
                self._log.append(entry)
            self._apply(entry)

        self.metrics.increment("hieracap_revocations_total", kind=entry.kind.name.lower())
        logger.info(
            f"Revoked {entry.kind.name.lower()} {entry.target_text} "
            f"effective {entry.effective_at.isoformat()}"
            + (f" by {entry.revoked_by}" if entry.revoked_by else "")
            + (f": {entry.reason}" if entry.reason else "")
        )
        return entry

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def find_revocation(
        self,
        capability: Capability,
        at_time: datetime | None = None,
        scope: CancelScope | None = None,
    ) -> RevocationEntry | None:
        """The entry revoking ``capability`` at ``at_time``, if any."""
        at_time = self._effective(at_time)
        with self._lock.read_locked(self._scope(scope)):
            for fingerprint in capability.lineage():
                entry = self._exact.get(fingerprint)
                if entry is not None and entry.effective_at <= at_time:
                    return entry
            for entry in self._patterns.values():
                if entry.effective_at <= at_time and refines(capability.pattern, entry.target):  # type: ignore[arg-type]
                    return entry
        return None

    def is_revoked(
        self,
        capability: Capability,
        at_time: datetime | None = None,
        scope: CancelScope | None = None,
    ) -> bool:
        return self.find_revocation(capability, at_time, scope) is not None

    def entries(self, scope: CancelScope | None = None) -> list[RevocationEntry]:
        with self._lock.read_locked(self._scope(scope)):
            entries = list(self._exact.values()) + list(self._patterns.values())
        return sorted(entries, key=lambda e: e.effective_at)

    def active_entries(self, at: datetime | None = None, scope: CancelScope | None = None) -> list[RevocationEntry]:
        at = self._effective(at)
        return [e for e in self.entries(scope) if e.effective_at <= at]

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._exact) + len(self._patterns)

    # -------------------------------------------------------------------------
    # Garbage collection
    # -------------------------------------------------------------------------

    def note_issued(self, capability: Capability) -> None:
        """Extend the reap horizon to cover ``capability``."""
        with self._horizon_lock:
            if self._horizon is None or capability.not_after > self._horizon:
                self._horizon = capability.not_after

    @property
    def horizon(self) -> datetime | None:
        """Latest not_after of any capability noted as issued."""
        with self._horizon_lock:
            return self._horizon

    def reap(self, now: datetime | None = None, scope: CancelScope | None = None) -> int:
        """Remove entries that can no longer affect any live capability.

        An entry created from a capability is reaped once that capability
        has expired. Other entries are reaped once every capability noted
        via ``note_issued`` has expired; with no horizon known nothing is
        reaped. Returns the number of entries removed.
        """
        now = self._effective(now)
        horizon = self.horizon

        def dead(entry: RevocationEntry) -> bool:
            limit = entry.capability_not_after or horizon
            return limit is not None and limit < now

        with self._lock.write_locked(self._scope(scope)):
            doomed = [e for e in list(self._exact.values()) + list(self._patterns.values()) if dead(e)]
            if not doomed:
                return 0
            for entry in doomed:
                self._table(entry.kind).pop(entry.key, None)
            if self._log is not None:
                survivors = sorted(
                    list(self._exact.values()) + list(self._patterns.values()),
                    key=lambda e: e.effective_at,
                )
                self._log.rewrite(survivors)

        self.metrics.increment("hieracap_reaped_total", len(doomed))
        logger.info(f"Reaped {len(doomed)} revocation entries")
        return len(doomed)

    def stats(self) -> dict[str, Any]:
        with self._lock.read_locked():
            exact = len(self._exact)
            patterns = len(self._patterns)
        horizon = self.horizon
        return {
            "fingerprint_entries": exact,
            "pattern_entries": patterns,
            "total_entries": exact + patterns,
            "horizon": horizon.isoformat() if horizon else None,
            "persistent": self._log is not None,
            "log_path": str(self._log.path) if self._log is not None else None,
            "lock": self._lock.stats(),
        }
