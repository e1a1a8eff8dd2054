# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Timestamp helpers.

All engine timestamps are timezone-aware UTC datetimes truncated to whole
milliseconds, matching the unix-millisecond encoding used on the wire.
Naive datetimes are assumed to be UTC.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from .exceptions import MalformedError

Clock = Callable[[], datetime]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_DURATION_RE = re.compile(r"^\s*(\d+)\s*(ms|s|m|h|d|w)\s*$")
_DURATION_UNITS = {
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}


def utcnow() -> datetime:
    """Current time, UTC, millisecond precision."""
    return normalize(datetime.now(timezone.utc))


def ensure_aware(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize(value: datetime) -> datetime:
    """Convert to UTC and drop sub-millisecond precision."""
    value = ensure_aware(value)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def to_millis(value: datetime) -> int:
    """Unix timestamp in whole milliseconds."""
    delta = ensure_aware(value) - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


def from_millis(millis: int) -> datetime:
    """Inverse of ``to_millis``.

    Raises:
        MalformedError: If the value lies outside the datetime range.
    """
    try:
        return _EPOCH + timedelta(milliseconds=millis)
    except (OverflowError, ValueError) as e:
        raise MalformedError(f"Timestamp out of range: {millis}", reason="timestamp") from e


def parse_duration(text: str) -> timedelta:
    """Parse a relative duration like ``30m``, ``1h`` or ``7d``.

    Raises:
        ValueError: If the text is not a recognised duration.
    """
    match = _DURATION_RE.match(text)
    if not match:
        raise ValueError(f"Invalid duration: {text!r}")
    amount, unit = match.groups()
    return int(amount) * _DURATION_UNITS[unit]


def parse_timestamp(text: str, now: datetime | None = None) -> datetime:
    """Parse an ISO-8601 timestamp or a duration relative to ``now``.

    Raises:
        ValueError: If the text is neither.
    """
    try:
        return normalize((now or utcnow()) + parse_duration(text))
    except ValueError:
        pass
    return normalize(datetime.fromisoformat(text.strip()))
