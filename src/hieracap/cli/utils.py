# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Utility functions for the hieracap CLI."""

from __future__ import annotations

import argparse
import logging
from datetime import datetime
from pathlib import Path

from ..access.authority import Authority
from ..access.capability import Capability
from ..access.engine import AccessEngine
from ..core.clock import parse_timestamp
from ..core.config import get_config
from ..core.exceptions import (
    ExpiredError,
    HieracapException,
    IncomparableError,
    KeyMismatchError,
    MalformedError,
    NotRefinementError,
    PolicyError,
    RevokedError,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_STRUCTURAL = 1
EXIT_DENY = 2
EXIT_POLICY = 3

_DENY_ERRORS = (ExpiredError, RevokedError, NotRefinementError, IncomparableError, KeyMismatchError)


def exit_code_for(error: HieracapException) -> int:
    """Map an engine error to a CLI exit code."""
    if isinstance(error, PolicyError):
        return EXIT_POLICY
    if isinstance(error, _DENY_ERRORS):
        return EXIT_DENY
    return EXIT_STRUCTURAL


def load_engine() -> AccessEngine:
    """Build an engine from ``HIERACAP_*`` settings.

    Each CLI invocation is a fresh process, so revocations always go to a
    log on disk: ``HIERACAP_REVOCATION_LOG`` if set, otherwise
    ``revocations.log`` under ``HIERACAP_STATE_DIR``.

    Raises:
        ConfigException: If ``HIERACAP_MASTER_SECRET`` is missing or invalid.
    """
    settings = get_config()
    authority = Authority.from_config(settings)
    log_path = settings.persistent_revocation_log
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logger.debug(f"Using revocation log {log_path}")
    settings = settings.model_copy(update={"revocation_log": str(log_path)})
    return AccessEngine.from_config(settings, authority=authority)


def read_capability(text: str) -> Capability:
    """Decode a capability given as hex or as ``@path`` to a hex or binary file.

    Raises:
        MalformedError: If the input does not decode to a valid capability.
    """
    max_depth = get_config().max_depth
    if not text.startswith("@"):
        return Capability.from_hex(text, max_depth)

    path = Path(text[1:])
    try:
        data = path.read_bytes()
    except OSError as e:
        raise MalformedError(f"Cannot read capability file {path}: {e.strerror}") from e
    try:
        return Capability.from_hex(data.decode("ascii"), max_depth)
    except (UnicodeDecodeError, MalformedError):
        return Capability.parse(data, max_depth)


def parse_time_arg(text: str, now: datetime | None = None) -> datetime:
    """Parse an ISO-8601 timestamp or relative duration (``30m``, ``1h``, ``7d``).

    Raises:
        MalformedError: If neither form parses.
    """
    try:
        return parse_timestamp(text, now)
    except ValueError as e:
        raise MalformedError(f"Invalid time {text!r}: expected ISO-8601 or a duration like 1h") from e


def output_format(args: argparse.Namespace) -> str:
    return "json" if getattr(args, "json", False) else "text"
