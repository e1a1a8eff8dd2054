# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Revocation commands: revoke, revocations."""

from __future__ import annotations

import argparse
import logging
import re

from ...access.capability import FINGERPRINT_SIZE
from ...core.clock import utcnow
from ...core.config import get_config
from ...core.exceptions import MalformedError
from ...hierarchy.identity import Pattern, parse_pattern
from ..output import output_result
from ..utils import EXIT_OK, load_engine, output_format, parse_time_arg

logger = logging.getLogger(__name__)

_FINGERPRINT_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the revocation commands on the CLI parser."""
    revoke_parser = subparsers.add_parser("revoke", help="Revoke a fingerprint or a pattern")
    revoke_parser.add_argument(
        "target",
        help="64-hex-digit fingerprint or pattern (a 64-hex target is a fingerprint unless --pattern)",
    )
    kind = revoke_parser.add_mutually_exclusive_group()
    kind.add_argument("--fingerprint", action="store_true", help="Treat target as a fingerprint")
    kind.add_argument("--pattern", action="store_true", help="Treat target as a pattern")
    revoke_parser.add_argument("--effective-at", help="When the revocation takes effect (default: now)")
    revoke_parser.add_argument("--reason", default="", help="Reason for revocation")
    revoke_parser.add_argument("--by", default="", dest="revoked_by", help="Who is revoking")
    revoke_parser.set_defaults(func=cmd_revoke)

    list_parser = subparsers.add_parser("revocations", help="List revocation entries")
    list_parser.add_argument("--active", action="store_true", help="Only entries already in effect")
    list_parser.add_argument("--reap", action="store_true", help="Reap stale entries first")
    list_parser.set_defaults(func=cmd_revocations)


def _parse_fingerprint(text: str) -> bytes:
    try:
        fingerprint = bytes.fromhex(text)
    except ValueError as e:
        raise MalformedError("Fingerprint is not valid hex", value=text) from e
    if len(fingerprint) != FINGERPRINT_SIZE:
        raise MalformedError("Fingerprint must be 32 bytes", value=text)
    return fingerprint


def cmd_revoke(args: argparse.Namespace) -> int:
    """Record a revocation."""
    now = utcnow()
    effective_at = parse_time_arg(args.effective_at, now) if args.effective_at else now

    target: bytes | Pattern
    if args.fingerprint or (not args.pattern and _FINGERPRINT_RE.match(args.target)):
        target = _parse_fingerprint(args.target)
    else:
        target = parse_pattern(args.target, get_config().max_depth)

    engine = load_engine()
    entry = engine.revoke(target, effective_at, reason=args.reason, revoked_by=args.revoked_by)
    data = entry.to_dict()
    data["formatted"] = (
        f"Revoked {data['kind']} {entry.target_text} effective {entry.effective_at.isoformat()}"
    )
    output_result(data, output_format(args))
    return EXIT_OK


def cmd_revocations(args: argparse.Namespace) -> int:
    """List revocation entries."""
    engine = load_engine()
    reaped = engine.reap() if args.reap else 0
    entries = engine.registry.active_entries() if args.active else engine.registry.entries()

    lines = [f"{len(entries)} revocation entries" + (f" ({reaped} reaped)" if reaped else "")]
    for entry in entries:
        lines.append(
            f"  {entry.effective_at.isoformat()}  {entry.kind.name.lower():<11}  {entry.target_text}"
        )
    output_result(
        {
            "entries": [e.to_dict() for e in entries],
            "reaped": reaped,
            "formatted": "\n".join(lines),
        },
        output_format(args),
    )
    return EXIT_OK
