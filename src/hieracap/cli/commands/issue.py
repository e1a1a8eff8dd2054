# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Issuance commands: mint-root, delegate."""

from __future__ import annotations

import argparse
import logging

from ...access.capability import Capability
from ...core.clock import utcnow
from ..output import output_result
from ..utils import EXIT_OK, load_engine, output_format, parse_time_arg, read_capability

logger = logging.getLogger(__name__)


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the issuance commands on the CLI parser."""
    mint_parser = subparsers.add_parser("mint-root", help="Mint a root capability")
    mint_parser.add_argument("pattern", help="Pattern, e.g. facility/zone-a/**")
    mint_parser.add_argument("expiry", help="not_after: ISO-8601 timestamp or duration (30m, 1h, 7d)")
    mint_parser.add_argument("--not-before", help="Start of validity (default: now)")
    mint_parser.set_defaults(func=cmd_mint_root)

    delegate_parser = subparsers.add_parser("delegate", help="Derive a narrower capability")
    delegate_parser.add_argument("parent", help="Parent capability (hex or @file)")
    delegate_parser.add_argument("pattern", help="Child pattern; must refine the parent's")
    delegate_parser.add_argument("expiry", help="not_after: ISO-8601 timestamp or duration")
    delegate_parser.add_argument("--not-before", help="Start of validity (default: parent's)")
    delegate_parser.set_defaults(func=cmd_delegate)


def _issued(capability: Capability) -> dict:
    data = capability.to_dict()
    data["capability"] = capability.hex()
    data["formatted"] = "\n".join(
        [
            capability.hex(),
            f"# fingerprint {capability.fingerprint_hex}",
            f"# pattern     {capability.pattern}",
            f"# valid       {capability.not_before.isoformat()} .. {capability.not_after.isoformat()}",
        ]
    )
    return data


def cmd_mint_root(args: argparse.Namespace) -> int:
    """Mint a root capability."""
    now = utcnow()
    not_after = parse_time_arg(args.expiry, now)
    not_before = parse_time_arg(args.not_before, now) if args.not_before else None

    engine = load_engine()
    capability = engine.mint_root(args.pattern, not_after, not_before=not_before, now=now)
    output_result(_issued(capability), output_format(args))
    return EXIT_OK


def cmd_delegate(args: argparse.Namespace) -> int:
    """Delegate a narrower capability from a parent."""
    now = utcnow()
    parent = read_capability(args.parent)
    not_after = parse_time_arg(args.expiry, now)
    not_before = parse_time_arg(args.not_before, now) if args.not_before else None

    engine = load_engine()
    capability = engine.delegate(parent, args.pattern, not_after, not_before=not_before, now=now)
    output_result(_issued(capability), output_format(args))
    return EXIT_OK
