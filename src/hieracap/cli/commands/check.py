# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Decision commands: check, inspect."""

from __future__ import annotations

import argparse
import logging

from ...access.decision import DenyReason
from ...core.clock import utcnow
from ..output import output_result
from ..utils import (
    EXIT_DENY,
    EXIT_OK,
    EXIT_STRUCTURAL,
    load_engine,
    output_format,
    parse_time_arg,
    read_capability,
)

logger = logging.getLogger(__name__)


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the decision commands on the CLI parser."""
    check_parser = subparsers.add_parser("check", help="Decide whether a capability grants an identity")
    check_parser.add_argument("capability", help="Capability (hex or @file)")
    check_parser.add_argument("identity", help="Identity, e.g. facility/zone-a/bin/BIN-001")
    check_parser.add_argument("--at", help="Evaluate at this time instead of now")
    check_parser.set_defaults(func=cmd_check)

    inspect_parser = subparsers.add_parser("inspect", help="Decode and show a capability")
    inspect_parser.add_argument("capability", help="Capability (hex or @file)")
    inspect_parser.set_defaults(func=cmd_inspect)


def cmd_check(args: argparse.Namespace) -> int:
    """Run an access decision."""
    now = parse_time_arg(args.at) if args.at else utcnow()
    capability = read_capability(args.capability)
    engine = load_engine()
    decision = engine.decide(capability, args.identity, now)

    data = decision.to_dict()
    data["formatted"] = (
        "ALLOW" if decision.allowed else f"DENY ({decision.reason.value}) {decision.detail}".rstrip()
    )
    output_result(data, output_format(args))

    if decision.allowed:
        return EXIT_OK
    if decision.reason == DenyReason.MALFORMED:
        return EXIT_STRUCTURAL
    return EXIT_DENY


def cmd_inspect(args: argparse.Namespace) -> int:
    """Show the fields of a capability."""
    capability = read_capability(args.capability)
    data = capability.to_dict()
    lines = [
        f"fingerprint  {data['fingerprint']}",
        f"pattern      {data['pattern']}",
        f"not_before   {data['not_before']}",
        f"not_after    {data['not_after']}",
        f"depth        {capability.pattern.depth}",
        f"root         {'yes' if capability.is_root else 'no'}",
    ]
    for index, fingerprint in enumerate(data["issuer_chain"]):
        lines.append(f"issuer[{index}]    {fingerprint}")
    data["formatted"] = "\n".join(lines)
    output_result(data, output_format(args))
    return EXIT_OK
