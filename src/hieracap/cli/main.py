#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors
"""
hieracap CLI - operator tool for hierarchical capabilities.

Commands:
  hieracap mint-root PATTERN EXPIRY           Mint a root capability
  hieracap delegate PARENT PATTERN EXPIRY     Derive a narrower capability
  hieracap revoke (FINGERPRINT | PATTERN)     Revoke a capability or subtree
  hieracap check CAPABILITY IDENTITY          Run an access decision
  hieracap inspect CAPABILITY                 Decode a capability
  hieracap revocations                        List revocation entries
  hieracap params                             Show public parameters
  hieracap init-secret                        Generate a master secret

Exit codes: 0 success/allow, 1 structural error, 2 deny, 3 policy refusal.
"""

from __future__ import annotations

import argparse
import logging
import sys

from ..core.exceptions import HieracapException
from ..core.logging import configure_logging
from .commands import COMMAND_MODULES
from .output import output_error
from .utils import EXIT_STRUCTURAL, exit_code_for

logger = logging.getLogger(__name__)


def app() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="hieracap",
        description="Hierarchical capability access control",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  hieracap init-secret                                   Generate HIERACAP_MASTER_SECRET
  hieracap mint-root 'facility/zone-a/**' 1h > root.cap  Mint a root valid for 1 hour
  hieracap delegate @root.cap 'facility/zone-a/bin/*' 30m
  hieracap check @child.cap facility/zone-a/bin/BIN-001
  hieracap revoke 'facility/zone-a/**' --reason decommissioned

Configuration comes from HIERACAP_* environment variables (or .env):
  HIERACAP_MASTER_SECRET    hex master secret (required for most commands)
  HIERACAP_REVOCATION_LOG   path of the persistent revocation log
  HIERACAP_STATE_DIR        state directory (default ~/.hieracap), holds
                            revocations.log when no log path is set
        """,
    )
    parser.add_argument("--json", action="store_true", help="Output JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command", required=True)
    for module in COMMAND_MODULES:
        module.register(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = app()
    args = parser.parse_args(argv)

    configure_logging(level="DEBUG" if args.verbose else "WARNING", json_format=False)

    try:
        return args.func(args)
    except HieracapException as e:
        output_error(e.message)
        return exit_code_for(e)
    except OSError as e:
        output_error(str(e))
        return EXIT_STRUCTURAL


if __name__ == "__main__":
    sys.exit(main())
