# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Authority commands: params, init-secret."""

from __future__ import annotations

import argparse
import secrets

from ...access.authority import DEFAULT_SECRET_SIZE, MIN_SECRET_SIZE, PublicParams
from ..output import output_error, output_result
from ..utils import EXIT_OK, EXIT_STRUCTURAL, load_engine, output_format


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the authority commands on the CLI parser."""
    params_parser = subparsers.add_parser("params", help="Show the authority's public parameters")
    params_parser.set_defaults(func=cmd_params)

    secret_parser = subparsers.add_parser(
        "init-secret", help="Generate a master secret for HIERACAP_MASTER_SECRET"
    )
    secret_parser.add_argument(
        "--bytes", type=int, default=DEFAULT_SECRET_SIZE, dest="size", help="Secret size in bytes"
    )
    secret_parser.set_defaults(func=cmd_init_secret)


def cmd_params(args: argparse.Namespace) -> int:
    """Print public parameters."""
    engine = load_engine()
    raw = engine.public_params()
    params = PublicParams.parse(raw)
    output_result(
        {
            "public_params": raw.hex(),
            "version": params.version,
            "max_depth": params.max_depth,
            "primitive": params.primitive_name,
            "public_key": params.public_key.hex(),
            "formatted": "\n".join(
                [
                    raw.hex(),
                    f"# primitive   {params.primitive_name}",
                    f"# max_depth   {params.max_depth}",
                    f"# public_key  {params.public_key.hex()}",
                ]
            ),
        },
        output_format(args),
    )
    return EXIT_OK


def cmd_init_secret(args: argparse.Namespace) -> int:
    """Print a fresh random master secret."""
    if args.size < MIN_SECRET_SIZE:
        output_error(f"Secret must be at least {MIN_SECRET_SIZE} bytes")
        return EXIT_STRUCTURAL
    secret = secrets.token_hex(args.size)
    output_result(
        {"master_secret": secret, "formatted": f"HIERACAP_MASTER_SECRET={secret}"},
        output_format(args),
    )
    return EXIT_OK
