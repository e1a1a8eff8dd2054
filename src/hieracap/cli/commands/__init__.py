# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""CLI command modules for hieracap.

Each module exposes a ``register(subparsers)`` function that wires up
its argparse sub-commands and sets ``parser.set_defaults(func=handler)``.
"""

from . import authority_cmd, check, issue, revoke
from .authority_cmd import cmd_init_secret, cmd_params
from .check import cmd_check, cmd_inspect
from .issue import cmd_delegate, cmd_mint_root
from .revoke import cmd_revocations, cmd_revoke

# All command modules with register() functions, in registration order.
COMMAND_MODULES = [
    issue,
    revoke,
    check,
    authority_cmd,
]

__all__ = [
    "COMMAND_MODULES",
    "cmd_check",
    "cmd_delegate",
    "cmd_init_secret",
    "cmd_inspect",
    "cmd_mint_root",
    "cmd_params",
    "cmd_revocations",
    "cmd_revoke",
]
