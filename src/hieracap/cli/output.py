# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Output formatting for CLI commands.

Handles JSON vs plain-text output based on the ``--json`` flag.
"""

from __future__ import annotations

import json
import sys
from typing import Any


def output_result(data: dict[str, Any], output_format: str = "text") -> None:
    """Print a command result.

    If output is "json", pretty-print everything except the "formatted" key.
    Otherwise print the "formatted" text, falling back to JSON.
    """
    if output_format == "json":
        payload = {k: v for k, v in data.items() if k != "formatted"}
        print(json.dumps(payload, indent=2, default=str))
    elif "formatted" in data:
        print(data["formatted"])
    else:
        print(json.dumps(data, indent=2, default=str))


def output_error(message: str) -> None:
    """Print error message to stderr."""
    print(f"Error: {message}", file=sys.stderr)
