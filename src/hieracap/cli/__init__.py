# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""hieracap CLI - capability issuance and checks from the shell."""

from .main import app, main

__all__ = ["main", "app"]
