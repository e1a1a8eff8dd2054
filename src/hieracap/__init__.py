# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""hieracap - hierarchical capability access control.

A central authority issues capabilities bound to hierarchical identity
patterns. Capabilities can be delegated to narrower patterns (never wider),
revoked individually or by pattern, and checked by an access decision point.

NOTE: the default key primitive is a keyed hash chain. It binds key
material to patterns for integrity; it is not a cryptographic access
control scheme.
"""

__version__ = "0.1.0"

from .access import (
    AccessEngine,
    Authority,
    AuthorityPolicy,
    Capability,
    Decision,
    DenyReason,
    RevocationEntry,
)
from .core.cancellation import CancelScope
from .hierarchy import Identity, Pattern, parse_identity, parse_pattern

__all__ = [
    "__version__",
    "AccessEngine",
    "Authority",
    "AuthorityPolicy",
    "CancelScope",
    "Capability",
    "Decision",
    "DenyReason",
    "Identity",
    "Pattern",
    "RevocationEntry",
    "parse_identity",
    "parse_pattern",
]
