# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Key primitives binding material to patterns."""

from .hashchain import HashChainPrimitive, derive_anchor
from .primitive import KeyPrimitive

__all__ = ["HashChainPrimitive", "KeyPrimitive", "derive_anchor"]
