# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Key primitive interface.

A key primitive turns patterns into key material and back:

- ``derive_root`` produces material for a root pattern from the master secret
- ``narrow`` derives child material from parent material, never widening
- ``covers`` checks that material is genuine for a pattern and that the
  pattern accepts an identity

The engine only ever talks to this interface, so the default hash chain
can be replaced by a real hierarchical scheme without touching the
delegation service or the access decision point.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..hierarchy.identity import Identity, Pattern


class KeyPrimitive(ABC):
    """Abstract interface for capability key material."""

    #: Short algorithm identifier, published in the authority's public params.
    name: str = "abstract"

    @abstractmethod
    def derive_root(self, master_secret: bytes, root_pattern: Pattern) -> bytes:
        """Derive material for a root capability."""

    @abstractmethod
    def narrow(self, parent_material: bytes, parent_pattern: Pattern, child_pattern: Pattern) -> bytes:
        """Derive child material from parent material.

        Raises:
            NotRefinementError: If ``child_pattern`` does not refine ``parent_pattern``.
            KeyMismatchError: If ``parent_material`` is not genuine for ``parent_pattern``.
        """

    @abstractmethod
    def covers(self, material: bytes, pattern: Pattern, identity: Identity) -> bool:
        """Whether ``material`` is genuine for ``pattern`` and accepts ``identity``."""
