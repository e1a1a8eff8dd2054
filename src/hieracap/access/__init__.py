# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Capabilities, issuance, revocation and access decisions."""

from .authority import Authority, AuthorityPolicy, PublicParams, verify_signature
from .capability import Capability
from .decision import AccessDecisionPoint, Decision, DenyReason
from .delegation import DelegationService
from .engine import AccessEngine
from .revocation import RevocationEntry, RevocationKind, RevocationLog, RevocationRegistry
from .singleflight import SingleFlight
from .store import CapabilityStore, StoreSweeper, issuance_key

__all__ = [
    "AccessDecisionPoint",
    "AccessEngine",
    "Authority",
    "AuthorityPolicy",
    "Capability",
    "CapabilityStore",
    "Decision",
    "DelegationService",
    "DenyReason",
    "PublicParams",
    "RevocationEntry",
    "RevocationKind",
    "RevocationLog",
    "RevocationRegistry",
    "SingleFlight",
    "StoreSweeper",
    "issuance_key",
    "verify_signature",
]
