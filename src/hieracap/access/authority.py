# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""The authority: sole holder of the master secret.

The authority mints root capabilities under an issuance policy and
performs the key derivation behind every delegation. The master secret is
never returned, logged, or included in ``repr``; only ``mint_root`` and
``narrow`` read it (through the key primitive).

Public parameters let collaborators verify fingerprints signed by the
authority without access to the secret::

    version(1) || max_depth(1) || name_len(1) || primitive_name || ed25519_pubkey(32)
"""

from __future__ import annotations

import logging
import secrets
import struct
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..core.clock import Clock, normalize, utcnow
from ..core.config import CoreSettings, get_config
from ..core.exceptions import MalformedError, PolicyError
from ..core.metrics import EngineMetrics
from ..hierarchy.identity import DEFAULT_MAX_DEPTH, Pattern, as_pattern, parse_pattern
from ..hierarchy.matching import refines
from ..keys.hashchain import HashChainPrimitive
from ..keys.primitive import KeyPrimitive
from .capability import Capability

logger = logging.getLogger(__name__)

PARAMS_VERSION = 1
PUBLIC_KEY_SIZE = 32
MIN_SECRET_SIZE = 16
DEFAULT_SECRET_SIZE = 32
DEFAULT_MAX_VALIDITY = timedelta(days=30)

KDF_INFO_SIGNING_KEY = b"hieracap-authority-signing-key"


# =============================================================================
# POLICY
# =============================================================================


@dataclass(frozen=True)
class AuthorityPolicy:
    """Constraints on root issuance.

    Attributes:
        allowed_roots: A root pattern must refine at least one of these
        max_validity: Longest allowed root validity window
        max_depth: Deepest pattern the authority will accept
    """

    allowed_roots: tuple[Pattern, ...] = field(default_factory=lambda: (parse_pattern("**"),))
    max_validity: timedelta = DEFAULT_MAX_VALIDITY
    max_depth: int = DEFAULT_MAX_DEPTH

    @classmethod
    def from_config(cls, settings: CoreSettings | None = None) -> AuthorityPolicy:
        settings = settings or get_config()
        return cls(
            allowed_roots=tuple(
                parse_pattern(raw, settings.max_depth) for raw in settings.root_patterns
            ),
            max_validity=timedelta(seconds=settings.max_root_validity_seconds),
            max_depth=settings.max_depth,
        )

    def check(self, pattern: Pattern, not_before: datetime, not_after: datetime, now: datetime) -> None:
        """Raise PolicyError if a root with these parameters may not be minted."""
        if not any(refines(pattern, root) for root in self.allowed_roots):
            raise PolicyError(
                f"Pattern {str(pattern)!r} is outside the allowed root patterns",
                {"pattern": str(pattern), "allowed": [str(p) for p in self.allowed_roots]},
            )
        if not_after <= not_before:
            raise PolicyError(
                "Validity window is empty or inverted",
                {"not_before": not_before.isoformat(), "not_after": not_after.isoformat()},
            )
        if not_after - not_before > self.max_validity:
            raise PolicyError(
                f"Validity window exceeds maximum of {self.max_validity}",
                {"max_validity_seconds": self.max_validity.total_seconds()},
            )
        if not_after <= now:
            raise PolicyError(
                "not_after is already in the past",
                {"not_after": not_after.isoformat(), "now": now.isoformat()},
            )


# =============================================================================
# PUBLIC PARAMETERS
# =============================================================================


@dataclass(frozen=True)
class PublicParams:
    """Non-secret description of an authority."""

    max_depth: int
    primitive_name: str
    public_key: bytes
    version: int = PARAMS_VERSION

    def to_bytes(self) -> bytes:
        name = self.primitive_name.encode("utf-8")
        return (
            struct.pack(">BBB", self.version, self.max_depth, len(name))
            + name
            + self.public_key
        )

    @classmethod
    def parse(cls, data: bytes) -> PublicParams:
        """Decode public params.

        Raises:
            MalformedError: On unknown version, truncation or trailing bytes.
        """
        if len(data) < 3:
            raise MalformedError("Truncated public params", reason="truncated")
        version, max_depth, name_len = struct.unpack(">BBB", data[:3])
        if version != PARAMS_VERSION:
            raise MalformedError(f"Unknown public params version {version}", reason="version")
        expected = 3 + name_len + PUBLIC_KEY_SIZE
        if len(data) != expected:
            raise MalformedError(
                f"Public params must be {expected} bytes, got {len(data)}",
                reason="truncated" if len(data) < expected else "trailing",
            )
        try:
            name = data[3 : 3 + name_len].decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedError("Primitive name is not UTF-8", reason="encoding") from e
        return cls(
            max_depth=max_depth,
            primitive_name=name,
            public_key=data[3 + name_len :],
            version=version,
        )


def verify_signature(public_params: PublicParams | bytes, fingerprint: bytes, signature: bytes) -> bool:
    """Check an authority signature over a capability fingerprint."""
    if isinstance(public_params, (bytes, bytearray)):
        public_params = PublicParams.parse(bytes(public_params))
    try:
        Ed25519PublicKey.from_public_bytes(public_params.public_key).verify(signature, fingerprint)
    except InvalidSignature:
        return False
    return True


# =============================================================================
# AUTHORITY
# =============================================================================


class Authority:
    """Owner of the master secret.

    Example:
        authority = Authority.generate()
        root = authority.mint_root("facility/zone-a/**", now, now + timedelta(hours=1))
    """

    def __init__(
        self,
        master_secret: bytes,
        policy: AuthorityPolicy | None = None,
        primitive: KeyPrimitive | None = None,
        metrics: EngineMetrics | None = None,
        clock: Clock = utcnow,
    ) -> None:
        if len(master_secret) < MIN_SECRET_SIZE:
            raise ValueError(f"Master secret must be at least {MIN_SECRET_SIZE} bytes")
        self.__master_secret = bytes(master_secret)
        self.policy = policy if policy is not None else AuthorityPolicy()
        if primitive is None:
            primitive = HashChainPrimitive.from_master_secret(self.__master_secret)
        self._primitive = primitive
        self.metrics = metrics if metrics is not None else EngineMetrics()
        self._clock = clock

        signing_seed = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=None,
            info=KDF_INFO_SIGNING_KEY,
        ).derive(self.__master_secret)
        self.__signing_key = Ed25519PrivateKey.from_private_bytes(signing_seed)

    @classmethod
    def generate(cls, policy: AuthorityPolicy | None = None, **kwargs) -> Authority:
        """Create an authority with a fresh random master secret."""
        return cls(secrets.token_bytes(DEFAULT_SECRET_SIZE), policy=policy, **kwargs)

    @classmethod
    def from_config(cls, settings: CoreSettings | None = None, **kwargs) -> Authority:
        """Create an authority from ``HIERACAP_MASTER_SECRET`` and the policy settings.

        Raises:
            ConfigException: If no valid master secret is configured.
        """
        settings = settings or get_config()
        return cls(
            settings.master_secret_bytes,
            policy=AuthorityPolicy.from_config(settings),
            **kwargs,
        )

    def __repr__(self) -> str:
        return (
            f"Authority(primitive={self._primitive.name!r}, "
            f"max_depth={self.policy.max_depth}, master_secret=<redacted>)"
        )

    @property
    def verifier(self) -> KeyPrimitive:
        """Key primitive used to check material in access decisions."""
        return self._primitive

    # -------------------------------------------------------------------------
    # Issuance
    # -------------------------------------------------------------------------

    def mint_root(
        self,
        pattern: Pattern | str | bytes,
        not_before: datetime,
        not_after: datetime,
        *,
        now: datetime | None = None,
    ) -> Capability:
        """Issue a root capability.

        Raises:
            MalformedError: If the pattern cannot be parsed.
            PolicyError: If the policy forbids the pattern or window.
        """
        pattern = as_pattern(pattern, self.policy.max_depth)
        not_before = normalize(not_before)
        not_after = normalize(not_after)
        now = normalize(now) if now is not None else self._clock()

        try:
            self.policy.check(pattern, not_before, not_after, now)
        except PolicyError as e:
            logger.warning(f"Refused root mint for {pattern}: {e.message}")
            raise

        material = self._primitive.derive_root(self.__master_secret, pattern)
        capability = Capability(
            pattern=pattern,
            not_before=not_before,
            not_after=not_after,
            material=material,
        )
        self.metrics.increment("hieracap_mints_total")
        logger.info(f"Minted root capability {capability.short_id} for {pattern}")
        return capability

    def narrow(self, parent: Capability, child_pattern: Pattern) -> bytes:
        """Derive child material from a parent capability.

        Raises:
            NotRefinementError: If the child does not refine the parent.
            KeyMismatchError: If the parent's material has been tampered with.
        """
        self.metrics.increment("hieracap_narrow_total")
        return self._primitive.narrow(parent.material, parent.pattern, child_pattern)

    # -------------------------------------------------------------------------
    # Signatures
    # -------------------------------------------------------------------------

    def public_params(self) -> bytes:
        return self.params().to_bytes()

    def params(self) -> PublicParams:
        public_key = self.__signing_key.public_key().public_bytes_raw()
        return PublicParams(
            max_depth=self.policy.max_depth,
            primitive_name=self._primitive.name,
            public_key=public_key,
        )

    def sign(self, capability: Capability) -> bytes:
        """Ed25519 signature over the capability fingerprint."""
        return self.__signing_key.sign(capability.fingerprint)

    def verify_signature(self, fingerprint: bytes, signature: bytes) -> bool:
        return verify_signature(self.params(), fingerprint, signature)
