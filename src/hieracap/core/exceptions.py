# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Custom exception hierarchy for hieracap.

Every engine failure maps to exactly one ``ErrorKind``. Callers that only
care about the category can branch on ``exc.kind``; callers that need the
specific precondition that failed can catch the concrete subclass.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Enumerated engine error kinds."""

    MALFORMED = "ErrMalformed"
    INCOMPARABLE = "ErrIncomparable"
    NOT_REFINEMENT = "ErrNotRefinement"
    EXPIRED = "ErrExpired"
    REVOKED = "ErrRevoked"
    POLICY = "ErrPolicy"
    KEY_MISMATCH = "ErrKeyMismatch"
    CANCELED = "ErrCanceled"
    CAPACITY = "ErrCapacity"
    CONFIG = "ErrConfig"


class HieracapException(Exception):  # noqa: N818
    """Base exception for all hieracap errors.

    All hieracap-specific exceptions should inherit from this class.
    """

    kind: ErrorKind = ErrorKind.MALFORMED

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


class MalformedError(HieracapException):
    """Identity, pattern, or encoded capability fails syntactic rules.

    Raised when:
    - A path is empty, too deep, or has empty segments
    - A segment contains characters outside the allowed alphabet
    - ``**`` appears anywhere but as the final pattern segment
    - A serialized capability is truncated, has an unknown version,
      or its fingerprint does not match its fields
    """

    kind = ErrorKind.MALFORMED

    def __init__(self, message: str, value: Any = None, reason: str | None = None):
        details = {}
        if value is not None:
            details["value"] = value if isinstance(value, str) else repr(value)
        if reason:
            details["reason"] = reason
        super().__init__(message, details)
        self.value = value
        self.reason = reason


class IncomparableError(HieracapException):
    """Two patterns do not stand in a refinement relation."""

    kind = ErrorKind.INCOMPARABLE

    def __init__(self, left: str, right: str):
        super().__init__(
            f"Patterns are incomparable: {left!r} vs {right!r}",
            {"left": left, "right": right},
        )
        self.left = left
        self.right = right


class NotRefinementError(HieracapException):
    """Requested child pattern does not refine the parent pattern."""

    kind = ErrorKind.NOT_REFINEMENT

    def __init__(self, child: str, parent: str):
        super().__init__(
            f"Pattern {child!r} does not refine {parent!r}",
            {"child": child, "parent": parent},
        )
        self.child = child
        self.parent = parent


class ExpiredError(HieracapException):
    """A timestamp falls outside a validity window."""

    kind = ErrorKind.EXPIRED


class ParentExpiredError(ExpiredError):
    """The parent capability is past its not-after."""


class ValidityExceedsParentError(ExpiredError):
    """The requested validity window is not contained in the parent's."""


class ValidityInPastError(ExpiredError):
    """The requested not-after has already passed."""


class RevokedError(HieracapException):
    """A capability or one of its ancestors has been revoked."""

    kind = ErrorKind.REVOKED

    def __init__(self, message: str, fingerprint: str | None = None):
        details = {}
        if fingerprint:
            details["fingerprint"] = fingerprint
        super().__init__(message, details)
        self.fingerprint = fingerprint


class PolicyError(HieracapException):
    """The authority refuses a mint request."""

    kind = ErrorKind.POLICY


class KeyMismatchError(HieracapException):
    """Key material disagrees with the structural pattern.

    Indicates tampering or a faulty key primitive implementation.
    """

    kind = ErrorKind.KEY_MISMATCH


class CanceledError(HieracapException):
    """The operation was canceled by its caller."""

    kind = ErrorKind.CANCELED

    def __init__(self, message: str = "Operation canceled", operation: str | None = None):
        details = {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details)
        self.operation = operation


class DeadlineExceededError(CanceledError):
    """The caller's deadline passed before the operation could complete."""


class CapacityError(HieracapException):
    """A bounded structure (single-flight group, issuer chain) is full."""

    kind = ErrorKind.CAPACITY

    def __init__(self, message: str, limit: int | None = None):
        details = {}
        if limit is not None:
            details["limit"] = limit
        super().__init__(message, details)
        self.limit = limit


class ConfigException(HieracapException):
    """Exception for configuration errors.

    Raised when:
    - Required environment variables are missing
    - Configured values cannot be decoded (e.g. a non-hex master secret)
    """

    kind = ErrorKind.CONFIG

    def __init__(self, message: str, missing_vars: list[str] | None = None):
        details = {}
        if missing_vars:
            details["missing_vars"] = missing_vars
        super().__init__(message, details)
        self.missing_vars = missing_vars or []
