# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""hieracap core - configuration, errors, logging and concurrency primitives."""

from .cancellation import CancelScope, ensure_scope
from .config import CoreSettings, clear_config_cache, get_config
from .exceptions import (
    CanceledError,
    CapacityError,
    ConfigException,
    DeadlineExceededError,
    ErrorKind,
    ExpiredError,
    HieracapException,
    IncomparableError,
    KeyMismatchError,
    MalformedError,
    NotRefinementError,
    ParentExpiredError,
    PolicyError,
    RevokedError,
    ValidityExceedsParentError,
    ValidityInPastError,
)
from .lru_cache import LRUDict
from .metrics import EngineMetrics
from .rwlock import ReadWriteLock

__all__ = [
    "CancelScope",
    "ensure_scope",
    "CoreSettings",
    "clear_config_cache",
    "get_config",
    "CanceledError",
    "CapacityError",
    "ConfigException",
    "DeadlineExceededError",
    "ErrorKind",
    "ExpiredError",
    "HieracapException",
    "IncomparableError",
    "KeyMismatchError",
    "MalformedError",
    "NotRefinementError",
    "ParentExpiredError",
    "PolicyError",
    "RevokedError",
    "ValidityExceedsParentError",
    "ValidityInPastError",
    "LRUDict",
    "EngineMetrics",
    "ReadWriteLock",
]
