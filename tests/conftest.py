"""Global test fixtures for the hieracap test suite."""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime, timedelta

import pytest

from hieracap.access.authority import Authority
from hieracap.access.engine import AccessEngine
from hieracap.core.config import clear_config_cache

# Fixed reference time for deterministic tests.
T = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)

MASTER_SECRET = bytes(range(32))

ROOT_PATTERN = "facility/zone-a/bin/*/sensor-data/**"


# ============================================================================
# Environment
# ============================================================================


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all HIERACAP_ environment variables and reset cached config."""
    for key in list(os.environ.keys()):
        if key.startswith("HIERACAP_"):
            monkeypatch.delenv(key, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def restore_logging():
    """Drop handlers installed by configure_logging() and restore the root level."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


# ============================================================================
# Engine fixtures
# ============================================================================


@pytest.fixture
def authority():
    """Authority with a fixed secret and a clock frozen at T."""
    return Authority(MASTER_SECRET, clock=lambda: T)


@pytest.fixture
def engine(authority):
    """In-memory engine sharing the frozen clock."""
    with AccessEngine.build(authority, clock=lambda: T) as eng:
        yield eng


@pytest.fixture
def root(engine):
    """Root capability for the scenario pattern, valid T .. T+1h."""
    return engine.mint_root(ROOT_PATTERN, T + timedelta(hours=1), now=T)
