# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Core configuration - centralized config for the hieracap package.

All environment-based configuration should flow through this module.
This provides a single source of truth and consistent defaults.

Usage:
    from hieracap.core.config import get_config
    config = get_config()

    max_depth = config.max_depth
    log_level = config.log_level
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigException


class CoreSettings(BaseSettings):
    """Core configuration settings for hieracap.

    Settings can be configured via environment variables, all using the
    HIERACAP_ prefix, or via a ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # HIERARCHY SETTINGS
    # ==========================================================================

    max_depth: int = Field(
        default=8,
        ge=1,
        le=255,
        description="Maximum number of segments in an identity or pattern",
        validation_alias="HIERACAP_MAX_DEPTH",
    )

    # ==========================================================================
    # CACHE SETTINGS
    # ==========================================================================

    pattern_cache_size: int = Field(
        default=4096,
        ge=1,
        description="Capacity of the compiled-pattern LRU cache",
        validation_alias="HIERACAP_PATTERN_CACHE_SIZE",
    )
    capability_cache_size: int = Field(
        default=4096,
        ge=1,
        description="Capacity of the capability store LRU",
        validation_alias="HIERACAP_CAPABILITY_CACHE_SIZE",
    )
    singleflight_max_inflight: int = Field(
        default=1024,
        ge=1,
        description="Maximum number of distinct in-flight derivations",
        validation_alias="HIERACAP_SINGLEFLIGHT_MAX_INFLIGHT",
    )
    sweep_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Interval between capability store expiry sweeps",
        validation_alias="HIERACAP_SWEEP_INTERVAL_SECONDS",
    )

    # ==========================================================================
    # AUTHORITY SETTINGS
    # ==========================================================================

    master_secret: str | None = Field(
        default=None,
        description="Authority master secret, hex encoded (at least 16 bytes)",
        validation_alias="HIERACAP_MASTER_SECRET",
    )
    allowed_root_patterns: str = Field(
        default="**",
        description="Comma-separated patterns that bound what mint-root may issue",
        validation_alias="HIERACAP_ALLOWED_ROOT_PATTERNS",
    )
    max_root_validity_seconds: int = Field(
        default=30 * 24 * 60 * 60,
        gt=0,
        description="Longest validity window a root capability may have",
        validation_alias="HIERACAP_MAX_ROOT_VALIDITY_SECONDS",
    )

    # ==========================================================================
    # REVOCATION SETTINGS
    # ==========================================================================

    revocation_log: str | None = Field(
        default=None,
        description="Path of the append-only revocation log (in-memory if unset)",
        validation_alias="HIERACAP_REVOCATION_LOG",
    )
    state_dir: str = Field(
        default="~/.hieracap",
        description="Directory for CLI state; holds the revocation log when none is set",
        validation_alias="HIERACAP_STATE_DIR",
    )
    lock_timeout_seconds: float | None = Field(
        default=None,
        description="Default deadline for registry lock acquisition",
        validation_alias="HIERACAP_LOCK_TIMEOUT_SECONDS",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="HIERACAP_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="HIERACAP_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="HIERACAP_LOG_FILE",
    )

    @field_validator("master_secret")
    @classmethod
    def _strip_secret(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @field_validator("lock_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("lock_timeout_seconds must be positive")
        return value

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def root_patterns(self) -> list[str]:
        """Allowed root patterns as a list of raw pattern strings."""
        return [p.strip() for p in self.allowed_root_patterns.split(",") if p.strip()]

    @property
    def persistent_revocation_log(self) -> Path:
        """Revocation log path, falling back to ``<state_dir>/revocations.log``."""
        if self.revocation_log:
            return Path(self.revocation_log).expanduser()
        return Path(self.state_dir).expanduser() / "revocations.log"

    @property
    def master_secret_bytes(self) -> bytes:
        """Decode the configured master secret.

        Raises:
            ConfigException: If the secret is missing, not hex, or too short.
        """
        if not self.master_secret:
            raise ConfigException(
                "No master secret configured",
                missing_vars=["HIERACAP_MASTER_SECRET"],
            )
        try:
            secret = bytes.fromhex(self.master_secret)
        except ValueError as e:
            raise ConfigException(f"HIERACAP_MASTER_SECRET is not valid hex: {e}") from e
        if len(secret) < 16:
            raise ConfigException("HIERACAP_MASTER_SECRET must be at least 16 bytes")
        return secret


# ==========================================================================
# GLOBAL CONFIG INSTANCE (lazy loaded)
# ==========================================================================

_config: CoreSettings | None = None


def get_config() -> CoreSettings:
    """Get the global configuration instance.

    Returns:
        The singleton CoreSettings instance.
    """
    global _config
    if _config is None:
        _config = CoreSettings()
    return _config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None
