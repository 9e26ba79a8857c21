# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Passdrop Contributors

"""Core configuration - centralized config for the passdrop package.

All environment-based configuration should flow through this module.
This provides a single source of truth and consistent defaults.

Usage:
    from passdrop.core.config import get_config
    config = get_config()

    # Access settings
    max_bytes = config.max_upload_bytes
    log_level = config.log_level
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# 50 MiB, the limit legacy mobile clients are built against
DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024

DEFAULT_ALLOWED_MEDIA_TYPES = [
    "image/jpeg",
    "image/png",
    "image/tiff",
    "application/pdf",
]


class CoreSettings(BaseSettings):
    """Core configuration settings for Passdrop.

    Settings can be configured via environment variables with the
    PASSDROP_ prefix, or from a .env file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="PASSDROP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
    )

    # ==========================================================================
    # INGESTION POLICY
    # ==========================================================================

    max_upload_bytes: int = Field(
        default=DEFAULT_MAX_UPLOAD_BYTES,
        description="Largest accepted file in bytes (inclusive)",
    )
    allowed_media_types: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_MEDIA_TYPES),
        description="Declared media types accepted for mobile upload",
    )
    sniff_content: bool = Field(
        default=False,
        description="Also reject files whose leading bytes contradict the declared type",
    )

    # ==========================================================================
    # CAPABILITY TOKEN SETTINGS
    # ==========================================================================

    default_token_ttl_seconds: int = Field(
        default=86400,
        description="Lifetime of upload passes when the operator does not choose one (24 hours)",
    )
    max_token_ttl_seconds: int | None = Field(
        default=7 * 86400,
        description="Upper bound on token lifetime, None for no bound",
    )

    # ==========================================================================
    # MOBILE LINKS AND STORAGE
    # ==========================================================================

    public_base_url: str = Field(
        default="http://127.0.0.1:8430",
        description="Base URL embedded in mobile upload links",
    )
    blob_dir: str | None = Field(
        default=None,
        description="Directory for uploaded bytes; in-memory storage when unset",
    )

    @property
    def ingestion_policy_kwargs(self) -> dict:
        """Keyword arguments for building an IngestionPolicy."""
        return {
            "max_bytes": self.max_upload_bytes,
            "allowed_types": frozenset(self.allowed_media_types),
            "sniff_content": self.sniff_content,
        }


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
