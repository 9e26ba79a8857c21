# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Passdrop Contributors

"""Server configuration using pydantic-settings."""

from __future__ import annotations

import hashlib
import logging
from importlib.metadata import PackageNotFoundError, version

from pydantic import Field, model_validator
from pydantic_settings import SettingsConfigDict

from ..core.config import CoreSettings

logger = logging.getLogger(__name__)


def get_package_version() -> str:
    """Get the package version from installed metadata.

    Falls back to a dev marker when running from a source checkout.
    """
    try:
        return version("passdrop")
    except PackageNotFoundError:
        return "0.0.0-dev"


def hash_operator_key(key: str) -> str:
    """SHA-256 hex digest of an operator API key, as stored in settings."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


class ServerSettings(CoreSettings):
    """Configuration for the Passdrop HTTP server.

    Inherits core settings (ingestion policy, token defaults, logging) and
    adds HTTP and operator-auth settings.

    Settings can be configured via environment variables with PASSDROP_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="PASSDROP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    host: str = Field(default="127.0.0.1", description="Host to bind to")
    port: int = Field(default=8430, description="Port to bind to")

    # External URL (for mobile links) - if not set, public_base_url is used
    external_url: str | None = Field(
        default=None,
        description="Externally reachable URL (e.g., https://drop.example.com)",
    )

    # CORS settings
    allowed_origins: list[str] = Field(
        default=[],
        description="Allowed CORS origins. Empty = same-origin only. Set to ['*'] for development.",
    )

    # Operator authentication
    operator_keys: dict[str, str] = Field(
        default={},
        description="Operator user id -> SHA-256 hex of that operator's API key",
    )

    server_name: str = Field(default="passdrop", description="Server name reported by /health")
    server_version: str = Field(default_factory=get_package_version, description="Server version")

    # Production mode flag (explicit override)
    production: bool = Field(
        default=False,
        description="Force production mode (stricter security requirements)",
    )

    @model_validator(mode="after")
    def validate_production_settings(self) -> ServerSettings:
        """Validate security settings for production environments.

        In production (host not loopback, external_url set, or the explicit
        flag) operator keys are mandatory: the X-User-Id fallback is only
        acceptable on a developer machine.
        """
        if self.is_production and not self.operator_keys:
            raise ValueError(
                "PASSDROP_OPERATOR_KEYS is required in production mode. "
                'Set it to a JSON object such as {"alice": "<sha256 of her key>"}'
            )

        for user_id, digest in self.operator_keys.items():
            if len(digest) != 64 or any(c not in "0123456789abcdef" for c in digest.lower()):
                raise ValueError(f"Operator key for {user_id!r} must be a SHA-256 hex digest")

        if not self.operator_keys:
            logger.warning("No operator keys configured - trusting X-User-Id header (development only)")

        return self

    @property
    def is_production(self) -> bool:
        return (
            self.external_url is not None
            or self.host not in ("localhost", "127.0.0.1", "0.0.0.0")  # nosec B104
            or self.production
        )

    @property
    def base_url(self) -> str:
        """Base URL embedded in mobile upload links."""
        if self.external_url:
            return self.external_url.rstrip("/")
        return self.public_base_url.rstrip("/")


# Global settings instance - lazy loaded
_settings: ServerSettings | None = None


def get_settings() -> ServerSettings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = ServerSettings()
    return _settings


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    global _settings
    _settings = None
