# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Passdrop Contributors

"""Passdrop Core - configuration, logging and the exception hierarchy."""

from .config import CoreSettings, clear_config_cache, get_config
from .exceptions import (
    NotFoundError,
    PassdropException,
    ValidationException,
)
from .logging import (
    configure_logging,
    correlation_context,
    get_logger,
    redact_token_id,
)

__all__ = [
    "CoreSettings",
    "get_config",
    "clear_config_cache",
    "PassdropException",
    "ValidationException",
    "NotFoundError",
    "configure_logging",
    "correlation_context",
    "get_logger",
    "redact_token_id",
]
