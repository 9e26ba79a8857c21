# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Passdrop Contributors

"""Operator authentication for REST endpoints.

Operators (the people issuing upload passes and browsing the ledger) present
``Authorization: Bearer <api key>``. Keys are configured as SHA-256 digests
per user id. With no keys configured the server is in development mode and
trusts an upstream-asserted ``X-User-Id`` header instead.

Mobile bearers never go through here; their capability id in the URL is the
credential, checked by the ingestion service.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass

from starlette.requests import Request
from starlette.responses import JSONResponse

from .config import ServerSettings, hash_operator_key
from .errors import AUTH_INVALID_TOKEN, AUTH_MISSING_TOKEN, auth_error

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"


@dataclass
class AuthenticatedOperator:
    """An operator resolved from request credentials."""

    user_id: str
    auth_method: str = "api_key"  # "api_key" or "header"


def _match_key(settings: ServerSettings, presented: str) -> str | None:
    digest = hash_operator_key(presented)
    matched = None
    # Compare against every entry so timing does not reveal which user matched
    for user_id, expected in settings.operator_keys.items():
        if hmac.compare_digest(digest, expected.lower()):
            matched = user_id
    return matched


def authenticate(request: Request) -> AuthenticatedOperator | JSONResponse:
    """Authenticate an operator. Returns the operator, or an error JSONResponse.

    Usage in endpoints::

        operator = authenticate(request)
        if isinstance(operator, JSONResponse):
            return operator
    """
    settings: ServerSettings = request.app.state.settings

    if not settings.operator_keys:
        user_id = request.headers.get(USER_ID_HEADER, "").strip()
        if not user_id:
            return auth_error(f"Missing {USER_ID_HEADER} header", code=AUTH_MISSING_TOKEN)
        return AuthenticatedOperator(user_id=user_id, auth_method="header")

    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return auth_error("Missing or invalid authentication token", code=AUTH_MISSING_TOKEN)

    user_id = _match_key(settings, auth_header[7:].strip())
    if user_id is None:
        logger.warning(f"Rejected operator key from {request.client.host if request.client else 'unknown'}")
        return auth_error("Invalid authentication token", code=AUTH_INVALID_TOKEN)

    return AuthenticatedOperator(user_id=user_id)
