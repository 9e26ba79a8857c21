# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Passdrop Contributors

"""Capability (upload pass) API endpoints.

Implements:
- POST /api/v1/capabilities - Issue an upload pass
- GET /api/v1/capabilities - List the caller's live passes
- DELETE /api/v1/capabilities/{id} - Revoke a pass
"""

from __future__ import annotations

import json
import logging

from starlette.requests import Request
from starlette.responses import JSONResponse

from ..capabilities import CapabilityTarget
from ..core.exceptions import ValidationException
from ..core.logging import redact_token_id
from ..links import build_mobile_upload_url
from .auth_helpers import authenticate
from .errors import (
    FORBIDDEN_NOT_OWNER,
    NOT_FOUND_CAPABILITY,
    forbidden_error,
    internal_error,
    invalid_json_error,
    not_found_error,
    validation_error,
)
from .state import get_services

logger = logging.getLogger(__name__)


async def issue_capability_endpoint(request: Request) -> JSONResponse:
    """POST /api/v1/capabilities - Issue a document upload pass.

    Request Body (JSON, all optional):
        {
            "ttl_seconds": 86400,
            "permissions": ["document.create"],
            "target": {"document_id": "..."},
            "upload_target": "https://..."
        }

    Returns:
        201: {"success": true, "capability": {...}, "url": "...", "artifact": ...}
        400: Invalid request
        401: Not authenticated
    """
    operator = authenticate(request)
    if isinstance(operator, JSONResponse):
        return operator

    body: dict = {}
    raw = await request.body()
    if raw:
        try:
            body = json.loads(raw)
        except json.JSONDecodeError:
            return invalid_json_error()
        if not isinstance(body, dict):
            return invalid_json_error()

    ttl_seconds = body.get("ttl_seconds")
    if ttl_seconds is not None and (isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, int)):
        return validation_error("ttl_seconds must be an integer")

    permissions = body.get("permissions")
    if permissions is not None and (
        not isinstance(permissions, list) or not all(isinstance(p, str) for p in permissions)
    ):
        return validation_error("permissions must be a list of strings")

    services = get_services(request)
    try:
        target = CapabilityTarget.from_dict(body.get("target"))
        upload_pass = services.ingestion.create_upload_pass(
            subject_user_id=operator.user_id,
            ttl_seconds=ttl_seconds,
            permissions=permissions,
            target=target,
            upload_target=body.get("upload_target"),
        )
    except ValidationException as e:
        return validation_error(e.message)
    except Exception:  # Intentionally broad: top-level endpoint handler
        logger.exception("Error issuing capability")
        return internal_error("Failed to issue capability")

    return JSONResponse(
        {
            "success": True,
            "capability": upload_pass.token.to_dict(),
            "url": upload_pass.url,
            "artifact": upload_pass.artifact,
        },
        status_code=201,
    )


async def list_capabilities_endpoint(request: Request) -> JSONResponse:
    """GET /api/v1/capabilities - List live passes issued by the caller."""
    operator = authenticate(request)
    if isinstance(operator, JSONResponse):
        return operator

    services = get_services(request)
    tokens = services.registry.enumerate(operator.user_id)
    base_url = services.ingestion.base_url

    return JSONResponse(
        {
            "success": True,
            "capabilities": [
                {
                    **token.to_dict(),
                    "url": token.upload_target or build_mobile_upload_url(base_url, token.id),
                }
                for token in tokens
            ],
            "total_count": len(tokens),
        }
    )


async def revoke_capability_endpoint(request: Request) -> JSONResponse:
    """DELETE /api/v1/capabilities/{id} - Revoke a pass the caller issued.

    Returns:
        200: Revoked
        403: Pass belongs to another operator
        404: No live pass with that id
    """
    operator = authenticate(request)
    if isinstance(operator, JSONResponse):
        return operator

    token_id = request.path_params["id"]
    services = get_services(request)

    validation = services.registry.validate(token_id)
    if not validation:
        return not_found_error("Capability", code=NOT_FOUND_CAPABILITY)
    if validation.token.subject_user_id != operator.user_id:
        logger.warning(
            f"{operator.user_id} tried to revoke {redact_token_id(token_id)} "
            f"owned by {validation.token.subject_user_id}"
        )
        return forbidden_error("Capability belongs to another user", code=FORBIDDEN_NOT_OWNER)

    if not services.ingestion.revoke_pass(token_id, actor_id=operator.user_id):
        # Expired or revoked concurrently
        return not_found_error("Capability", code=NOT_FOUND_CAPABILITY)

    return JSONResponse({"success": True, "revoked": True})
