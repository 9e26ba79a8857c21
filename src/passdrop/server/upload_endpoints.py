# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Passdrop Contributors

"""Upload API endpoints.

Mobile side (the capability id in the path is the credential):
- GET /api/v1/mobile-upload/{token_id} - Describe the pass and upload limits
- POST /api/v1/mobile-upload/{token_id} - Multipart upload, ``files`` fields

Operator side:
- GET /api/v1/uploads - List upload records, most recent first
- GET /api/v1/uploads/stats - Totals and counts per media type
- GET /api/v1/uploads/{id} - One record
- DELETE /api/v1/uploads/{id} - Remove a record and its stored bytes
"""

from __future__ import annotations

import logging

from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException
from starlette.requests import Request
from starlette.responses import JSONResponse

from ..capabilities import PERMISSION_DOCUMENT_CREATE
from ..core.exceptions import NotFoundError, ValidationException
from ..ingestion.errors import (
    ForbiddenError,
    IngestionRejectedError,
    StoreFailureError,
    UnauthorizedError,
)
from ..ingestion.service import IncomingFile
from ..ingestion.validator import IngestionValidator
from .auth_helpers import authenticate
from .errors import (
    NOT_FOUND_UPLOAD,
    VALIDATION_INVALID_FORMAT,
    auth_error,
    forbidden_error,
    internal_error,
    missing_field_error,
    not_found_error,
    rejected_error,
    store_failure_error,
    validation_error,
)
from .state import get_services

logger = logging.getLogger(__name__)

FILES_FIELD = "files"

# Upper bound on parts per request
MAX_FILES_PER_REQUEST = 50


# =============================================================================
# MOBILE ENDPOINTS
# =============================================================================


async def describe_pass_endpoint(request: Request) -> JSONResponse:
    """GET /api/v1/mobile-upload/{token_id} - What this pass allows.

    The token id itself is never echoed back.
    """
    services = get_services(request)
    try:
        token = services.ingestion.authorize(request.path_params["token_id"], PERMISSION_DOCUMENT_CREATE)
    except UnauthorizedError as e:
        return auth_error(e.message)
    except ForbiddenError as e:
        return forbidden_error(e.message)

    policy = services.ingestion.validator.policy
    return JSONResponse(
        {
            "success": True,
            "action_kind": token.action_kind.value,
            "expires_at": token.expires_at.isoformat(),
            "permissions": sorted(token.permissions),
            "target": token.target.to_dict() if token.target else None,
            "limits": {
                "max_bytes": policy.max_bytes,
                "allowed_media_types": sorted(policy.allowed_types),
            },
        }
    )


async def _read_files(request: Request, validator: IngestionValidator) -> list[IncomingFile] | JSONResponse:
    """Parse the multipart body into IncomingFiles.

    Parts are checked against the policy by their spooled size and declared
    type before any bytes are read into memory.
    """
    content_type = request.headers.get("content-type", "")
    if not content_type.startswith("multipart/form-data"):
        return validation_error("Expected multipart/form-data", code=VALIDATION_INVALID_FORMAT)

    try:
        form = await request.form(max_files=MAX_FILES_PER_REQUEST)
    except (HTTPException, MultiPartException) as e:
        message = e.detail if isinstance(e, HTTPException) else e.message
        return validation_error(f"Malformed upload: {message}", code=VALIDATION_INVALID_FORMAT)

    try:
        parts = form.getlist(FILES_FIELD)
        for index, part in enumerate(parts):
            if not isinstance(part, UploadFile):
                return validation_error(f"'{FILES_FIELD}' fields must be files", code=VALIDATION_INVALID_FORMAT)
            verdict = validator.validate(part.size or 0, part.content_type)
            if not verdict:
                return rejected_error(verdict.reason, verdict.message, part.filename or "upload", index)

        incoming = [
            IncomingFile(
                file_name=part.filename or "upload",
                media_type=part.content_type or "application/octet-stream",
                data=await part.read(),
                declared_size=part.size,
            )
            for part in parts
        ]
    finally:
        await form.close()

    if not incoming:
        return missing_field_error(FILES_FIELD)
    return incoming


async def mobile_upload_endpoint(request: Request) -> JSONResponse:
    """POST /api/v1/mobile-upload/{token_id} - Upload files with a pass.

    Returns:
        201: {"success": true, "uploads": [...]} in submission order
        400: Not multipart, or no files
        401: Unknown or expired pass
        403: Pass lacks document.create
        413/415: A file violates policy; nothing stored
        502: Storage failed part way; ``committed`` lists what was stored
    """
    services = get_services(request)
    token_id = request.path_params["token_id"]

    # Check the pass before spending time parsing the body
    try:
        services.ingestion.authorize(token_id, PERMISSION_DOCUMENT_CREATE)
    except UnauthorizedError as e:
        return auth_error(e.message)
    except ForbiddenError as e:
        return forbidden_error(e.message)

    files = await _read_files(request, services.ingestion.validator)
    if isinstance(files, JSONResponse):
        return files

    try:
        records = await services.ingestion.submit(token_id, PERMISSION_DOCUMENT_CREATE, files)
    except UnauthorizedError as e:
        return auth_error(e.message)
    except ForbiddenError as e:
        return forbidden_error(e.message)
    except IngestionRejectedError as e:
        return rejected_error(e.reason, e.message, e.file_name, e.index)
    except StoreFailureError as e:
        return store_failure_error(e.file_name, [r.to_dict() for r in e.committed])
    except ValidationException as e:
        return validation_error(e.message)
    except Exception:  # Intentionally broad: top-level endpoint handler
        logger.exception("Error handling mobile upload")
        return internal_error("Upload failed")

    return JSONResponse(
        {"success": True, "uploads": [r.to_dict() for r in records]},
        status_code=201,
    )


# =============================================================================
# OPERATOR ENDPOINTS
# =============================================================================


async def list_uploads_endpoint(request: Request) -> JSONResponse:
    """GET /api/v1/uploads?limit=N - Upload records, most recent first."""
    operator = authenticate(request)
    if isinstance(operator, JSONResponse):
        return operator

    limit = None
    raw_limit = request.query_params.get("limit")
    if raw_limit is not None:
        try:
            limit = int(raw_limit)
        except ValueError:
            return validation_error("limit must be an integer")
        if limit < 0:
            return validation_error("limit cannot be negative")

    records = get_services(request).ledger.list(limit=limit)
    return JSONResponse(
        {
            "success": True,
            "uploads": [r.to_dict() for r in records],
            "total_count": len(records),
        }
    )


async def upload_stats_endpoint(request: Request) -> JSONResponse:
    """GET /api/v1/uploads/stats - Totals and per-type counts."""
    operator = authenticate(request)
    if isinstance(operator, JSONResponse):
        return operator

    stats = get_services(request).ledger.stats()
    return JSONResponse({"success": True, "stats": stats.to_dict()})


async def get_upload_endpoint(request: Request) -> JSONResponse:
    """GET /api/v1/uploads/{id} - One upload record."""
    operator = authenticate(request)
    if isinstance(operator, JSONResponse):
        return operator

    try:
        record = get_services(request).ledger.get(request.path_params["id"])
    except NotFoundError:
        return not_found_error("Upload", code=NOT_FOUND_UPLOAD)

    return JSONResponse({"success": True, "upload": record.to_dict()})


async def delete_upload_endpoint(request: Request) -> JSONResponse:
    """DELETE /api/v1/uploads/{id} - Remove a record and its bytes."""
    operator = authenticate(request)
    if isinstance(operator, JSONResponse):
        return operator

    try:
        deleted = await get_services(request).ingestion.delete_upload(
            request.path_params["id"], actor_id=operator.user_id
        )
    except Exception:  # Intentionally broad: top-level endpoint handler
        logger.exception("Error deleting upload")
        return internal_error("Failed to delete upload")

    if not deleted:
        return not_found_error("Upload", code=NOT_FOUND_UPLOAD)
    return JSONResponse({"success": True, "deleted": True})
