# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Passdrop Contributors

"""Standardized REST error responses for the Passdrop API.

All REST endpoints use these helpers for a consistent error format:
{
    "success": false,
    "error": {
        "code": "ERROR_CODE",
        "message": "Human readable message"
    }
}

Error codes follow the pattern: DOMAIN_SPECIFIC_ERROR
Examples: VALIDATION_MISSING_FIELD, AUTH_INVALID_TOKEN, INGEST_FILE_TOO_LARGE
"""

from __future__ import annotations

import logging
import os
import sys
import traceback
from typing import Any

from starlette.responses import JSONResponse

from ..core.logging import generate_correlation_id, get_correlation_id
from ..ingestion.validator import RejectionReason

logger = logging.getLogger(__name__)

# Debug mode: include exception details in 500 responses.
# Set PASSDROP_DEBUG=1 to enable.
_DEBUG = os.environ.get("PASSDROP_DEBUG", "0") == "1"

# =============================================================================
# STANDARD ERROR CODES
# =============================================================================

# Validation errors (400)
VALIDATION_MISSING_FIELD = "VALIDATION_MISSING_FIELD"
VALIDATION_INVALID_FORMAT = "VALIDATION_INVALID_FORMAT"
VALIDATION_INVALID_VALUE = "VALIDATION_INVALID_VALUE"
VALIDATION_INVALID_JSON = "VALIDATION_INVALID_JSON"

# Authentication errors (401)
AUTH_INVALID_TOKEN = "AUTH_INVALID_TOKEN"
AUTH_MISSING_TOKEN = "AUTH_MISSING_TOKEN"

# Authorization errors (403)
FORBIDDEN_NOT_OWNER = "FORBIDDEN_NOT_OWNER"
FORBIDDEN_INSUFFICIENT_PERMISSION = "FORBIDDEN_INSUFFICIENT_PERMISSION"

# Not found errors (404)
NOT_FOUND_RESOURCE = "NOT_FOUND_RESOURCE"
NOT_FOUND_CAPABILITY = "NOT_FOUND_CAPABILITY"
NOT_FOUND_UPLOAD = "NOT_FOUND_UPLOAD"

# Ingestion policy errors (413/415)
INGEST_FILE_TOO_LARGE = "INGEST_FILE_TOO_LARGE"
INGEST_UNSUPPORTED_TYPE = "INGEST_UNSUPPORTED_TYPE"

# Server errors (500)
INTERNAL_ERROR = "INTERNAL_ERROR"

# Blob store failed mid-batch (502)
STORE_FAILURE = "STORE_FAILURE"

# Service unavailable (503)
SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


# =============================================================================
# ERROR RESPONSE HELPERS
# =============================================================================


def error_response(
    code: str,
    message: str,
    status_code: int = 400,
    **extra: Any,
) -> JSONResponse:
    """Create a standardized error response.

    Args:
        code: Error code (e.g., VALIDATION_MISSING_FIELD)
        message: Human-readable error message
        status_code: HTTP status code (default 400)
        **extra: Additional keys merged into the ``error`` object

    Returns:
        JSONResponse with standardized error format
    """
    return JSONResponse(
        {
            "success": False,
            "error": {
                "code": code,
                "message": message,
                **extra,
            },
        },
        status_code=status_code,
    )


def validation_error(message: str, code: str = VALIDATION_INVALID_VALUE) -> JSONResponse:
    """Create a 400 validation error response."""
    return error_response(code, message, status_code=400)


def missing_field_error(field_name: str) -> JSONResponse:
    """Create a 400 error for missing required field."""
    return error_response(
        VALIDATION_MISSING_FIELD,
        f"{field_name} is required",
        status_code=400,
    )


def invalid_json_error() -> JSONResponse:
    """Create a 400 error for invalid JSON body."""
    return error_response(VALIDATION_INVALID_JSON, "Invalid JSON body", status_code=400)


def auth_error(message: str = "Authentication failed", code: str = AUTH_INVALID_TOKEN) -> JSONResponse:
    """Create a 401 authentication error response."""
    return error_response(code, message, status_code=401)


def forbidden_error(message: str = "Permission denied", code: str = FORBIDDEN_INSUFFICIENT_PERMISSION) -> JSONResponse:
    """Create a 403 forbidden error response."""
    return error_response(code, message, status_code=403)


def not_found_error(resource: str, code: str = NOT_FOUND_RESOURCE) -> JSONResponse:
    """Create a 404 not found error response."""
    return error_response(code, f"{resource} not found", status_code=404)


def rejected_error(reason: RejectionReason, message: str, file_name: str, index: int) -> JSONResponse:
    """Create a 413/415 response for a file refused by the ingestion policy."""
    if reason is RejectionReason.FILE_TOO_LARGE:
        code, status_code = INGEST_FILE_TOO_LARGE, 413
    else:
        code, status_code = INGEST_UNSUPPORTED_TYPE, 415
    return error_response(code, message, status_code=status_code, file_name=file_name, index=index)


def store_failure_error(file_name: str, committed: list[dict[str, Any]]) -> JSONResponse:
    """Create a 502 response for a partially committed batch.

    ``committed`` lists the records stored before the failure; they are
    valid and the client should not resend them.
    """
    return error_response(
        STORE_FAILURE,
        f"Failed to store {file_name}",
        status_code=502,
        file_name=file_name,
        committed=committed,
    )


def internal_error(
    message: str = "Internal server error",
    exc: BaseException | None = None,
) -> JSONResponse:
    """Create a 500 internal error response.

    Always includes a request_id for log correlation (the current
    correlation id when one is set). In debug mode (PASSDROP_DEBUG=1) the
    exception type and message are included too.

    Args:
        message: Base error message.
        exc: Optional exception to extract detail from. If None, the
             exception currently being handled is used.
    """
    request_id = get_correlation_id() or generate_correlation_id()

    error_body: dict = {
        "code": INTERNAL_ERROR,
        "message": message,
        "request_id": request_id,
    }

    if exc is None:
        exc = sys.exc_info()[1]

    if exc is not None:
        logger.error("request_id=%s %s: %s", request_id, type(exc).__name__, exc)
        if _DEBUG:
            error_body["exception"] = type(exc).__name__
            error_body["detail"] = str(exc)
            error_body["traceback"] = traceback.format_exception_only(type(exc), exc)[0].strip()

    return JSONResponse(
        {"success": False, "error": error_body},
        status_code=500,
    )


def service_unavailable_error(service: str) -> JSONResponse:
    """Create a 503 service unavailable error response."""
    return error_response(SERVICE_UNAVAILABLE, f"{service} not initialized", status_code=503)
