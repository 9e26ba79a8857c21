# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Passdrop Contributors

"""Starlette ASGI application for the Passdrop server.

Operators issue short-lived upload passes; a phone that scans one posts
files straight into the upload ledger without ever logging in.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import Any

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from ..core.logging import configure_logging, correlation_context
from ..links import MOBILE_UPLOAD_PATH
from .capability_endpoints import (
    issue_capability_endpoint,
    list_capabilities_endpoint,
    revoke_capability_endpoint,
)
from .config import ServerSettings, get_settings
from .state import Services, build_services
from .upload_endpoints import (
    delete_upload_endpoint,
    describe_pass_endpoint,
    get_upload_endpoint,
    list_uploads_endpoint,
    mobile_upload_endpoint,
    upload_stats_endpoint,
)

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# API version prefix for all REST endpoints
API_V1 = "/api/v1"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Scope every request in a correlation id and echo it back.

    A client-supplied X-Request-ID is reused; otherwise one is generated.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER) or None
        with correlation_context(incoming) as request_id:
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


async def health_endpoint(request: Request) -> JSONResponse:
    """Health check endpoint."""
    settings: ServerSettings = request.app.state.settings
    services: Services = request.app.state.services

    health_data: dict[str, Any] = {
        "status": "healthy",
        "server": settings.server_name,
        "version": settings.server_version,
        "live_capabilities": len(services.registry),
        "uploads": len(services.ledger),
    }
    return JSONResponse(health_data)


@asynccontextmanager
async def lifespan(app: Starlette):
    """Application lifespan handler."""
    settings: ServerSettings = app.state.settings
    logger.info(f"Starting Passdrop server on {settings.host}:{settings.port} (links: {settings.base_url})")

    yield

    purged = app.state.services.registry.purge_expired()
    logger.info(f"Passdrop server shutting down ({purged} expired capabilities purged)")


def create_app(
    settings: ServerSettings | None = None,
    services: Services | None = None,
) -> Starlette:
    """Create the Starlette ASGI application.

    Args:
        settings: Server settings (global settings if None)
        services: Pre-wired component graph (built from settings if None)
    """
    settings = settings or get_settings()
    services = services or build_services(settings)

    routes = [
        Route(f"{API_V1}/health", health_endpoint, methods=["GET"]),
        # Operator: upload passes
        Route(f"{API_V1}/capabilities", issue_capability_endpoint, methods=["POST"]),
        Route(f"{API_V1}/capabilities", list_capabilities_endpoint, methods=["GET"]),
        Route(f"{API_V1}/capabilities/{{id}}", revoke_capability_endpoint, methods=["DELETE"]),
        # Mobile: the pass id is the credential
        Route(f"{API_V1}{MOBILE_UPLOAD_PATH}/{{token_id}}", describe_pass_endpoint, methods=["GET"]),
        Route(f"{API_V1}{MOBILE_UPLOAD_PATH}/{{token_id}}", mobile_upload_endpoint, methods=["POST"]),
        # Unversioned alias matching the links handed to phones
        Route(f"{MOBILE_UPLOAD_PATH}/{{token_id}}", describe_pass_endpoint, methods=["GET"]),
        Route(f"{MOBILE_UPLOAD_PATH}/{{token_id}}", mobile_upload_endpoint, methods=["POST"]),
        # Operator: upload ledger
        Route(f"{API_V1}/uploads", list_uploads_endpoint, methods=["GET"]),
        Route(f"{API_V1}/uploads/stats", upload_stats_endpoint, methods=["GET"]),
        Route(f"{API_V1}/uploads/{{id}}", get_upload_endpoint, methods=["GET"]),
        Route(f"{API_V1}/uploads/{{id}}", delete_upload_endpoint, methods=["DELETE"]),
    ]

    middleware = [
        Middleware(CorrelationIdMiddleware),
        Middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins,
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type", "X-User-Id", REQUEST_ID_HEADER],
            expose_headers=[REQUEST_ID_HEADER],
        ),
    ]

    app = Starlette(
        routes=routes,
        middleware=middleware,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = services
    return app


def run() -> None:
    """Run the server using uvicorn."""
    import uvicorn

    settings = get_settings()
    configure_logging()

    logger.info(f"Starting Passdrop server on {settings.host}:{settings.port}")

    uvicorn.run(
        "passdrop.server.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level="info",
    )


if __name__ == "__main__":
    run()
