"""Passdrop HTTP server.

Usage:
    # Start the server
    passdrop-server

    # Or with uvicorn directly
    uvicorn passdrop.server.app:create_app --factory --port 8430
"""

from .config import ServerSettings, get_settings

__all__ = [
    "ServerSettings",
    "get_settings",
]
