"""Server-specific test fixtures."""

from __future__ import annotations

from collections.abc import Generator

import pytest
from starlette.testclient import TestClient

from passdrop.audit import InMemoryAuditSink
from passdrop.ingestion.blobstore import InMemoryBlobStore
from passdrop.server.app import create_app
from passdrop.server.config import ServerSettings, hash_operator_key
from passdrop.server.state import Services, build_services

OPERATOR_KEY = "alice-secret-key"


@pytest.fixture
def clean_server_settings():
    """Reset server settings between tests."""
    import passdrop.server.config as config_module

    config_module._settings = None
    yield
    config_module._settings = None


@pytest.fixture
def settings(clean_env) -> ServerSettings:
    """Development settings: no operator keys, X-User-Id is trusted."""
    return ServerSettings(_env_file=None, public_base_url="https://drop.example.com")


@pytest.fixture
def keyed_settings(clean_env) -> ServerSettings:
    """Settings with an operator key for alice."""
    return ServerSettings(
        _env_file=None,
        public_base_url="https://drop.example.com",
        operator_keys={"alice": hash_operator_key(OPERATOR_KEY)},
    )


@pytest.fixture
def services(settings) -> Services:
    return build_services(settings, audit_sink=InMemoryAuditSink(), blob_store=InMemoryBlobStore())


@pytest.fixture
def client(settings, services) -> Generator[TestClient, None, None]:
    with TestClient(create_app(settings=settings, services=services)) as test_client:
        yield test_client


@pytest.fixture
def keyed_client(keyed_settings) -> Generator[TestClient, None, None]:
    services = build_services(keyed_settings, audit_sink=InMemoryAuditSink(), blob_store=InMemoryBlobStore())
    with TestClient(create_app(settings=keyed_settings, services=services)) as test_client:
        yield test_client


@pytest.fixture
def alice() -> dict[str, str]:
    """Headers identifying operator alice in development mode."""
    return {"X-User-Id": "alice"}


@pytest.fixture
def issue_pass(client, alice):
    """Issue an upload pass over HTTP and return the response body."""

    def _issue(headers: dict[str, str] | None = None, **body) -> dict:
        response = client.post("/api/v1/capabilities", json=body, headers=headers or alice)
        assert response.status_code == 201, response.text
        return response.json()

    return _issue
