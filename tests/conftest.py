"""Global test fixtures for the Passdrop test suite."""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta

import pytest

from passdrop.audit import InMemoryAuditSink
from passdrop.capabilities import TokenRegistry
from passdrop.ingestion.blobstore import InMemoryBlobStore
from passdrop.ingestion.ledger import UploadLedger
from passdrop.ingestion.service import IncomingFile, MobileIngestionService

# Leading bytes that satisfy content sniffing for each accepted type
PDF_BYTES = b"%PDF-1.7\n" + b"0" * 64
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"0" * 64
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"0" * 64


class FakeClock:
    """Manually advanced clock returning aware UTC datetimes."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all PASSDROP_ environment variables."""
    for key in list(os.environ.keys()):
        if key.startswith("PASSDROP_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def clean_config():
    """Reset the core config singleton between tests."""
    import passdrop.core.config as config_module

    config_module._config = None
    yield
    config_module._config = None


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock) -> TokenRegistry:
    return TokenRegistry(clock=clock)


@pytest.fixture
def ledger(clock) -> UploadLedger:
    return UploadLedger(clock=clock)


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def service(registry, ledger, blob_store, audit_sink, clock) -> MobileIngestionService:
    return MobileIngestionService(
        registry=registry,
        ledger=ledger,
        blob_store=blob_store,
        audit_sink=audit_sink,
        base_url="https://drop.example.com",
        clock=clock,
    )


@pytest.fixture
def make_file():
    """Factory for IncomingFile with sensible defaults (a small PDF)."""

    def _make(name: str = "scan.pdf", media_type: str = "application/pdf", data: bytes = PDF_BYTES, **kwargs):
        return IncomingFile(file_name=name, media_type=media_type, data=data, **kwargs)

    return _make
