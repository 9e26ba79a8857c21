# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Passdrop Contributors

"""Per-application service wiring.

Everything an endpoint needs hangs off ``app.state.services``; there are no
module-level singletons, so each app (and each test) owns its own registry
and ledger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from starlette.requests import Request

from ..audit import AuditSink, LoggingAuditSink
from ..capabilities import TokenRegistry
from ..ingestion.blobstore import BlobStore, FileBlobStore, InMemoryBlobStore
from ..ingestion.ledger import UploadLedger
from ..ingestion.service import MobileIngestionService
from ..ingestion.validator import IngestionPolicy, IngestionValidator
from ..links import Encoder
from .config import ServerSettings

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """The component graph behind the HTTP surface."""

    registry: TokenRegistry
    ledger: UploadLedger
    blob_store: BlobStore
    audit_sink: AuditSink
    ingestion: MobileIngestionService


def build_services(
    settings: ServerSettings,
    audit_sink: AuditSink | None = None,
    blob_store: BlobStore | None = None,
    encoder: Encoder | None = None,
) -> Services:
    """Wire a fresh component graph from settings."""
    registry = TokenRegistry(max_ttl_seconds=settings.max_token_ttl_seconds)
    ledger = UploadLedger()

    if blob_store is None:
        if settings.blob_dir:
            blob_store = FileBlobStore(settings.blob_dir)
            logger.info(f"Storing uploads under {settings.blob_dir}")
        else:
            blob_store = InMemoryBlobStore()
            logger.warning("No blob directory configured - uploads are kept in memory")

    audit_sink = audit_sink or LoggingAuditSink()
    ingestion = MobileIngestionService(
        registry=registry,
        ledger=ledger,
        blob_store=blob_store,
        audit_sink=audit_sink,
        validator=IngestionValidator(IngestionPolicy(**settings.ingestion_policy_kwargs)),
        base_url=settings.base_url,
        encoder=encoder,
        default_ttl_seconds=settings.default_token_ttl_seconds,
    )
    return Services(
        registry=registry,
        ledger=ledger,
        blob_store=blob_store,
        audit_sink=audit_sink,
        ingestion=ingestion,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
