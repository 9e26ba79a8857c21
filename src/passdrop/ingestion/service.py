# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Passdrop Contributors

"""Mobile ingestion service.

Orchestrates a phone-side upload end to end:

1. Resolve the bearer token through the TokenRegistry
2. Check the token grants the required permission
3. Validate every file in the batch (all-or-nothing)
4. Store each file's bytes, then record it in the ledger
5. Emit one ``file_uploaded`` audit event per stored file

Validation and commit are separate phases. Nothing is committed unless the
whole batch passes policy; commits then happen file by file, because the
blob store can fail independently for each one.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from ..audit import AuditAction, AuditSink
from ..capabilities import (
    PERMISSION_DOCUMENT_CREATE,
    ActionKind,
    CapabilityTarget,
    CapabilityToken,
    Clock,
    TokenRegistry,
    utc_now,
)
from ..core.exceptions import NotFoundError, ValidationException
from ..core.logging import redact_token_id
from ..links import Encoder, build_mobile_upload_url
from .blobstore import BlobStore, BlobStoreError
from .errors import ForbiddenError, IngestionRejectedError, StoreFailureError, UnauthorizedError
from .ledger import UploadLedger, UploadRecord
from .validator import IngestionValidator

logger = logging.getLogger(__name__)

# Bytes handed to the validator for optional content sniffing
SNIFF_BYTES = 16

DEFAULT_PASS_TTL_SECONDS = 86400


@dataclass(frozen=True)
class IncomingFile:
    """One file of a mobile submission.

    ``declared_size`` lets a transport report the size it saw on the wire;
    the larger of it and the actual payload length is what gets validated.
    """

    file_name: str
    media_type: str
    data: bytes = field(repr=False)
    declared_size: int | None = None

    @property
    def size_bytes(self) -> int:
        return max(len(self.data), self.declared_size or 0)


@dataclass(frozen=True)
class UploadPass:
    """A freshly issued upload capability plus what the operator shows the phone."""

    token: CapabilityToken
    url: str
    artifact: Any = None

    def to_dict(self) -> dict[str, Any]:
        data = {"token": self.token.to_dict(), "url": self.url}
        if self.artifact is not None:
            data["artifact"] = self.artifact
        return data


class MobileIngestionService:
    """Gate between untrusted mobile bearers and the upload ledger."""

    def __init__(
        self,
        registry: TokenRegistry,
        ledger: UploadLedger,
        blob_store: BlobStore,
        audit_sink: AuditSink,
        validator: IngestionValidator | None = None,
        base_url: str = "http://127.0.0.1:8430",
        encoder: Encoder | None = None,
        default_ttl_seconds: int = DEFAULT_PASS_TTL_SECONDS,
        clock: Clock | None = None,
    ) -> None:
        self.registry = registry
        self.ledger = ledger
        self.blob_store = blob_store
        self.audit_sink = audit_sink
        self.validator = validator or IngestionValidator()
        self.base_url = base_url
        self.encoder = encoder
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock or utc_now

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def authorize(self, token_id: str, required_permission: str) -> CapabilityToken:
        """Resolve a bearer token and check it grants ``required_permission``.

        Raises:
            UnauthorizedError: Unknown, revoked or expired token (not distinguished)
            ForbiddenError: Token lacks the permission
        """
        validation = self.registry.validate(token_id)
        if not validation:
            logger.warning(f"Rejected upload link {redact_token_id(token_id)}: {validation.reason.value}")
            raise UnauthorizedError()

        token = validation.token
        if not token.has_permission(required_permission):
            logger.warning(
                f"Upload link {redact_token_id(token_id)} lacks {required_permission} "
                f"(has {sorted(token.permissions)})"
            )
            raise ForbiddenError(required_permission)
        return token

    def check_batch(self, files: list[IncomingFile]) -> None:
        """Validation phase: every file must pass before anything is stored.

        Raises:
            ValidationException: Empty batch
            IngestionRejectedError: First file that fails policy
        """
        if not files:
            raise ValidationException("At least one file is required", field="files")

        for index, incoming in enumerate(files):
            verdict = self.validator.validate(
                incoming.size_bytes,
                incoming.media_type,
                head=incoming.data[:SNIFF_BYTES],
            )
            if not verdict:
                logger.info(f"Rejected batch at file {index} ({incoming.file_name}): {verdict.reason.value}")
                raise IngestionRejectedError(verdict.reason, incoming.file_name, index, verdict.message)

    async def submit(
        self,
        token_id: str,
        required_permission: str,
        files: Iterable[IncomingFile],
    ) -> list[UploadRecord]:
        """Ingest a batch of files on behalf of a bearer token.

        Args:
            token_id: Bearer id presented by the phone
            required_permission: Permission the action needs (e.g. document.create)
            files: Files in submission order

        Returns:
            The created upload records, in submission order

        Raises:
            UnauthorizedError: Token unknown or expired
            ForbiddenError: Token lacks required_permission
            IngestionRejectedError: Some file violates policy; nothing committed
            StoreFailureError: Blob store failed mid-batch; carries committed records
        """
        token = self.authorize(token_id, required_permission)
        batch = list(files)
        self.check_batch(batch)

        committed: list[UploadRecord] = []
        for incoming in batch:
            # Blob I/O happens outside every registry/ledger lock
            try:
                storage_ref = await self.blob_store.store(incoming.data, incoming.file_name, incoming.media_type)
            except Exception as e:  # Intentionally broad: any store failure is a per-file failure
                logger.error(
                    f"Blob store failed for {incoming.file_name} after {len(committed)} "
                    f"committed file(s): {type(e).__name__}: {e}"
                )
                raise StoreFailureError(incoming.file_name, committed) from e

            record = self.ledger.record(
                file_name=incoming.file_name,
                storage_ref=storage_ref,
                size_bytes=incoming.size_bytes,
                media_type=incoming.media_type,
                token_id=token.id,
            )
            committed.append(record)
            self._emit(
                token.subject_user_id,
                AuditAction.FILE_UPLOADED,
                "document",
                record.id,
                {
                    "fileName": record.file_name,
                    "fileSize": record.size_bytes,
                    "fileType": record.media_type,
                    "uploadMethod": "mobile_qr",
                    "subjectUserId": token.subject_user_id,
                },
            )

        logger.info(
            f"Ingested {len(committed)} file(s) via {redact_token_id(token.id)} for {token.subject_user_id}"
        )
        return committed

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def create_upload_pass(
        self,
        subject_user_id: str,
        ttl_seconds: int | None = None,
        permissions: Iterable[str] | None = None,
        target: CapabilityTarget | None = None,
        upload_target: str | None = None,
    ) -> UploadPass:
        """Issue a document-upload capability and build the link for the phone.

        Defaults to a 24 hour pass granting ``document.create``. The link is
        ``upload_target`` when given, otherwise the mobile upload URL for the
        token; it is run through the encoder when one is configured.
        """
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        try:
            expires_at = self._clock() + timedelta(seconds=ttl)
        except OverflowError as e:
            raise ValidationException("ttl_seconds is out of range", field="ttl_seconds", value=ttl) from e

        token = self.registry.issue(
            action_kind=ActionKind.DOCUMENT_UPLOAD,
            subject_user_id=subject_user_id,
            expires_at=expires_at,
            permissions=list(permissions) if permissions is not None else [PERMISSION_DOCUMENT_CREATE],
            target=target,
            upload_target=upload_target,
        )
        return self.build_pass(token)

    def build_pass(self, token: CapabilityToken) -> UploadPass:
        """Wrap an issued token with its link and encoded artifact; audits the issuance."""
        url = token.upload_target or build_mobile_upload_url(self.base_url, token.id)
        artifact = self.encoder(url) if self.encoder is not None else None
        self._emit(
            token.subject_user_id,
            AuditAction.CAPABILITY_ISSUED,
            "capability",
            redact_token_id(token.id),
            {
                "actionKind": token.action_kind.value,
                "permissions": sorted(token.permissions),
                "expiresAt": token.expires_at.isoformat(),
            },
        )
        return UploadPass(token=token, url=url, artifact=artifact)

    def revoke_pass(self, token_id: str, actor_id: str) -> bool:
        """Revoke a capability; audits only when something was revoked."""
        revoked = self.registry.revoke(token_id)
        if revoked:
            self._emit(actor_id, AuditAction.CAPABILITY_REVOKED, "capability", redact_token_id(token_id), {})
        return revoked

    async def delete_upload(self, record_id: str, actor_id: str) -> bool:
        """Administrative delete of an upload: ledger record, stored bytes, audit.

        Returns False if no such record exists.
        """
        try:
            record = self.ledger.get(record_id)
        except NotFoundError:
            return False
        if not self.ledger.delete(record_id):
            return False

        try:
            if not await self.blob_store.delete(record.storage_ref):
                logger.warning(f"Blob for upload {record_id} was already gone ({record.storage_ref})")
        except BlobStoreError as e:
            logger.warning(f"Upload {record_id} removed but its blob could not be deleted: {e}")

        self._emit(actor_id, AuditAction.FILE_DELETED, "document", record_id, {"fileName": record.file_name})
        return True

    def _emit(
        self,
        actor_id: str,
        action: AuditAction,
        object_kind: str,
        object_id: str,
        metadata: dict[str, Any],
    ) -> None:
        try:
            self.audit_sink.log_action(actor_id, action.value, object_kind, object_id, metadata)
        except Exception as e:  # Intentionally broad: sink errors never fail ingestion
            logger.warning(f"Failed to emit audit event {action.value}: {e}")
