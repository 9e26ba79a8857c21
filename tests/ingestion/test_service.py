"""Tests for MobileIngestionService.

Tests cover:
- End-to-end submission (token -> policy -> blob store -> ledger -> audit)
- Unauthorized/Forbidden collapsing at the service boundary
- All-or-nothing batch validation
- Partial commit when the blob store fails mid-batch
- Cancellation keeps already committed records
- Operator actions: upload passes, revocation, deletion
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from passdrop.audit import AuditAction
from passdrop.capabilities import (
    PERMISSION_DOCUMENT_CREATE,
    PERMISSION_FOLDER_READ,
    ActionKind,
    CapabilityTarget,
)
from passdrop.core.exceptions import ValidationException
from passdrop.ingestion.blobstore import BlobStoreError, InMemoryBlobStore
from passdrop.ingestion.errors import (
    ForbiddenError,
    IngestionRejectedError,
    StoreFailureError,
    UnauthorizedError,
)
from passdrop.ingestion.service import IncomingFile, MobileIngestionService
from passdrop.ingestion.validator import IngestionPolicy, IngestionValidator, RejectionReason

MIB = 1024 * 1024


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def upload_token(registry, clock):
    """A 24 hour document upload token for U1."""
    return registry.issue(
        action_kind=ActionKind.DOCUMENT_UPLOAD,
        subject_user_id="U1",
        expires_at=clock() + timedelta(hours=24),
        permissions=[PERMISSION_DOCUMENT_CREATE],
    )


class FailingBlobStore(InMemoryBlobStore):
    """Fails on the Nth store call (1-based)."""

    def __init__(self, fail_on: int):
        super().__init__()
        self.fail_on = fail_on
        self.calls = 0

    async def store(self, data: bytes, file_name: str, media_type: str) -> str:
        self.calls += 1
        if self.calls == self.fail_on:
            raise BlobStoreError("disk full")
        return await super().store(data, file_name, media_type)


class UndeletableBlobStore(InMemoryBlobStore):
    """Stores normally; every delete fails."""

    async def delete(self, storage_ref: str) -> bool:
        raise BlobStoreError("permission denied")


class BlockingBlobStore(InMemoryBlobStore):
    """Stores the first file, then blocks until released."""

    def __init__(self):
        super().__init__()
        self.calls = 0
        self.blocked = asyncio.Event()
        self.release = asyncio.Event()

    async def store(self, data: bytes, file_name: str, media_type: str) -> str:
        self.calls += 1
        if self.calls > 1:
            self.blocked.set()
            await self.release.wait()
        return await super().store(data, file_name, media_type)


def make_service(registry, ledger, blob_store, audit_sink, clock, **kwargs) -> MobileIngestionService:
    return MobileIngestionService(
        registry=registry,
        ledger=ledger,
        blob_store=blob_store,
        audit_sink=audit_sink,
        base_url="https://drop.example.com",
        clock=clock,
        **kwargs,
    )


# =============================================================================
# SUBMIT TESTS
# =============================================================================


class TestSubmit:
    async def test_single_jpeg(self, service, upload_token, ledger, blob_store, audit_sink):
        jpeg = IncomingFile("photo.jpg", "image/jpeg", b"\xff\xd8\xff\xe0" + bytes(2 * MIB - 4))

        records = await service.submit(upload_token.id, PERMISSION_DOCUMENT_CREATE, [jpeg])

        assert len(records) == 1
        record = records[0]
        assert record.file_name == "photo.jpg"
        assert record.size_bytes == 2 * MIB
        assert record.media_type == "image/jpeg"
        assert record.token_id == upload_token.id
        assert ledger.list() == records
        assert blob_store.read(record.storage_ref) == jpeg.data

        events = audit_sink.query(actor_id="U1")
        assert len(events) == 1
        assert events[0].action == AuditAction.FILE_UPLOADED
        assert events[0].object_kind == "document"
        assert events[0].object_id == record.id
        assert events[0].metadata == {
            "fileName": "photo.jpg",
            "fileSize": 2 * MIB,
            "fileType": "image/jpeg",
            "uploadMethod": "mobile_qr",
            "subjectUserId": "U1",
        }

    async def test_batch_preserves_order(self, service, upload_token, audit_sink, make_file):
        files = [make_file(f"{i}.pdf") for i in range(3)]

        records = await service.submit(upload_token.id, PERMISSION_DOCUMENT_CREATE, files)

        assert [r.file_name for r in records] == ["0.pdf", "1.pdf", "2.pdf"]
        assert audit_sink.count(action="file_uploaded") == 3

    async def test_token_still_usable_after_submit(self, service, upload_token, make_file):
        await service.submit(upload_token.id, PERMISSION_DOCUMENT_CREATE, [make_file()])
        await service.submit(upload_token.id, PERMISSION_DOCUMENT_CREATE, [make_file()])

        assert len(service.ledger) == 2

    async def test_resubmission_creates_new_records(self, service, upload_token, make_file):
        first = await service.submit(upload_token.id, PERMISSION_DOCUMENT_CREATE, [make_file()])
        second = await service.submit(upload_token.id, PERMISSION_DOCUMENT_CREATE, [make_file()])

        assert first[0].id != second[0].id

    async def test_expired_token_unauthorized(self, service, upload_token, clock, ledger, audit_sink, make_file):
        clock.advance(24 * 3600 + 1)

        with pytest.raises(UnauthorizedError):
            await service.submit(upload_token.id, PERMISSION_DOCUMENT_CREATE, [make_file()])

        assert len(ledger) == 0
        assert audit_sink.count() == 0

    async def test_unknown_and_expired_look_the_same(self, service, upload_token, clock, make_file):
        with pytest.raises(UnauthorizedError) as unknown:
            await service.submit("cap_unknown", PERMISSION_DOCUMENT_CREATE, [make_file()])

        clock.advance(25 * 3600)
        with pytest.raises(UnauthorizedError) as expired:
            await service.submit(upload_token.id, PERMISSION_DOCUMENT_CREATE, [make_file()])

        assert unknown.value.to_dict() == expired.value.to_dict()

    async def test_revoked_token_unauthorized(self, service, upload_token, registry, make_file):
        registry.revoke(upload_token.id)

        with pytest.raises(UnauthorizedError):
            await service.submit(upload_token.id, PERMISSION_DOCUMENT_CREATE, [make_file()])

    async def test_missing_permission_forbidden(self, service, upload_token, ledger, make_file):
        with pytest.raises(ForbiddenError) as exc_info:
            await service.submit(upload_token.id, PERMISSION_FOLDER_READ, [make_file()])

        assert exc_info.value.required_permission == PERMISSION_FOLDER_READ
        assert len(ledger) == 0

    async def test_oversized_file_rejects_whole_batch(
        self, service, upload_token, ledger, blob_store, audit_sink, make_file
    ):
        files = [
            make_file("ok.pdf"),
            make_file("huge.pdf", declared_size=50 * MIB + 1),
        ]

        with pytest.raises(IngestionRejectedError) as exc_info:
            await service.submit(upload_token.id, PERMISSION_DOCUMENT_CREATE, files)

        assert exc_info.value.reason is RejectionReason.FILE_TOO_LARGE
        assert exc_info.value.file_name == "huge.pdf"
        assert exc_info.value.index == 1
        assert len(ledger) == 0
        assert len(blob_store) == 0
        assert audit_sink.count() == 0

    async def test_unsupported_type_rejected(self, service, upload_token, ledger, make_file):
        with pytest.raises(IngestionRejectedError) as exc_info:
            await service.submit(
                upload_token.id,
                PERMISSION_DOCUMENT_CREATE,
                [make_file("anim.gif", "image/gif", b"GIF89a")],
            )

        assert exc_info.value.reason is RejectionReason.UNSUPPORTED_TYPE
        assert len(ledger) == 0

    async def test_corrected_batch_after_rejection(self, service, upload_token, ledger, make_file):
        with pytest.raises(IngestionRejectedError):
            await service.submit(
                upload_token.id,
                PERMISSION_DOCUMENT_CREATE,
                [make_file("a.pdf"), make_file("b.gif", "image/gif")],
            )

        records = await service.submit(
            upload_token.id,
            PERMISSION_DOCUMENT_CREATE,
            [make_file("a.pdf"), make_file("b.png", "image/png")],
        )

        assert len(records) == 2
        assert len(ledger) == 2

    async def test_declared_size_cannot_understate_payload(self, registry, ledger, audit_sink, clock, upload_token):
        service = make_service(
            registry,
            ledger,
            InMemoryBlobStore(),
            audit_sink,
            clock,
            validator=IngestionValidator(IngestionPolicy(max_bytes=10)),
        )
        sneaky = IncomingFile("a.pdf", "application/pdf", b"%PDF-" + bytes(100), declared_size=1)

        with pytest.raises(IngestionRejectedError):
            await service.submit(upload_token.id, PERMISSION_DOCUMENT_CREATE, [sneaky])

    async def test_content_sniffing(self, registry, ledger, audit_sink, clock, upload_token):
        service = make_service(
            registry,
            ledger,
            InMemoryBlobStore(),
            audit_sink,
            clock,
            validator=IngestionValidator(IngestionPolicy(sniff_content=True)),
        )
        disguised = IncomingFile("a.pdf", "application/pdf", b"MZ\x90\x00 not a pdf")

        with pytest.raises(IngestionRejectedError) as exc_info:
            await service.submit(upload_token.id, PERMISSION_DOCUMENT_CREATE, [disguised])
        assert exc_info.value.reason is RejectionReason.UNSUPPORTED_TYPE

    async def test_empty_batch(self, service, upload_token):
        with pytest.raises(ValidationException):
            await service.submit(upload_token.id, PERMISSION_DOCUMENT_CREATE, [])

    async def test_authorization_checked_before_files(self, service, make_file):
        # An unauthorized caller learns nothing about policy
        with pytest.raises(UnauthorizedError):
            await service.submit("cap_unknown", PERMISSION_DOCUMENT_CREATE, [make_file("x.gif", "image/gif")])


# =============================================================================
# PARTIAL FAILURE TESTS
# =============================================================================


class TestStoreFailure:
    async def test_reports_committed_prefix(self, registry, ledger, audit_sink, clock, upload_token, make_file):
        store = FailingBlobStore(fail_on=3)
        service = make_service(registry, ledger, store, audit_sink, clock)
        files = [make_file(f"{i}.pdf") for i in range(4)]

        with pytest.raises(StoreFailureError) as exc_info:
            await service.submit(upload_token.id, PERMISSION_DOCUMENT_CREATE, files)

        error = exc_info.value
        assert error.file_name == "2.pdf"
        assert [r.file_name for r in error.committed] == ["0.pdf", "1.pdf"]
        assert isinstance(error.__cause__, BlobStoreError)
        # Committed records stay; nothing after the failure was attempted
        assert {r.id for r in ledger.list()} == {r.id for r in error.committed}
        assert store.calls == 3
        assert audit_sink.count(action="file_uploaded") == 2

    async def test_first_file_fails(self, registry, ledger, audit_sink, clock, upload_token, make_file):
        service = make_service(registry, ledger, FailingBlobStore(fail_on=1), audit_sink, clock)

        with pytest.raises(StoreFailureError) as exc_info:
            await service.submit(upload_token.id, PERMISSION_DOCUMENT_CREATE, [make_file()])

        assert exc_info.value.committed == []
        assert len(ledger) == 0

    async def test_audit_failure_does_not_break_ingestion(self, registry, ledger, clock, upload_token, make_file):
        sink = MagicMock()
        sink.log_action.side_effect = RuntimeError("audit backend down")
        service = make_service(registry, ledger, InMemoryBlobStore(), sink, clock)

        records = await service.submit(upload_token.id, PERMISSION_DOCUMENT_CREATE, [make_file()])

        assert len(records) == 1
        assert sink.log_action.call_count == 1


class TestCancellation:
    async def test_cancel_mid_batch_keeps_committed(self, registry, ledger, audit_sink, clock, upload_token, make_file):
        store = BlockingBlobStore()
        service = make_service(registry, ledger, store, audit_sink, clock)
        files = [make_file(f"{i}.pdf") for i in range(3)]

        task = asyncio.create_task(service.submit(upload_token.id, PERMISSION_DOCUMENT_CREATE, files))
        await store.blocked.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert [r.file_name for r in ledger.list()] == ["0.pdf"]
        assert audit_sink.count(action="file_uploaded") == 1


# =============================================================================
# OPERATOR ACTION TESTS
# =============================================================================


class TestCreateUploadPass:
    def test_defaults(self, service, clock, audit_sink):
        upload_pass = service.create_upload_pass("U1")

        token = upload_pass.token
        assert token.action_kind is ActionKind.DOCUMENT_UPLOAD
        assert token.permissions == frozenset({PERMISSION_DOCUMENT_CREATE})
        assert token.expires_at == clock() + timedelta(hours=24)
        assert upload_pass.url == f"https://drop.example.com/mobile-upload/{token.id}"
        assert upload_pass.artifact is None

        events = audit_sink.query(action="capability_issued")
        assert len(events) == 1
        assert events[0].actor_id == "U1"
        # The bearer secret never reaches the audit log
        assert token.id not in str(events[0].to_dict())

    def test_custom_ttl_and_target(self, service, clock):
        upload_pass = service.create_upload_pass(
            "U1",
            ttl_seconds=600,
            target=CapabilityTarget.document("doc-7"),
        )

        assert upload_pass.token.expires_at == clock() + timedelta(seconds=600)
        assert upload_pass.token.target == CapabilityTarget.document("doc-7")

    def test_upload_target_used_as_url(self, service):
        upload_pass = service.create_upload_pass("U1", upload_target="https://cdn.example.com/in")
        assert upload_pass.url == "https://cdn.example.com/in"

    def test_encoder_receives_url(self, registry, ledger, blob_store, audit_sink, clock):
        encoder = MagicMock(return_value="data:image/png;base64,AAAA")
        service = make_service(registry, ledger, blob_store, audit_sink, clock, encoder=encoder)

        upload_pass = service.create_upload_pass("U1")

        encoder.assert_called_once_with(upload_pass.url)
        assert upload_pass.artifact == "data:image/png;base64,AAAA"
        assert upload_pass.to_dict()["artifact"] == "data:image/png;base64,AAAA"

    async def test_pass_works_for_submit(self, service, make_file):
        upload_pass = service.create_upload_pass("U1")

        records = await service.submit(upload_pass.token.id, PERMISSION_DOCUMENT_CREATE, [make_file()])

        assert len(records) == 1

    def test_zero_ttl_rejected(self, service):
        with pytest.raises(ValidationException):
            service.create_upload_pass("U1", ttl_seconds=0)

    @pytest.mark.parametrize("ttl_seconds", [10**12, -(10**12)])
    def test_out_of_range_ttl_rejected(self, service, registry, audit_sink, ttl_seconds):
        with pytest.raises(ValidationException) as exc_info:
            service.create_upload_pass("U1", ttl_seconds=ttl_seconds)

        assert exc_info.value.field == "ttl_seconds"
        assert len(registry) == 0
        assert audit_sink.count(action="capability_issued") == 0


class TestRevokePass:
    def test_revoke_audits(self, service, audit_sink):
        upload_pass = service.create_upload_pass("U1")

        assert service.revoke_pass(upload_pass.token.id, actor_id="U1") is True
        assert audit_sink.count(action="capability_revoked", actor_id="U1") == 1

    def test_revoke_unknown_not_audited(self, service, audit_sink):
        assert service.revoke_pass("cap_unknown", actor_id="U1") is False
        assert audit_sink.count(action="capability_revoked") == 0


class TestDeleteUpload:
    async def test_removes_record_and_blob(self, service, upload_token, blob_store, ledger, audit_sink, make_file):
        [record] = await service.submit(upload_token.id, PERMISSION_DOCUMENT_CREATE, [make_file()])

        assert await service.delete_upload(record.id, actor_id="admin") is True

        assert len(ledger) == 0
        assert blob_store.read(record.storage_ref) is None
        events = audit_sink.query(action="file_deleted")
        assert events[0].actor_id == "admin"
        assert events[0].object_id == record.id

    async def test_unknown_record(self, service, audit_sink):
        assert await service.delete_upload("nope", actor_id="admin") is False
        assert audit_sink.count(action="file_deleted") == 0

    async def test_blob_already_gone(self, service, upload_token, blob_store, make_file):
        [record] = await service.submit(upload_token.id, PERMISSION_DOCUMENT_CREATE, [make_file()])
        await blob_store.delete(record.storage_ref)

        assert await service.delete_upload(record.id, actor_id="admin") is True

    async def test_blob_delete_failure_still_audited(
        self, registry, ledger, audit_sink, clock, upload_token, make_file
    ):
        store = UndeletableBlobStore()
        service = make_service(registry, ledger, store, audit_sink, clock)
        [record] = await service.submit(upload_token.id, PERMISSION_DOCUMENT_CREATE, [make_file()])

        assert await service.delete_upload(record.id, actor_id="admin") is True

        assert len(ledger) == 0
        assert audit_sink.count(action="file_deleted", actor_id="admin") == 1
