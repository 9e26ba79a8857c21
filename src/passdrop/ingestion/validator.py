# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Passdrop Contributors

"""Ingestion policy for mobile uploads.

Accepts or rejects a file from its metadata alone: size and the media type
the client declared. The defaults must not change, legacy mobile clients
are built against them:
- more than 50 MiB -> FILE_TOO_LARGE
- anything but JPEG, PNG, TIFF or PDF -> UNSUPPORTED_TYPE

Size is checked before type.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from ..core.config import DEFAULT_ALLOWED_MEDIA_TYPES, DEFAULT_MAX_UPLOAD_BYTES
from ..core.exceptions import ValidationException

# Leading bytes for each accepted type, used only when sniffing is enabled
MAGIC_SIGNATURES: dict[str, tuple[bytes, ...]] = {
    "image/jpeg": (b"\xff\xd8\xff",),
    "image/png": (b"\x89PNG\r\n\x1a\n",),
    "image/tiff": (b"II*\x00", b"MM\x00*"),
    "application/pdf": (b"%PDF-",),
}


class RejectionReason(StrEnum):
    """Why a file was refused."""

    FILE_TOO_LARGE = "file_too_large"
    UNSUPPORTED_TYPE = "unsupported_type"


@dataclass(frozen=True)
class IngestionPolicy:
    """Static limits applied to every file."""

    max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    allowed_types: frozenset[str] = field(default_factory=lambda: frozenset(DEFAULT_ALLOWED_MEDIA_TYPES))
    sniff_content: bool = False


@dataclass(frozen=True)
class Verdict:
    """Accept/reject outcome for one file."""

    accepted: bool
    reason: RejectionReason | None = None
    message: str = ""

    def __bool__(self) -> bool:
        return self.accepted


ACCEPTED = Verdict(accepted=True)


class IngestionValidator:
    """Stateless gate applying an IngestionPolicy."""

    def __init__(self, policy: IngestionPolicy | None = None):
        self.policy = policy or IngestionPolicy()

    def validate(
        self,
        size_bytes: int,
        declared_media_type: str | None,
        head: bytes | None = None,
    ) -> Verdict:
        """Check one file against the policy.

        Args:
            size_bytes: File size in bytes
            declared_media_type: Media type the client claimed
            head: Optional leading bytes, consulted only when the policy sniffs content

        Raises:
            ValidationException: If size_bytes is negative
        """
        if size_bytes < 0:
            raise ValidationException("size_bytes cannot be negative", field="size_bytes", value=size_bytes)

        if size_bytes > self.policy.max_bytes:
            limit_mb = self.policy.max_bytes // (1024 * 1024)
            return Verdict(
                accepted=False,
                reason=RejectionReason.FILE_TOO_LARGE,
                message=f"File size exceeds {limit_mb}MB limit",
            )

        if declared_media_type not in self.policy.allowed_types:
            return Verdict(
                accepted=False,
                reason=RejectionReason.UNSUPPORTED_TYPE,
                message="File type not supported",
            )

        if self.policy.sniff_content and head is not None and not _matches_signature(declared_media_type, head):
            return Verdict(
                accepted=False,
                reason=RejectionReason.UNSUPPORTED_TYPE,
                message="File content does not match its declared type",
            )

        return ACCEPTED


def _matches_signature(media_type: str, head: bytes) -> bool:
    signatures = MAGIC_SIGNATURES.get(media_type)
    if signatures is None:
        # Operator-added type with no known signature
        return True
    return any(head.startswith(sig) for sig in signatures)


_default_validator = IngestionValidator()


def validate_file(size_bytes: int, declared_media_type: str | None) -> Verdict:
    """Validate against the default policy."""
    return _default_validator.validate(size_bytes, declared_media_type)
