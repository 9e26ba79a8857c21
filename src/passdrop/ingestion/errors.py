# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Passdrop Contributors

"""Errors raised at the mobile ingestion boundary.

This is the small closed set callers see. Token lookup failures are
collapsed into UnauthorizedError so a caller cannot tell an unknown id from
an expired one.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..core.exceptions import PassdropException
from .validator import RejectionReason

if TYPE_CHECKING:
    from .ledger import UploadRecord


class IngestionError(PassdropException):
    """Base error for mobile ingestion."""


class UnauthorizedError(IngestionError):
    """The presented token is unknown, revoked or expired."""

    def __init__(self, message: str = "Invalid or expired upload link"):
        super().__init__(message)


class ForbiddenError(IngestionError):
    """The token is valid but lacks the required permission."""

    def __init__(self, required_permission: str):
        super().__init__(
            f"Upload link does not grant {required_permission}",
            {"required_permission": required_permission},
        )
        self.required_permission = required_permission


class IngestionRejectedError(IngestionError):
    """A file in the batch violates the ingestion policy; nothing was committed."""

    def __init__(self, reason: RejectionReason, file_name: str, index: int, message: str = ""):
        super().__init__(
            message or f"File rejected: {reason.value}",
            {"reason": reason.value, "file_name": file_name, "index": index},
        )
        self.reason = reason
        self.file_name = file_name
        self.index = index


class StoreFailureError(IngestionError):
    """Storing one file failed after earlier files in the batch were committed.

    The operation partially succeeded: ``committed`` holds the records
    written before the failure and they stay valid.
    """

    def __init__(self, file_name: str, committed: list[UploadRecord]):
        super().__init__(
            f"Failed to store {file_name}",
            {"file_name": file_name, "committed": len(committed)},
        )
        self.file_name = file_name
        self.committed = list(committed)
