# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Passdrop Contributors

"""Mobile ingestion: policy, ledger, blob storage and the service tying them together."""

from .blobstore import BlobStore, BlobStoreError, FileBlobStore, InMemoryBlobStore
from .errors import (
    ForbiddenError,
    IngestionError,
    IngestionRejectedError,
    StoreFailureError,
    UnauthorizedError,
)
from .ledger import UploadLedger, UploadRecord, UploadStats
from .service import IncomingFile, MobileIngestionService, UploadPass
from .validator import IngestionPolicy, IngestionValidator, RejectionReason, Verdict, validate_file

__all__ = [
    "BlobStore",
    "BlobStoreError",
    "FileBlobStore",
    "InMemoryBlobStore",
    "IngestionError",
    "UnauthorizedError",
    "ForbiddenError",
    "IngestionRejectedError",
    "StoreFailureError",
    "UploadLedger",
    "UploadRecord",
    "UploadStats",
    "IncomingFile",
    "MobileIngestionService",
    "UploadPass",
    "IngestionPolicy",
    "IngestionValidator",
    "RejectionReason",
    "Verdict",
    "validate_file",
]
