# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Passdrop Contributors

"""Upload ledger - append-only metadata for accepted uploads.

The ledger records where a file went (the opaque storage reference from the
blob store), never the bytes themselves. Records are immutable; the only
removal path is an explicit administrative delete.
"""

from __future__ import annotations

import itertools
import logging
import threading
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..capabilities import Clock, utc_now
from ..core.exceptions import NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadRecord:
    """Metadata for one accepted file."""

    id: str
    file_name: str
    storage_ref: str
    uploaded_at: datetime
    size_bytes: int
    media_type: str
    token_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses. The token id is a secret and is left out."""
        return {
            "id": self.id,
            "file_name": self.file_name,
            "storage_ref": self.storage_ref,
            "uploaded_at": self.uploaded_at.isoformat(),
            "size_bytes": self.size_bytes,
            "media_type": self.media_type,
        }


@dataclass(frozen=True)
class UploadStats:
    """Aggregate view of the ledger."""

    total_files: int = 0
    total_size: int = 0
    file_types: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_files": self.total_files,
            "total_size": self.total_size,
            "file_types": dict(self.file_types),
        }


class UploadLedger:
    """Thread-safe in-memory ledger of upload records."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or utc_now
        self._records: dict[str, UploadRecord] = {}
        # Arrival sequence, breaks uploaded_at ties in listings
        self._sequence: dict[str, int] = {}
        self._counter = itertools.count()
        self._lock = threading.Lock()

    def record(
        self,
        file_name: str,
        storage_ref: str,
        size_bytes: int,
        media_type: str,
        token_id: str | None = None,
    ) -> UploadRecord:
        """Append a record with a fresh id stamped with the current time."""
        record = UploadRecord(
            id=str(uuid.uuid4()),
            file_name=file_name,
            storage_ref=storage_ref,
            uploaded_at=self._clock(),
            size_bytes=size_bytes,
            media_type=media_type,
            token_id=token_id,
        )
        with self._lock:
            self._records[record.id] = record
            self._sequence[record.id] = next(self._counter)

        logger.info(f"Recorded upload {record.id}: {file_name} ({size_bytes} bytes, {media_type})")
        return record

    def list(self, limit: int | None = None) -> list[UploadRecord]:
        """Records, most recent first."""
        with self._lock:
            ordered = sorted(
                self._records.values(),
                key=lambda r: (r.uploaded_at, self._sequence[r.id]),
                reverse=True,
            )
        if limit is not None:
            ordered = ordered[:limit]
        return ordered

    def get(self, record_id: str) -> UploadRecord:
        """Fetch a record by id.

        Raises:
            NotFoundError: If no record has this id
        """
        with self._lock:
            record = self._records.get(record_id)
        if record is None:
            raise NotFoundError("upload", record_id)
        return record

    def delete(self, record_id: str) -> bool:
        """Remove a record. Idempotent; True only when something was removed."""
        with self._lock:
            record = self._records.pop(record_id, None)
            self._sequence.pop(record_id, None)
        if record is None:
            return False
        logger.info(f"Deleted upload record {record_id} ({record.file_name})")
        return True

    def stats(self) -> UploadStats:
        """Totals plus a count per top-level media type (image, application, ...)."""
        with self._lock:
            records = list(self._records.values())
        file_types = Counter((r.media_type.split("/")[0] or "unknown") for r in records)
        return UploadStats(
            total_files=len(records),
            total_size=sum(r.size_bytes for r in records),
            file_types=dict(file_types),
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
