# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Passdrop Contributors

"""Blob store boundary.

Uploaded bytes live outside the core. The ingestion service only needs
``store`` (returns an opaque storage reference) and ``delete``. Two local
implementations are provided; production deployments plug in their own.
"""

from __future__ import annotations

import asyncio
import logging
import os
import stat
import threading
import uuid
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class BlobStoreError(Exception):
    """A blob store call failed."""


class BlobStore(Protocol):
    """Protocol for byte storage backends."""

    async def store(self, data: bytes, file_name: str, media_type: str) -> str:
        """Persist bytes and return an opaque storage reference."""
        ...

    async def delete(self, storage_ref: str) -> bool:
        """Remove stored bytes. Returns False if the reference is unknown."""
        ...


def safe_file_name(file_name: str) -> str:
    """Reduce a client-supplied name to a safe single path component."""
    base = file_name.replace("\\", "/").rsplit("/", 1)[-1]
    cleaned = "".join(c if c.isalnum() or c in "-_." else "_" for c in base).lstrip(".")
    return cleaned[:128] or "upload"


class InMemoryBlobStore:
    """Keeps bytes in a dict. For tests and development."""

    def __init__(self) -> None:
        self._blobs: dict[str, tuple[bytes, str, str]] = {}
        self._lock = threading.Lock()

    async def store(self, data: bytes, file_name: str, media_type: str) -> str:
        ref = f"memory://{uuid.uuid4().hex}/{safe_file_name(file_name)}"
        with self._lock:
            self._blobs[ref] = (bytes(data), file_name, media_type)
        return ref

    async def delete(self, storage_ref: str) -> bool:
        with self._lock:
            return self._blobs.pop(storage_ref, None) is not None

    def read(self, storage_ref: str) -> bytes | None:
        with self._lock:
            entry = self._blobs.get(storage_ref)
        return entry[0] if entry else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._blobs)


class FileBlobStore:
    """Writes each blob to its own file under a root directory.

    Files are created 0600 and named ``<uuid>-<sanitized name>``; the
    storage reference is that file name. Disk work runs in a worker thread
    so the event loop is never blocked.
    """

    def __init__(self, root: Path | str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, storage_ref: str) -> Path:
        path = (self.root / storage_ref).resolve()
        if path.parent != self.root.resolve():
            raise BlobStoreError(f"Storage reference escapes blob root: {storage_ref!r}")
        return path

    def _write(self, name: str, data: bytes) -> None:
        fd = os.open(
            self.root / name,
            os.O_WRONLY | os.O_CREAT | os.O_EXCL,
            stat.S_IRUSR | stat.S_IWUSR,  # 0600
        )
        try:
            os.write(fd, data)
        finally:
            os.close(fd)

    async def store(self, data: bytes, file_name: str, media_type: str) -> str:
        name = f"{uuid.uuid4().hex}-{safe_file_name(file_name)}"
        try:
            await asyncio.to_thread(self._write, name, data)
        except OSError as e:
            raise BlobStoreError(f"Failed to write {name}: {e}") from e
        logger.debug(f"Stored {len(data)} bytes as {name}")
        return name

    async def delete(self, storage_ref: str) -> bool:
        path = self._resolve(storage_ref)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise BlobStoreError(f"Failed to delete {storage_ref}: {e}") from e
        return True
