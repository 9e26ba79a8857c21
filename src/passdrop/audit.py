# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Passdrop Contributors

"""Audit event emission for Passdrop.

The core does not own the audit log. It hands each security-relevant action
to an AuditSink; delivery and durability are the sink's business. Two sinks
ship with the package:
- InMemoryAuditSink: thread-safe, queryable, for tests and development
- LoggingAuditSink: writes one structured log record per event
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class AuditAction(StrEnum):
    """Actions the core reports to the audit sink."""

    FILE_UPLOADED = "file_uploaded"
    FILE_DELETED = "file_deleted"
    CAPABILITY_ISSUED = "capability_issued"
    CAPABILITY_REVOKED = "capability_revoked"


class AuditSink(Protocol):
    """Boundary to the external audit log."""

    def log_action(
        self,
        actor_id: str,
        action: str,
        object_kind: str,
        object_id: str,
        metadata: dict[str, Any],
    ) -> None:
        """Record that ``actor_id`` performed ``action`` on an object."""
        ...


@dataclass(frozen=True)
class AuditEntry:
    """A single audit event as seen by the in-memory sink."""

    actor_id: str
    action: str
    object_kind: str
    object_id: str
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "actor_id": self.actor_id,
            "action": self.action,
            "object_kind": self.object_kind,
            "object_id": self.object_id,
            "metadata": self.metadata,
        }


class InMemoryAuditSink:
    """In-memory audit sink for testing and development.

    Thread-safe but not persistent - events are lost on restart.
    Oldest events are dropped once ``max_events`` is reached.
    """

    def __init__(self, max_events: int = 10000):
        self._events: list[AuditEntry] = []
        self._max_events = max_events
        self._lock = threading.Lock()

    def log_action(
        self,
        actor_id: str,
        action: str,
        object_kind: str,
        object_id: str,
        metadata: dict[str, Any],
    ) -> None:
        entry = AuditEntry(
            actor_id=actor_id,
            action=str(action),
            object_kind=object_kind,
            object_id=object_id,
            metadata=dict(metadata),
        )
        with self._lock:
            self._events.append(entry)
            if len(self._events) > self._max_events:
                self._events = self._events[-self._max_events :]

    def query(
        self,
        actor_id: str | None = None,
        action: str | None = None,
        object_kind: str | None = None,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        limit: int = 100,
    ) -> list[AuditEntry]:
        """Query events, most recent first."""
        with self._lock:
            results = []
            for entry in reversed(self._events):
                if actor_id and entry.actor_id != actor_id:
                    continue
                if action and entry.action != action:
                    continue
                if object_kind and entry.object_kind != object_kind:
                    continue
                if start_time and entry.timestamp < start_time:
                    continue
                if end_time and entry.timestamp > end_time:
                    continue
                results.append(entry)
                if len(results) >= limit:
                    break
            return results

    def count(self, action: str | None = None, actor_id: str | None = None) -> int:
        with self._lock:
            return sum(
                1
                for entry in self._events
                if (action is None or entry.action == action) and (actor_id is None or entry.actor_id == actor_id)
            )

    def all_events(self) -> list[AuditEntry]:
        """Get all events in arrival order (for testing)."""
        with self._lock:
            return list(self._events)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class LoggingAuditSink:
    """Audit sink that writes each event to a dedicated logger.

    Pair with the JSON formatter to ship audit events through the regular
    log pipeline.
    """

    def __init__(self, audit_logger: logging.Logger | None = None):
        self.logger = audit_logger or logging.getLogger("passdrop.audit")

    def log_action(
        self,
        actor_id: str,
        action: str,
        object_kind: str,
        object_id: str,
        metadata: dict[str, Any],
    ) -> None:
        self.logger.info(
            f"Audit: {actor_id} {action} {object_kind}:{object_id}",
            extra={
                "extra_data": {
                    "actor_id": actor_id,
                    "action": str(action),
                    "object_kind": object_kind,
                    "object_id": object_id,
                    "metadata": metadata,
                }
            },
        )
