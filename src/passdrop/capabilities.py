# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Passdrop Contributors

"""Capability tokens for Passdrop.

A capability is a short-lived bearer token that lets an otherwise
untrusted client (typically a phone that scanned a code) perform one
scoped action without holding a user session:
- Possession of the id is the authorization (the id is a bearer secret)
- Time-limited: unusable strictly after ``expires_at``
- Scoped: a set of permission strings plus an optional target
- Revocable at any time by the operator

The TokenRegistry owns every live token. Expiry is enforced lazily: a stale
token is evicted by whichever read first meets it, so no caller ever
observes an expired token as active.
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from .core.exceptions import PassdropException, ValidationException
from .core.logging import redact_token_id

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

TOKEN_ID_PREFIX = "cap"

# Random part of a token id: 32 bytes from the OS CSPRNG
TOKEN_RANDOM_BYTES = 32

# Standard permission strings
PERMISSION_DOCUMENT_CREATE = "document.create"
PERMISSION_FOLDER_READ = "folder.read"
PERMISSION_WORKFLOW_EXECUTE = "workflow.execute"


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes are treated as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class ActionKind(str, Enum):
    """The action a capability authorizes."""

    DOCUMENT_UPLOAD = "document_upload"
    FOLDER_ACCESS = "folder_access"
    WORKFLOW_ACTION = "workflow_action"


class TargetKind(str, Enum):
    """Kind of object a capability may be pinned to."""

    DOCUMENT = "document"
    FOLDER = "folder"
    WORKFLOW = "workflow"


# The only target kind each action may carry
TARGET_KIND_FOR_ACTION: dict[ActionKind, TargetKind] = {
    ActionKind.DOCUMENT_UPLOAD: TargetKind.DOCUMENT,
    ActionKind.FOLDER_ACCESS: TargetKind.FOLDER,
    ActionKind.WORKFLOW_ACTION: TargetKind.WORKFLOW,
}


class TokenState(str, Enum):
    """Lifecycle of a token. Only ACTIVE tokens are ever handed out."""

    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


class InvalidReason(str, Enum):
    """Why a lookup did not yield an active token."""

    NOT_FOUND = "not_found"
    EXPIRED = "expired"


# =============================================================================
# ERRORS
# =============================================================================


class CapabilityError(PassdropException):
    """Base error for capability operations."""


class CapabilityNotFoundError(CapabilityError):
    """No live token has this id."""


class CapabilityExpiredError(CapabilityError):
    """Token existed but its expiry has passed."""


class CapabilityTTLExceededError(ValidationException):
    """Requested lifetime exceeds the registry maximum."""


# =============================================================================
# CAPABILITY MODEL
# =============================================================================


@dataclass(frozen=True)
class CapabilityTarget:
    """Reference to the single object a capability is scoped to."""

    kind: TargetKind
    id: str

    @classmethod
    def document(cls, document_id: str) -> CapabilityTarget:
        return cls(TargetKind.DOCUMENT, document_id)

    @classmethod
    def folder(cls, folder_id: str) -> CapabilityTarget:
        return cls(TargetKind.FOLDER, folder_id)

    @classmethod
    def workflow(cls, workflow_id: str) -> CapabilityTarget:
        return cls(TargetKind.WORKFLOW, workflow_id)

    def to_dict(self) -> dict[str, str]:
        return {f"{self.kind.value}_id": self.id}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> CapabilityTarget | None:
        """Parse ``{"document_id": ...}`` style payloads.

        Returns None for an empty payload and rejects more than one id.
        """
        if not data:
            return None
        found = [(kind, data[f"{kind.value}_id"]) for kind in TargetKind if data.get(f"{kind.value}_id")]
        if len(found) > 1:
            raise ValidationException("At most one target id may be set", field="target")
        if not found:
            raise ValidationException(
                "Target must contain document_id, folder_id or workflow_id",
                field="target",
            )
        kind, target_id = found[0]
        return cls(kind, str(target_id))


@dataclass(frozen=True)
class CapabilityToken:
    """An immutable capability.

    Attributes:
        id: Opaque bearer secret, unique across live tokens
        action_kind: Which action the bearer may perform
        subject_user_id: Operator who issued it (ownership, not bearer auth)
        expires_at: Absolute expiry; the token is dead once now >= expires_at
        permissions: Non-empty set of permission strings
        issued_at: When the token was minted
        target: Optional object the action is pinned to
        upload_target: Optional pre-resolved destination URL
    """

    id: str
    action_kind: ActionKind
    subject_user_id: str
    expires_at: datetime
    permissions: frozenset[str]
    issued_at: datetime
    target: CapabilityTarget | None = None
    upload_target: str | None = None

    def is_expired_at(self, now: datetime) -> bool:
        """Expired once ``expires_at`` is not strictly in the future."""
        return self.expires_at <= now

    def state_at(self, now: datetime) -> TokenState:
        return TokenState.EXPIRED if self.is_expired_at(now) else TokenState.ACTIVE

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions

    def ttl_seconds(self, now: datetime) -> float:
        """Remaining lifetime in seconds (negative if expired)."""
        return (self.expires_at - now).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary. Includes the id, so only for the owner."""
        return {
            "id": self.id,
            "action_kind": self.action_kind.value,
            "subject_user_id": self.subject_user_id,
            "expires_at": self.expires_at.isoformat(),
            "issued_at": self.issued_at.isoformat(),
            "permissions": sorted(self.permissions),
            "target": self.target.to_dict() if self.target else None,
            "upload_target": self.upload_target,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CapabilityToken:
        """Deserialize from dictionary."""
        return cls(
            id=data["id"],
            action_kind=ActionKind(data["action_kind"]),
            subject_user_id=data["subject_user_id"],
            expires_at=_as_utc(datetime.fromisoformat(data["expires_at"])),
            issued_at=_as_utc(datetime.fromisoformat(data["issued_at"])),
            permissions=frozenset(data["permissions"]),
            target=CapabilityTarget.from_dict(data.get("target")),
            upload_target=data.get("upload_target"),
        )


# =============================================================================
# VALIDATION RESULT
# =============================================================================


@dataclass(frozen=True)
class TokenValidation:
    """Outcome of TokenRegistry.validate.

    Either carries the active token, or the reason there is none.

    Example:
        result = registry.validate(token_id)
        if not result:
            ...  # result.reason is NOT_FOUND or EXPIRED
        token = result.token
    """

    token: CapabilityToken | None = None
    reason: InvalidReason | None = None

    @classmethod
    def valid(cls, token: CapabilityToken) -> TokenValidation:
        return cls(token=token)

    @classmethod
    def invalid(cls, reason: InvalidReason) -> TokenValidation:
        return cls(reason=reason)

    @property
    def is_valid(self) -> bool:
        return self.token is not None

    def __bool__(self) -> bool:
        return self.is_valid

    def raise_if_invalid(self) -> CapabilityToken:
        """Return the token, or raise the precise lookup error.

        Raises:
            CapabilityNotFoundError: No live token with that id
            CapabilityExpiredError: Token was present but expired
        """
        if self.token is not None:
            return self.token
        if self.reason is InvalidReason.EXPIRED:
            raise CapabilityExpiredError("Capability has expired")
        raise CapabilityNotFoundError("Capability not found")


# =============================================================================
# TOKEN IDS
# =============================================================================


def generate_token_id() -> str:
    """Generate a fresh bearer id.

    Millisecond timestamp for rough ordering plus 256 bits from the OS
    CSPRNG, so ids are neither guessable nor colliding.
    """
    millis = time.time_ns() // 1_000_000
    return f"{TOKEN_ID_PREFIX}_{millis:x}_{secrets.token_urlsafe(TOKEN_RANDOM_BYTES)}"


# =============================================================================
# TOKEN REGISTRY
# =============================================================================


class TokenRegistry:
    """Owns the set of live capability tokens.

    Every state transition (issue, expiry eviction, revocation) happens under
    one lock, so a revoke racing with a validate of the same id always
    leaves the token absent, and a revoke that has returned is seen by every
    later validate.

    The registry never performs I/O; validate may wait on the lock but never
    on the network or disk.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        max_ttl_seconds: int | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            clock: Returns the current aware datetime (UTC now if None)
            max_ttl_seconds: Longest lifetime a token may be issued with (no bound if None)
        """
        self._clock = clock or utc_now
        self.max_ttl_seconds = max_ttl_seconds
        self._tokens: dict[str, CapabilityToken] = {}
        self._lock = threading.Lock()

    def _now(self) -> datetime:
        return _as_utc(self._clock())

    def issue(
        self,
        action_kind: ActionKind | str,
        subject_user_id: str,
        expires_at: datetime,
        permissions: Iterable[str],
        target: CapabilityTarget | None = None,
        upload_target: str | None = None,
    ) -> CapabilityToken:
        """Mint and store a new capability.

        Args:
            action_kind: Action the token authorizes
            subject_user_id: Issuing operator
            expires_at: Absolute expiry, strictly in the future
            permissions: Non-empty collection of permission strings
            target: Optional object matching the action kind
            upload_target: Optional pre-resolved destination URL

        Returns:
            The stored token

        Raises:
            ValidationException: If any constraint above is violated
            CapabilityTTLExceededError: If the lifetime exceeds max_ttl_seconds
        """
        try:
            action_kind = ActionKind(action_kind)
        except ValueError as e:
            raise ValidationException(f"Unknown action kind: {action_kind}", field="action_kind") from e

        if not subject_user_id:
            raise ValidationException("subject_user_id is required", field="subject_user_id")

        permission_set = frozenset(p for p in permissions if p)
        if not permission_set:
            raise ValidationException("Capability must grant at least one permission", field="permissions")

        if target is not None and target.kind is not TARGET_KIND_FOR_ACTION[action_kind]:
            raise ValidationException(
                f"{action_kind.value} capabilities cannot target a {target.kind.value}",
                field="target",
            )

        expires_at = _as_utc(expires_at)
        now = self._now()
        if expires_at <= now:
            raise ValidationException("expires_at must be in the future", field="expires_at", value=expires_at)

        if self.max_ttl_seconds is not None and expires_at - now > timedelta(seconds=self.max_ttl_seconds):
            raise CapabilityTTLExceededError(
                f"Requested lifetime exceeds maximum ({self.max_ttl_seconds}s)",
                field="expires_at",
                value=expires_at,
            )

        with self._lock:
            token_id = generate_token_id()
            while token_id in self._tokens:
                token_id = generate_token_id()
            token = CapabilityToken(
                id=token_id,
                action_kind=action_kind,
                subject_user_id=subject_user_id,
                expires_at=expires_at,
                permissions=permission_set,
                issued_at=now,
                target=target,
                upload_target=upload_target,
            )
            self._tokens[token_id] = token

        logger.info(
            f"Issued capability {redact_token_id(token.id)} to {subject_user_id} "
            f"(action={action_kind.value}, permissions={sorted(permission_set)}, "
            f"expires_at={expires_at.isoformat()})"
        )
        return token

    def validate(self, token_id: str) -> TokenValidation:
        """Look up a token, evicting it if it has expired.

        This is the single acceptance gate for privileged actions. Callers
        must still check ``token.permissions`` against the action they
        intend to perform.
        """
        now = self._now()
        with self._lock:
            token = self._tokens.get(token_id)
            if token is None:
                return TokenValidation.invalid(InvalidReason.NOT_FOUND)
            if token.state_at(now) is TokenState.EXPIRED:
                del self._tokens[token_id]
                expired = True
            else:
                expired = False

        if expired:
            logger.info(f"Evicted expired capability {redact_token_id(token_id)} on validate")
            return TokenValidation.invalid(InvalidReason.EXPIRED)
        return TokenValidation.valid(token)

    def revoke(self, token_id: str) -> bool:
        """Revoke a token.

        Idempotent: returns True only for the call that removed it.
        """
        with self._lock:
            token = self._tokens.pop(token_id, None)

        if token is None:
            logger.debug(f"Revoke of unknown capability {redact_token_id(token_id)}")
            return False
        logger.info(f"Revoked capability {redact_token_id(token_id)} owned by {token.subject_user_id}")
        return True

    def enumerate(self, subject_user_id: str) -> list[CapabilityToken]:
        """List the live tokens a user issued, in issuance order.

        Expired tokens met during the scan are evicted.
        """
        now = self._now()
        result: list[CapabilityToken] = []
        evicted = 0
        with self._lock:
            for token_id, token in list(self._tokens.items()):
                if token.subject_user_id != subject_user_id:
                    continue
                if token.state_at(now) is TokenState.EXPIRED:
                    del self._tokens[token_id]
                    evicted += 1
                    continue
                result.append(token)

        if evicted:
            logger.info(f"Evicted {evicted} expired capabilities while listing for {subject_user_id}")
        return result

    def purge_expired(self) -> int:
        """Evict every expired token. Returns the number removed."""
        now = self._now()
        with self._lock:
            expired = [tid for tid, token in self._tokens.items() if token.state_at(now) is TokenState.EXPIRED]
            for token_id in expired:
                del self._tokens[token_id]

        if expired:
            logger.info(f"Purged {len(expired)} expired capabilities")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)

    def __contains__(self, token_id: object) -> bool:
        with self._lock:
            return token_id in self._tokens
