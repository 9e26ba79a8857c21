# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Passdrop Contributors

"""Passdrop - capability-gated mobile document upload.

An operator issues a short-lived upload pass; the pass travels to a phone
as a link (usually rendered as a QR code) and the phone posts files with
it, no login required.

Architecture:
  TokenRegistry (issue / validate / revoke / enumerate capability tokens)
    -> MobileIngestionService (authorize, validate batch, commit per file)
    -> UploadLedger (append-only metadata) + BlobStore (bytes)
    -> AuditSink (one event per security-relevant action)

HTTP entry point: ``passdrop-server`` (see passdrop.server.app)
"""

__version__ = "0.1.0"

from . import (
    core as core,
)
