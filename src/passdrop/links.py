# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Passdrop Contributors

"""Mobile upload links and the encoder boundary.

An upload pass reaches the phone as a plain URL with the token id as its
last path segment. Turning that URL into something scannable is the job of
an external encoder; whatever it returns is passed through untouched.
"""

from __future__ import annotations

from typing import Any, Protocol
from urllib.parse import quote, unquote, urlsplit

MOBILE_UPLOAD_PATH = "/mobile-upload"


class Encoder(Protocol):
    """Turns a URL into a displayable artifact (e.g. a QR image data URL)."""

    def __call__(self, url: str) -> Any: ...


def build_mobile_upload_url(base_url: str, token_id: str) -> str:
    """Build the link a phone opens to use a pass."""
    return f"{base_url.rstrip('/')}{MOBILE_UPLOAD_PATH}/{quote(token_id, safe='')}"


def token_id_from_url(url: str) -> str | None:
    """Extract the token id from a mobile upload link, or None if it is not one."""
    path = urlsplit(url).path.rstrip("/")
    prefix, _, token_id = path.rpartition("/")
    if not token_id or not prefix.endswith(MOBILE_UPLOAD_PATH):
        return None
    return unquote(token_id)
