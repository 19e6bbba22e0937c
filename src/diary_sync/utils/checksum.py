"""Content checksum used for drift detection."""

from __future__ import annotations

import hashlib


def checksum(content: str) -> str:
    """Return the SHA-256 hex digest of ``content`` encoded as UTF-8.

    Only used to notice that content changed; not a security primitive.
    """
    return hashlib.sha256(content.encode("utf-8")).hexdigest()
