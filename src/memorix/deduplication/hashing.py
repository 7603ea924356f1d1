"""Content normalization and hashing for exact duplicate detection."""

from __future__ import annotations

import hashlib
import re

_WHITESPACE = re.compile(r"\s+")


def normalize_content(content: str) -> str:
    """Trim, lower-case and collapse whitespace runs (line breaks included)."""
    return _WHITESPACE.sub(" ", content.strip().lower())


def generate_hash(content: str, normalize: bool = True) -> str:
    """SHA-256 hex digest of the (optionally normalized) content."""
    if normalize:
        content = normalize_content(content)
    return hashlib.sha256(content.encode("utf-8")).hexdigest()
