"""Duplicate detection and resolution."""

from __future__ import annotations

from .detectors import (
    DuplicateMatch,
    HashDuplicateDetector,
    HybridDuplicateDetector,
    SemanticDuplicateDetector,
)
from .hashing import generate_hash, normalize_content
from .resolver import DuplicateResolver

__all__ = [
    "DuplicateMatch",
    "DuplicateResolver",
    "HashDuplicateDetector",
    "HybridDuplicateDetector",
    "SemanticDuplicateDetector",
    "generate_hash",
    "normalize_content",
]
