"""Memorix exception hierarchy.

Each failure a caller can act on gets its own type, so duplicates,
immutability violations, and storage failures are never collapsed into a
generic error.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Memory


class MemorixError(Exception):
    """Base exception for all memorix errors."""

    pass


class ValidationError(MemorixError, ValueError):
    """Invalid input rejected before any decay or deduplication logic runs."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Validation error for '{field}': {message}")


class DuplicateMemoryError(MemorixError):
    """Raised under the REJECT strategy when a duplicate already exists."""

    def __init__(self, existing: Memory, method: str = "hash"):
        self.existing = existing
        self.method = method
        super().__init__(
            f"Duplicate memory detected ({method}): similar content already "
            f"exists for user {existing.user_id!r} (id={existing.id})"
        )


class ImmutableMemoryError(MemorixError):
    """Raised when an update targets a memory flagged immutable."""

    def __init__(self, memory_id: str, source: str = "unknown"):
        self.memory_id = memory_id
        self.source = source
        super().__init__(
            f"Cannot update immutable memory: {memory_id} (source: {source})"
        )


class StorageError(MemorixError):
    """Failure reported by the persistence layer."""

    def __init__(self, message: str, operation: str | None = None):
        self.operation = operation
        super().__init__(message)


class CategoryError(MemorixError):
    """Unknown, duplicate, or invalid category or decay strategy."""

    pass


class EmbeddingError(MemorixError):
    """The embedding provider failed to produce a vector."""

    def __init__(self, message: str, provider: str | None = None):
        self.provider = provider
        super().__init__(message)
