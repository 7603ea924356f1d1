"""Memorix core data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid4())


class DeduplicationStrategy(str, Enum):
    """What happens when new content matches an existing memory."""

    REJECT = "REJECT"
    MERGE = "MERGE"
    UPDATE = "UPDATE"


class Memory(BaseModel):
    """A single stored memory.

    Owned by the storage layer; services read a copy, compute, and write back.
    """

    id: str = Field(default_factory=_uuid)
    user_id: str
    category: str | None = None
    content: str
    content_hash: str | None = None
    embedding: list[float] | None = None
    decay: int = 100
    importance: float = 0.5
    token_count: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_accessed_at: datetime | None = None
    access_count: int = 0

    @property
    def is_immutable(self) -> bool:
        return self.metadata.get("immutable") is True


@dataclass
class ScoredMemory:
    """A memory paired with its similarity to a query vector."""

    memory: Memory
    similarity: float

    @property
    def token_count(self) -> int:
        return self.memory.token_count


@dataclass
class MemoryStats:
    """Aggregate statistics over one user's memories."""

    total_memories: int = 0
    average_decay: float = 0.0
    total_tokens: int = 0
    by_category: dict[str, int] = field(default_factory=dict)
    average_importance: float = 0.0
    oldest_memory: datetime | None = None
    newest_memory: datetime | None = None
