"""Storage interface consumed by the memorix core.

Defined as a Protocol so services depend on behaviour, not on SQLite.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Protocol, runtime_checkable

from ..models import Memory, ScoredMemory


@runtime_checkable
class MemoryStore(Protocol):
    """Persistence and similarity-search collaborator.

    Failures surface as :class:`memorix.exceptions.StorageError`.
    """

    async def save(self, memory: Memory) -> Memory:
        """Insert a new memory."""
        ...

    async def update(self, memory: Memory) -> Memory:
        """Replace every stored field of an existing memory.

        Raises:
            StorageError: If no memory with ``memory.id`` exists
        """
        ...

    async def update_decay(self, memory_id: str, decay: int) -> None:
        """Write only the decay column of one memory."""
        ...

    async def delete(self, memory_id: str) -> bool:
        """Delete one memory; returns whether anything was removed."""
        ...

    async def delete_by_user(self, user_id: str) -> int:
        """Delete all memories of a user; returns the number removed."""
        ...

    async def find_by_id(self, memory_id: str) -> Memory | None:
        ...

    async def find_by_user(
        self, user_id: str, category: str | None = None
    ) -> list[Memory]:
        """All memories of a user ordered by id, optionally for one category."""
        ...

    async def find_by_hash(self, user_id: str, content_hash: str) -> Memory | None:
        """A live (``decay > 0``) memory of the user with this content hash."""
        ...

    async def find_nearest(
        self, user_id: str, embedding: list[float]
    ) -> ScoredMemory | None:
        """The single most similar live memory of the user."""
        ...

    async def ranked_candidates(
        self,
        user_id: str,
        query_vector: list[float],
        window_size: int,
        category: str | None = None,
        metadata_filters: dict[str, Any] | None = None,
    ) -> list[ScoredMemory]:
        """Up to ``window_size`` live memories, sorted by descending similarity."""
        ...

    async def count_by_user(self, user_id: str) -> int:
        ...

    async def touch(self, memory_ids: Iterable[str], now: datetime | None = None) -> int:
        """Mark memories as accessed; returns the number updated."""
        ...
