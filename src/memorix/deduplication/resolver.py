"""Duplicate resolution: reject, merge, or replace the existing memory."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from loguru import logger

from ..categories import Category
from ..embedding import EmbeddingProvider
from ..exceptions import DuplicateMemoryError
from ..models import DeduplicationStrategy, Memory, utcnow
from ..storage.interfaces import MemoryStore
from ..token_counter import TokenCounter
from .detectors import DuplicateMatch
from .hashing import generate_hash


class DuplicateResolver:
    """Applies a category's deduplication strategy to a detected duplicate.

    Exactly one branch runs per call. REJECT never writes; MERGE and UPDATE
    mutate and persist the existing memory and return it.
    """

    def __init__(
        self,
        store: MemoryStore,
        embedder: EmbeddingProvider,
        token_counter: TokenCounter,
    ):
        self._store = store
        self._embedder = embedder
        self._token_counter = token_counter

    async def resolve(
        self,
        match: DuplicateMatch,
        content: str,
        category: Category,
        properties: dict[str, Any] | None = None,
        importance: float | None = None,
        embedding: list[float] | None = None,
        now: datetime | None = None,
    ) -> Memory:
        """Resolve ``content`` against the matched memory.

        Args:
            match: Detector result naming the existing memory
            content: The newly submitted content
            category: Category whose deduplication and decay config apply
            properties: Extracted plus caller-supplied metadata
            importance: Replacement importance, if the caller supplied one
            embedding: Precomputed embedding of ``content``, if available
            now: Timestamp used for ``updated_at`` and ``merged_at``

        Raises:
            DuplicateMemoryError: Under the REJECT strategy
        """
        strategy = category.deduplication_config.strategy
        now = now or utcnow()

        if strategy == DeduplicationStrategy.REJECT:
            logger.info(
                f"Rejecting duplicate for user {match.memory.user_id} "
                f"({match.method}, existing={match.memory.id})"
            )
            raise DuplicateMemoryError(match.memory, method=match.method)

        if strategy == DeduplicationStrategy.MERGE:
            return await self._merge(match.memory, category, properties, importance, now)

        return await self._replace(
            match.memory, content, category, properties, importance, embedding, now,
        )

    async def _merge(
        self,
        existing: Memory,
        category: Category,
        properties: dict[str, Any] | None,
        importance: float | None,
        now: datetime,
    ) -> Memory:
        metadata = dict(existing.metadata)
        if properties:
            metadata.update(properties)
        metadata["merged"] = True
        metadata["merged_at"] = now.isoformat()

        decay = existing.decay
        if category.deduplication_config.reinforce_on_merge:
            decay = category.decay_config.clamp(
                decay + category.decay_config.decay_reinforcement
            )

        merged = existing.model_copy(update={
            "category": category.name,
            "metadata": metadata,
            "decay": decay,
            "importance": importance if importance is not None else existing.importance,
            "updated_at": now,
        })
        await self._store.update(merged)
        logger.info(
            f"Merged duplicate into memory {merged.id} "
            f"(decay {existing.decay} -> {merged.decay})"
        )
        return merged

    async def _replace(
        self,
        existing: Memory,
        content: str,
        category: Category,
        properties: dict[str, Any] | None,
        importance: float | None,
        embedding: list[float] | None,
        now: datetime,
    ) -> Memory:
        if embedding is None:
            embedding = self._embedder.embed(content)

        replaced = existing.model_copy(update={
            "category": category.name,
            "content": content,
            "content_hash": generate_hash(
                content, category.deduplication_config.normalize_content
            ),
            "embedding": embedding,
            "token_count": self._token_counter.count(content),
            "decay": category.decay_config.initial_decay,
            "metadata": dict(properties) if properties else existing.metadata,
            "importance": importance if importance is not None else existing.importance,
            "updated_at": now,
        })
        await self._store.update(replaced)
        logger.info(f"Replaced content of memory {replaced.id} with newer duplicate")
        return replaced
