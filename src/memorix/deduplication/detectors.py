"""Duplicate detectors.

Each detector answers "does this user already hold a live memory equivalent
to this content?" and returns a :class:`DuplicateMatch` or ``None``. Only
memories with ``decay > 0`` are considered.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from ..config import DeduplicationConfig
from ..embedding import EmbeddingProvider
from ..models import Memory
from ..storage.interfaces import MemoryStore
from .hashing import generate_hash


@dataclass
class DuplicateMatch:
    memory: Memory
    method: str  # "hash" or "semantic"
    similarity: float = 1.0


class HashDuplicateDetector:
    """Exact match on the content hash.

    Stored hashes were generated with the owning category's
    ``normalize_content`` flag, which may differ from the incoming config.
    When the indexed lookup misses, each live memory's hash is recomputed
    from its content under the incoming config.
    """

    def __init__(self, store: MemoryStore):
        self._store = store

    async def find_duplicate(
        self,
        user_id: str,
        content: str,
        config: DeduplicationConfig,
        embedding: list[float] | None = None,
    ) -> DuplicateMatch | None:
        content_hash = generate_hash(content, config.normalize_content)
        existing = await self._store.find_by_hash(user_id, content_hash)
        if existing is None:
            existing = await self._rehash_scan(user_id, content_hash, config)
        if existing is None:
            return None
        logger.debug(f"Hash duplicate found for user {user_id}: {existing.id}")
        return DuplicateMatch(memory=existing, method="hash", similarity=1.0)

    async def _rehash_scan(
        self, user_id: str, content_hash: str, config: DeduplicationConfig
    ) -> Memory | None:
        memories = await self._store.find_by_user(user_id)
        for memory in sorted(memories, key=lambda m: (m.created_at, m.id)):
            if memory.decay <= 0:
                continue
            if generate_hash(memory.content, config.normalize_content) == content_hash:
                return memory
        return None


class SemanticDuplicateDetector:
    """Nearest-neighbour match at or above ``semantic_threshold``."""

    def __init__(self, store: MemoryStore, embedder: EmbeddingProvider):
        self._store = store
        self._embedder = embedder

    async def find_duplicate(
        self,
        user_id: str,
        content: str,
        config: DeduplicationConfig,
        embedding: list[float] | None = None,
    ) -> DuplicateMatch | None:
        if embedding is None:
            embedding = self._embedder.embed(content)

        nearest = await self._store.find_nearest(user_id, embedding)
        if nearest is None or nearest.similarity < config.semantic_threshold:
            return None

        logger.debug(
            f"Semantic duplicate found for user {user_id}: {nearest.memory.id} "
            f"(similarity={nearest.similarity:.4f}, "
            f"threshold={config.semantic_threshold})"
        )
        return DuplicateMatch(
            memory=nearest.memory, method="semantic", similarity=nearest.similarity,
        )


class HybridDuplicateDetector:
    """Hash check first; semantic check only when that misses and it is enabled."""

    def __init__(
        self,
        hash_detector: HashDuplicateDetector,
        semantic_detector: SemanticDuplicateDetector | None = None,
    ):
        self._hash = hash_detector
        self._semantic = semantic_detector

    async def find_duplicate(
        self,
        user_id: str,
        content: str,
        config: DeduplicationConfig,
        embedding: list[float] | None = None,
    ) -> DuplicateMatch | None:
        if not config.enabled:
            return None

        match = await self._hash.find_duplicate(user_id, content, config)
        if match is not None:
            return match

        if config.semantic_enabled and self._semantic is not None:
            return await self._semantic.find_duplicate(
                user_id, content, config, embedding=embedding,
            )
        return None
