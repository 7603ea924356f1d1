"""Memory Service - facade over the memorix core.

This module provides the main MemoryService class that applications use.
It wires categories, storage, embeddings, deduplication, bounded retrieval
and lifecycle management behind one async API.
"""

from __future__ import annotations

from typing import Any, Iterable, Sequence

from loguru import logger

from .categories import Category, CategoryRegistry, register_builtin_categories
from .config import MemorixConfig
from .deduplication import (
    DuplicateResolver,
    HashDuplicateDetector,
    HybridDuplicateDetector,
    SemanticDuplicateDetector,
    generate_hash,
)
from .embedding import EmbeddingProvider, create_embedding_provider
from .exceptions import ImmutableMemoryError, StorageError, ValidationError
from .lifecycle import LifecycleManager, LifecycleResult
from .models import Memory, MemoryStats, ScoredMemory, utcnow
from .query import QueryLimit, QueryLimitExecutor, QueryResult
from .storage import MemoryStore, SQLiteMemoryStore
from .token_counter import TokenCounter


def _validate_importance(importance: float | None) -> None:
    if importance is not None and not 0.0 <= importance <= 1.0:
        raise ValidationError("importance", "must be between 0 and 1")


def _require_text(field: str, value: str | None) -> None:
    if value is None or not value.strip():
        raise ValidationError(field, "must not be empty")


class MemoryService:
    """Main memory service facade.

    Provides:
    - Saving with category-driven duplicate detection and resolution
    - Bounded similarity search under count, token and similarity limits
    - Decay lifecycle passes, reinforcement and usage tracking
    - Memory CRUD and per-user statistics

    Storage and the embedding provider are lazily initialized on first use
    unless they are injected.
    """

    def __init__(
        self,
        config: MemorixConfig | None = None,
        store: MemoryStore | None = None,
        embedder: EmbeddingProvider | None = None,
        registry: CategoryRegistry | None = None,
        token_counter: TokenCounter | None = None,
    ):
        """Initialize memory service.

        Args:
            config: Memorix configuration (uses defaults if not provided)
            store: Storage backend; an initialized store is used as-is
            embedder: Embedding provider (built from config if not provided)
            registry: Category registry (built-in categories if not provided)
            token_counter: Token counter (built from config if not provided)
        """
        self.config = config or MemorixConfig()
        self._store = store
        self._store_initialized = store is not None
        self._embedder = embedder
        self.registry = registry or register_builtin_categories(CategoryRegistry())
        self._token_counter = token_counter or TokenCounter(self.config.tokens)
        self._executor = QueryLimitExecutor()
        self._lifecycle: LifecycleManager | None = None
        self._detector: HybridDuplicateDetector | None = None
        self._resolver: DuplicateResolver | None = None

        logger.debug(f"MemoryService full config: {self.config.model_dump()}")
        logger.info(
            f"MemoryService initialized: categories={self.registry.names()}, "
            f"sqlite_db_path={self.config.storage.sqlite_db_path!r}"
        )

    async def _ensure_store(self) -> MemoryStore:
        """Lazy initialization of SQLite store."""
        if self._store is None:
            self._store = SQLiteMemoryStore(db_path=self.config.storage.sqlite_db_path)
        if not self._store_initialized:
            await self._store.initialize()
            self._store_initialized = True
            logger.debug(f"SQLiteMemoryStore initialized at {self.config.storage.sqlite_db_path}")
        return self._store

    def _ensure_embedder(self) -> EmbeddingProvider:
        if self._embedder is None:
            self._embedder = create_embedding_provider(self.config.embedding)
            logger.debug(f"Embedding provider initialized: {self._embedder.name}")
        return self._embedder

    async def _ensure_components(self) -> None:
        """Lazy initialization of deduplication and lifecycle components."""
        store = await self._ensure_store()
        embedder = self._ensure_embedder()

        if self._detector is None:
            self._detector = HybridDuplicateDetector(
                HashDuplicateDetector(store),
                SemanticDuplicateDetector(store, embedder),
            )
        if self._resolver is None:
            self._resolver = DuplicateResolver(store, embedder, self._token_counter)
        if self._lifecycle is None:
            self._lifecycle = LifecycleManager(store, self.registry)

    async def close(self) -> None:
        """Close resources (SQLite connection, HTTP client)."""
        if self._store is not None and self._store_initialized:
            await self._store.close()
            self._store_initialized = False
            logger.info("MemoryService: store closed")
        close_embedder = getattr(self._embedder, "close", None)
        if callable(close_embedder):
            close_embedder()

    def register_category(self, category: Category) -> Category:
        return self.registry.register(category)

    async def save(
        self,
        user_id: str,
        content: str,
        category: str,
        properties: dict[str, Any] | None = None,
        importance: float | None = None,
    ) -> Memory:
        """Save content as a memory, resolving duplicates per category policy.

        Args:
            user_id: Owner of the memory
            content: Memory text
            category: Registered category name
            properties: Extra metadata merged over the category's extracted
                properties
            importance: Importance in [0, 1] (0.5 when omitted)

        Returns:
            The created memory, or the existing memory after MERGE/UPDATE

        Raises:
            ValidationError: On empty user id or content, or bad importance
            CategoryError: If the category is not registered
            DuplicateMemoryError: If a duplicate exists under REJECT
        """
        _require_text("user_id", user_id)
        _require_text("content", content)
        _validate_importance(importance)

        owner = self.registry.get(category)
        await self._ensure_components()

        metadata = owner.extract_properties(content)
        if properties:
            metadata.update(properties)
        embedding = self._embedder.embed(content)

        dedup = owner.deduplication_config
        if dedup.enabled:
            match = await self._detector.find_duplicate(
                user_id, content, dedup, embedding=embedding,
            )
            if match is not None:
                return await self._resolver.resolve(
                    match,
                    content,
                    owner,
                    properties=metadata,
                    importance=importance,
                    embedding=embedding,
                )

        importance = importance if importance is not None else 0.5
        decay_config = owner.decay_config
        memory = Memory(
            user_id=user_id,
            category=owner.name,
            content=content,
            content_hash=generate_hash(content, dedup.normalize_content),
            embedding=embedding,
            decay=decay_config.clamp(round(decay_config.initial_decay * (0.5 + importance))),
            importance=importance,
            token_count=self._token_counter.count(content),
            metadata=metadata,
        )
        await self._store.save(memory)
        logger.info(
            f"Saved memory {memory.id} for user {user_id} "
            f"(category={owner.name}, decay={memory.decay}, tokens={memory.token_count})"
        )
        return memory

    async def update(
        self,
        memory_id: str,
        content: str | None = None,
        importance: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Memory:
        """Update an existing memory.

        A content change regenerates hash, embedding and token count.
        ``metadata`` is merged over the existing metadata.

        Raises:
            StorageError: If the memory does not exist
            ImmutableMemoryError: If the memory is flagged immutable
            ValidationError: On empty content or bad importance
        """
        if content is not None:
            _require_text("content", content)
        _validate_importance(importance)

        store = await self._ensure_store()
        memory = await store.find_by_id(memory_id)
        if memory is None:
            raise StorageError(f"Memory not found: {memory_id}", operation="update")
        if memory.is_immutable:
            raise ImmutableMemoryError(
                memory_id, source=str(memory.metadata.get("source", "unknown"))
            )

        changes: dict[str, Any] = {"updated_at": utcnow()}
        if content is not None and content != memory.content:
            owner = self.registry.find(memory.category)
            normalize = owner.deduplication_config.normalize_content if owner else True
            changes["content"] = content
            changes["content_hash"] = generate_hash(content, normalize)
            changes["embedding"] = self._ensure_embedder().embed(content)
            changes["token_count"] = self._token_counter.count(content)
        if importance is not None:
            changes["importance"] = importance
        if metadata:
            changes["metadata"] = {**memory.metadata, **metadata}

        updated = memory.model_copy(update=changes)
        await store.update(updated)
        logger.info(f"Updated memory {memory_id}")
        return updated

    async def get(self, memory_id: str) -> Memory | None:
        store = await self._ensure_store()
        return await store.find_by_id(memory_id)

    async def delete(self, memory_id: str) -> bool:
        store = await self._ensure_store()
        deleted = await store.delete(memory_id)
        if deleted:
            logger.info(f"Deleted memory {memory_id}")
        return deleted

    async def delete_by_user(self, user_id: str) -> int:
        store = await self._ensure_store()
        count = await store.delete_by_user(user_id)
        logger.info(f"Deleted {count} memories for user {user_id}")
        return count

    async def search(
        self,
        user_id: str,
        query: str,
        category: str | None = None,
        limit: QueryLimit | None = None,
        metadata_filters: dict[str, Any] | None = None,
    ) -> QueryResult:
        """Search a user's memories under a query limit.

        Without an explicit ``limit`` the category's default limit is used,
        or the global default when no category is given.
        """
        _require_text("query", query)
        if limit is None:
            limit = (
                self.registry.get(category).default_query_limit
                if category else QueryLimit.default()
            )

        store = await self._ensure_store()
        query_vector = self._ensure_embedder().embed(query)
        candidates = await store.ranked_candidates(
            user_id,
            query_vector,
            self.config.search.candidate_window,
            category=category,
            metadata_filters=metadata_filters,
        )
        result = self._executor.select_bounded(candidates, limit)
        logger.info(
            f"Search for user {user_id}: {result.metadata.returned}/"
            f"{result.metadata.total_found} results "
            f"({result.metadata.total_tokens} tokens, "
            f"reason={result.metadata.limit_reason.value})"
        )
        return result

    def select_bounded(
        self, candidates: Sequence[ScoredMemory], limit: QueryLimit
    ) -> QueryResult:
        return self._executor.select_bounded(candidates, limit)

    async def apply_lifecycle(
        self,
        user_id: str,
        category: str | None = None,
        used_ids: Iterable[str] = (),
        active_session: bool = True,
    ) -> LifecycleResult:
        await self._ensure_components()
        return await self._lifecycle.apply_lifecycle(
            user_id, category=category, used_ids=used_ids, active_session=active_session,
        )

    async def cleanup_expired(
        self, user_id: str, category: str | None = None
    ) -> LifecycleResult:
        await self._ensure_components()
        return await self._lifecycle.cleanup_expired(user_id, category)

    async def reinforce(self, memory_id: str) -> Memory:
        await self._ensure_components()
        return await self._lifecycle.reinforce(memory_id)

    async def record_usage(self, memory_ids: Iterable[str]) -> int:
        """Mark memories as accessed (timestamp and access count)."""
        store = await self._ensure_store()
        return await store.touch(list(memory_ids))

    async def get_stats(self, user_id: str) -> MemoryStats:
        store = await self._ensure_store()
        memories = await store.find_by_user(user_id)
        if not memories:
            return MemoryStats()

        by_category: dict[str, int] = {}
        for memory in memories:
            key = memory.category or "uncategorized"
            by_category[key] = by_category.get(key, 0) + 1

        return MemoryStats(
            total_memories=len(memories),
            average_decay=sum(m.decay for m in memories) / len(memories),
            total_tokens=sum(m.token_count for m in memories),
            by_category=by_category,
            average_importance=sum(m.importance for m in memories) / len(memories),
            oldest_memory=min(m.created_at for m in memories),
            newest_memory=max(m.created_at for m in memories),
        )
