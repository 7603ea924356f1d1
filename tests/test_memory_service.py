"""Tests for the MemoryService facade.

Tests cover:
- Creation decay scaled by importance and category bounds
- Duplicate handling end to end (MERGE, REJECT, UPDATE)
- Updates, immutability and validation
- Bounded search with category defaults and metadata filters
- Lifecycle, reinforcement, usage tracking and statistics
"""

from __future__ import annotations

import pytest

from memorix.categories import Category
from memorix.config import DeduplicationConfig, MemorixConfig, StorageConfig
from memorix.exceptions import (
    CategoryError,
    DuplicateMemoryError,
    ImmutableMemoryError,
    StorageError,
    ValidationError,
)
from memorix.memory_service import MemoryService
from memorix.models import DeduplicationStrategy
from memorix.query import LimitReason, QueryLimit


class TestSave:
    @pytest.mark.asyncio
    async def test_save_populates_derived_fields(self, service, embedder):
        memory = await service.save("user-1", "User prefers dark mode", "PLAIN")
        assert memory.category == "PLAIN"
        assert memory.decay == 100
        assert memory.importance == 0.5
        assert memory.token_count == len("User prefers dark mode") // 3
        assert memory.embedding == embedder.embed("User prefers dark mode")
        assert memory.content_hash is not None

        stored = await service.get(memory.id)
        assert stored.content == "User prefers dark mode"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "importance, expected", [(0.0, 50), (0.5, 100), (0.7, 120), (1.0, 128)],
    )
    async def test_initial_decay_scaled_by_importance(self, service, importance, expected):
        memory = await service.save(
            "user-1", f"fact with importance {importance}", "PLAIN", importance=importance,
        )
        assert memory.decay == expected

    @pytest.mark.asyncio
    async def test_permanent_category_pinned(self, service):
        memory = await service.save("user-1", "API reference text", "DOCUMENTATION", importance=0.1)
        assert memory.decay == 100

    @pytest.mark.asyncio
    async def test_property_extractor_and_caller_properties(self, service):
        service.register_category(Category(
            name="TAGGED",
            property_extractor=lambda content: {"length": len(content), "source": "extractor"},
        ))
        memory = await service.save(
            "user-1", "hello there", "TAGGED", properties={"source": "caller"},
        )
        assert memory.metadata == {"length": 11, "source": "caller"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "user_id, content, importance",
        [("", "text", None), ("user-1", "   ", None), ("user-1", "text", 1.5)],
    )
    async def test_validation(self, service, user_id, content, importance):
        with pytest.raises(ValidationError):
            await service.save(user_id, content, "PLAIN", importance=importance)

    @pytest.mark.asyncio
    async def test_unknown_category(self, service):
        with pytest.raises(CategoryError):
            await service.save("user-1", "text", "NOPE")


class TestDuplicates:
    @pytest.mark.asyncio
    async def test_save_then_merge(self, service, store):
        first = await service.save("user-1", "I like coffee", "NOTES")
        assert first.decay == 100

        second = await service.save("user-1", "  i like   COFFEE ", "NOTES")
        assert second.id == first.id
        assert second.decay == 106
        assert second.content == "I like coffee"
        assert second.metadata["merged"] is True
        assert await store.count_by_user("user-1") == 1

    @pytest.mark.asyncio
    async def test_reject(self, service, store):
        first = await service.save("user-1", "unique fact", "STRICT")
        with pytest.raises(DuplicateMemoryError) as exc_info:
            await service.save("user-1", "Unique fact", "STRICT")
        assert exc_info.value.existing.id == first.id
        assert await store.count_by_user("user-1") == 1

    @pytest.mark.asyncio
    async def test_update_resets_decay(self, service):
        first = await service.save("user-1", "server runs on port 8080", "REPLACE", importance=1.0)
        assert first.decay == 128
        replaced = await service.save("user-1", "Server runs on port 8080", "REPLACE")
        assert replaced.id == first.id
        assert replaced.content == "Server runs on port 8080"
        assert replaced.decay == 100

    @pytest.mark.asyncio
    async def test_same_content_other_user_is_not_duplicate(self, service):
        a = await service.save("user-1", "I like coffee", "NOTES")
        b = await service.save("user-2", "I like coffee", "NOTES")
        assert a.id != b.id

    @pytest.mark.asyncio
    async def test_disabled_dedup_creates_new(self, service, store):
        await service.save("user-1", "repeated line", "PLAIN")
        await service.save("user-1", "repeated line", "PLAIN")
        assert await store.count_by_user("user-1") == 2

    @pytest.mark.asyncio
    async def test_semantic_merge(self, service):
        service.register_category(Category(
            name="SEMANTIC",
            deduplication_config=DeduplicationConfig(
                enabled=True, strategy=DeduplicationStrategy.MERGE,
                semantic_enabled=True, semantic_threshold=0.99,
            ),
        ))
        first = await service.save("user-1", "likes green tea", "SEMANTIC")
        second = await service.save("user-1", "likes green tea!", "SEMANTIC")
        assert second.id == first.id


class TestUpdate:
    @pytest.mark.asyncio
    async def test_content_change_regenerates(self, service, embedder):
        memory = await service.save("user-1", "original text", "PLAIN", properties={"a": 1})
        updated = await service.update(
            memory.id, content="completely different text here", metadata={"b": 2},
        )
        assert updated.content == "completely different text here"
        assert updated.content_hash != memory.content_hash
        assert updated.embedding == embedder.embed("completely different text here")
        assert updated.token_count == len("completely different text here") // 3
        assert updated.metadata == {"a": 1, "b": 2}

        stored = await service.get(memory.id)
        assert stored.content == "completely different text here"

    @pytest.mark.asyncio
    async def test_importance_only(self, service):
        memory = await service.save("user-1", "original text", "PLAIN")
        updated = await service.update(memory.id, importance=0.9)
        assert updated.importance == 0.9
        assert updated.content_hash == memory.content_hash

    @pytest.mark.asyncio
    async def test_immutable(self, service):
        memory = await service.save(
            "user-1", "system fact", "PLAIN",
            properties={"immutable": True, "source": "system"},
        )
        with pytest.raises(ImmutableMemoryError) as exc_info:
            await service.update(memory.id, content="changed")
        assert exc_info.value.source == "system"
        assert "system" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing(self, service):
        with pytest.raises(StorageError):
            await service.update("missing-id", importance=0.3)


class TestSearch:
    @pytest.mark.asyncio
    async def test_most_similar_first(self, service):
        await service.save("user-1", "the cat sat on the mat", "PLAIN")
        target = await service.save("user-1", "rust compiler error messages", "PLAIN")
        await service.save("user-1", "weekend hiking trip plans", "PLAIN")

        result = await service.search(
            "user-1", "rust compiler error messages", limit=QueryLimit(max_count=2),
        )
        assert result.items[0].memory.id == target.id
        assert result.items[0].similarity == 1.0
        assert result.metadata.returned == 2
        assert result.metadata.total_found == 3
        assert result.metadata.limit_reason is LimitReason.MAX_COUNT

    @pytest.mark.asyncio
    async def test_expired_memories_excluded(self, service, store):
        memory = await service.save("user-1", "forgotten detail", "PLAIN")
        await store.update_decay(memory.id, 0)
        result = await service.search("user-1", "forgotten detail", limit=QueryLimit())
        assert result.items == []

    @pytest.mark.asyncio
    async def test_category_and_metadata_filters(self, service):
        await service.save("user-1", "bonjour le monde", "PLAIN", properties={"lang": "fr"})
        en = await service.save("user-1", "hello world", "PLAIN", properties={"lang": "en"})
        await service.save("user-1", "api reference pages", "DOCUMENTATION")

        result = await service.search(
            "user-1", "hello world", category="PLAIN",
            limit=QueryLimit(), metadata_filters={"lang": "en"},
        )
        assert [m.id for m in result.memories] == [en.id]

    @pytest.mark.asyncio
    async def test_category_default_limit(self, service):
        for i in range(25):
            await service.save("user-1", f"note number {i}", "PLAIN")
        result = await service.search("user-1", "note number", category="PLAIN")
        assert result.metadata.returned <= 20
        assert result.metadata.total_tokens <= 500

    @pytest.mark.asyncio
    async def test_empty_query_rejected(self, service):
        with pytest.raises(ValidationError):
            await service.search("user-1", "  ")

    def test_select_bounded_passthrough(self, service):
        result = service.select_bounded([], QueryLimit.default())
        assert result.metadata.limit_reason is LimitReason.EXHAUSTED


class TestLifecycleAndStats:
    @pytest.mark.asyncio
    async def test_apply_lifecycle(self, service):
        used = await service.save("user-1", "used memory", "PLAIN")
        idle = await service.save("user-1", "idle memory", "PLAIN")
        doc = await service.save("user-1", "reference documentation", "DOCUMENTATION")

        result = await service.apply_lifecycle("user-1", used_ids=[used.id])
        assert result.decay_applied == 3
        assert result.failures == {}

        assert (await service.get(used.id)).decay == 106
        assert (await service.get(idle.id)).decay == 96
        assert (await service.get(doc.id)).decay == 100

    @pytest.mark.asyncio
    async def test_reinforce(self, service):
        memory = await service.save("user-1", "reinforce me", "PLAIN")
        reinforced = await service.reinforce(memory.id)
        assert reinforced.decay == 106
        assert (await service.get(memory.id)).decay == 106

    @pytest.mark.asyncio
    async def test_record_usage(self, service):
        memory = await service.save("user-1", "touch me", "PLAIN")
        assert await service.record_usage([memory.id]) == 1
        stored = await service.get(memory.id)
        assert stored.access_count == 1
        assert stored.last_accessed_at is not None

    @pytest.mark.asyncio
    async def test_get_stats(self, service):
        await service.save("user-1", "first fact here", "PLAIN", importance=0.5)
        await service.save("user-1", "second fact here", "PLAIN", importance=0.7)
        await service.save("user-1", "installation guide", "DOCUMENTATION", importance=0.9)

        stats = await service.get_stats("user-1")
        assert stats.total_memories == 3
        assert stats.by_category == {"PLAIN": 2, "DOCUMENTATION": 1}
        assert stats.average_decay == pytest.approx((100 + 120 + 100) / 3)
        assert stats.average_importance == pytest.approx(0.7)
        assert stats.oldest_memory <= stats.newest_memory

    @pytest.mark.asyncio
    async def test_stats_empty(self, service):
        stats = await service.get_stats("nobody")
        assert stats.total_memories == 0
        assert stats.oldest_memory is None

    @pytest.mark.asyncio
    async def test_delete(self, service, store):
        a = await service.save("user-1", "delete me", "PLAIN")
        await service.save("user-1", "and me", "PLAIN")
        assert await service.delete(a.id) is True
        assert await service.delete(a.id) is False
        assert await service.delete_by_user("user-1") == 1
        assert await store.count_by_user("user-1") == 0


class TestLazyStore:
    @pytest.mark.asyncio
    async def test_store_created_from_config(self, tmp_path, embedder):
        config = MemorixConfig(storage=StorageConfig(sqlite_db_path=str(tmp_path / "lazy.db")))
        service = MemoryService(config=config, embedder=embedder)
        memory = await service.save("user-1", "I like coffee", "USER_PREFERENCE")
        assert (await service.get(memory.id)).id == memory.id
        assert (tmp_path / "lazy.db").exists()
        await service.close()
