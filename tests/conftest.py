"""
Memorix Test Fixtures
Shared storage, embedding and category fixtures.
"""
import os
import tempfile
from datetime import datetime, timezone

import pytest

from memorix.categories import Category, CategoryRegistry, register_builtin_categories
from memorix.config import DecayConfig, DeduplicationConfig
from memorix.embedding import HashEmbeddingProvider
from memorix.memory_service import MemoryService
from memorix.models import DeduplicationStrategy, Memory
from memorix.storage.sqlite_store import SQLiteMemoryStore

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def store():
    """Initialized SQLite store in a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        s = SQLiteMemoryStore(db_path=os.path.join(tmpdir, "test.db"))
        await s.initialize()
        yield s
        await s.close()


@pytest.fixture
def embedder():
    """Deterministic hash embedder."""
    return HashEmbeddingProvider(dimension=64)


@pytest.fixture
def registry():
    """Built-in categories plus one category per deduplication strategy."""
    reg = register_builtin_categories(CategoryRegistry())
    reg.register(Category(
        name="NOTES",
        decay_config=DecayConfig(),
        deduplication_config=DeduplicationConfig(
            enabled=True, strategy=DeduplicationStrategy.MERGE,
        ),
    ))
    reg.register(Category(
        name="STRICT",
        decay_config=DecayConfig(),
        deduplication_config=DeduplicationConfig(
            enabled=True, strategy=DeduplicationStrategy.REJECT,
        ),
    ))
    reg.register(Category(
        name="REPLACE",
        decay_config=DecayConfig(),
        deduplication_config=DeduplicationConfig(
            enabled=True, strategy=DeduplicationStrategy.UPDATE,
        ),
    ))
    reg.register(Category(name="PLAIN", decay_config=DecayConfig()))
    return reg


@pytest.fixture
def service(store, embedder, registry):
    """MemoryService wired to the temporary store."""
    return MemoryService(store=store, embedder=embedder, registry=registry)


@pytest.fixture
def make_memory():
    """Factory for Memory records with fixed timestamps."""

    def _make(**overrides) -> Memory:
        fields = {
            "user_id": "user-1",
            "category": "PLAIN",
            "content": "some remembered fact",
            "decay": 100,
            "token_count": 10,
            "created_at": FIXED_NOW,
            "updated_at": FIXED_NOW,
        }
        fields.update(overrides)
        return Memory(**fields)

    return _make
