"""Tests for SQLiteMemoryStore."""

import os
import tempfile
from datetime import timedelta

import pytest

from memorix.exceptions import StorageError
from memorix.storage import MemoryStore
from memorix.storage.sqlite_store import SQLiteMemoryStore

from conftest import FIXED_NOW


@pytest.mark.asyncio
async def test_memories_table_exists(store):
    async with store._db.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='memories'"
    ) as cursor:
        rows = await cursor.fetchall()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_indexes_exist(store):
    async with store._db.execute(
        "SELECT name FROM sqlite_master WHERE type='index' AND tbl_name='memories'"
    ) as cursor:
        names = {row[0] for row in await cursor.fetchall()}
    assert {"idx_memories_user", "idx_memories_user_hash", "idx_memories_user_category"} <= names


def test_implements_protocol():
    assert isinstance(SQLiteMemoryStore(db_path=":memory:"), MemoryStore)


@pytest.mark.asyncio
async def test_round_trip_preserves_fields(store, make_memory):
    memory = make_memory(
        embedding=[0.25, -0.5, 1.0],
        metadata={"tags": ["a", "b"], "immutable": False},
        importance=0.75,
        last_accessed_at=FIXED_NOW + timedelta(hours=1),
        access_count=4,
    )
    await store.save(memory)

    loaded = await store.find_by_id(memory.id)
    assert loaded.model_dump() == memory.model_dump()


@pytest.mark.asyncio
async def test_duplicate_id_raises_storage_error(store, make_memory):
    memory = make_memory()
    await store.save(memory)
    with pytest.raises(StorageError) as exc_info:
        await store.save(memory)
    assert exc_info.value.operation == "save"


@pytest.mark.asyncio
async def test_update_missing_raises(store, make_memory):
    with pytest.raises(StorageError):
        await store.update(make_memory())
    with pytest.raises(StorageError):
        await store.update_decay("missing", 10)


@pytest.mark.asyncio
async def test_update_and_update_decay(store, make_memory):
    memory = make_memory(decay=100)
    await store.save(memory)

    await store.update(memory.model_copy(update={"content": "changed"}))
    await store.update_decay(memory.id, 42)

    loaded = await store.find_by_id(memory.id)
    assert loaded.content == "changed"
    assert loaded.decay == 42


@pytest.mark.asyncio
async def test_find_by_user_sorted_and_filtered(store, make_memory):
    for memory_id, category in (("c", "PLAIN"), ("a", "NOTES"), ("b", "PLAIN")):
        await store.save(make_memory(id=memory_id, category=category))
    await store.save(make_memory(id="z", user_id="someone-else"))

    assert [m.id for m in await store.find_by_user("user-1")] == ["a", "b", "c"]
    assert [m.id for m in await store.find_by_user("user-1", "PLAIN")] == ["b", "c"]


@pytest.mark.asyncio
async def test_find_by_hash_skips_expired(store, make_memory):
    await store.save(make_memory(id="dead", content_hash="h1", decay=0))
    assert await store.find_by_hash("user-1", "h1") is None

    await store.save(make_memory(id="live", content_hash="h1", decay=1))
    found = await store.find_by_hash("user-1", "h1")
    assert found.id == "live"


@pytest.mark.asyncio
async def test_ranked_candidates(store, make_memory):
    await store.save(make_memory(id="x", embedding=[1.0, 0.0]))
    await store.save(make_memory(id="y", embedding=[0.6, 0.8]))
    await store.save(make_memory(id="z", embedding=[0.0, 1.0]))
    await store.save(make_memory(id="dead", embedding=[1.0, 0.0], decay=0))
    await store.save(make_memory(id="bare", embedding=None))

    results = await store.ranked_candidates("user-1", [1.0, 0.0], window_size=10)
    assert [r.memory.id for r in results] == ["x", "y", "z"]
    assert [r.similarity for r in results] == [1.0, 0.6, 0.0]

    window = await store.ranked_candidates("user-1", [1.0, 0.0], window_size=2)
    assert len(window) == 2

    nearest = await store.find_nearest("user-1", [0.0, 2.0])
    assert nearest.memory.id == "z"
    assert nearest.similarity == 1.0


@pytest.mark.asyncio
async def test_ranked_candidates_filters(store, make_memory):
    await store.save(make_memory(id="a", category="PLAIN", embedding=[1.0, 0.0], metadata={"lang": "en"}))
    await store.save(make_memory(id="b", category="PLAIN", embedding=[1.0, 0.0], metadata={"lang": "fr"}))
    await store.save(make_memory(id="c", category="NOTES", embedding=[1.0, 0.0], metadata={"lang": "en"}))

    results = await store.ranked_candidates(
        "user-1", [1.0, 0.0], 10, category="PLAIN", metadata_filters={"lang": "en"},
    )
    assert [r.memory.id for r in results] == ["a"]


@pytest.mark.asyncio
async def test_delete_count_and_touch(store, make_memory):
    await store.save(make_memory(id="a"))
    await store.save(make_memory(id="b"))
    assert await store.count_by_user("user-1") == 2

    assert await store.touch(["a", "missing"], now=FIXED_NOW) == 1
    touched = await store.find_by_id("a")
    assert touched.access_count == 1
    assert touched.last_accessed_at == FIXED_NOW

    assert await store.delete("a") is True
    assert await store.delete("a") is False
    assert await store.delete_by_user("user-1") == 1
    assert await store.count_by_user("user-1") == 0


@pytest.mark.asyncio
async def test_uninitialized_store_raises():
    with tempfile.TemporaryDirectory() as tmpdir:
        s = SQLiteMemoryStore(db_path=os.path.join(tmpdir, "never.db"))
        with pytest.raises(StorageError, match="not initialized"):
            await s.find_by_id("anything")


@pytest.mark.asyncio
async def test_initialize_creates_parent_directory():
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = os.path.join(tmpdir, "nested", "dir", "memorix.db")
        s = SQLiteMemoryStore(db_path=db_path)
        await s.initialize()
        assert os.path.exists(db_path)
        await s.close()
