"""SQLite storage backend for memorix.

Persists memories with aiosqlite. Embeddings are stored as float32 BLOBs and
similarity search is a brute-force cosine scan over one user's live memories,
which is adequate for per-user collections of a few thousand records.
"""

from __future__ import annotations

import functools
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

import aiosqlite
import numpy as np
from loguru import logger

from ..embedding import deserialize_embedding, serialize_embedding
from ..exceptions import StorageError
from ..models import Memory, ScoredMemory, utcnow

_COLUMNS = """
    id, user_id, category, content, content_hash, embedding, decay,
    importance, token_count, metadata, created_at, updated_at,
    last_accessed_at, access_count
"""


def _storage_operation(operation: str):
    """Translate sqlite failures of a store coroutine into StorageError."""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self: "SQLiteMemoryStore", *args, **kwargs):
            if self._db is None:
                raise StorageError(
                    "Database not initialized. Call initialize() first.",
                    operation=operation,
                )
            try:
                return await func(self, *args, **kwargs)
            except aiosqlite.Error as e:
                raise StorageError(f"{operation} failed: {e}", operation=operation) from e

        return wrapper

    return decorator


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SQLiteMemoryStore:
    """aiosqlite-backed implementation of the MemoryStore protocol.

    Uses WAL mode for concurrent reads.
    """

    def __init__(self, db_path: str = "./memory/memorix.db"):
        """Initialize SQLite store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None
        logger.info(f"SQLiteMemoryStore initialized with db_path: {db_path}")

    async def initialize(self) -> None:
        """Create the database file, tables and indexes if they don't exist."""
        db_dir = Path(self.db_path).parent
        db_dir.mkdir(parents=True, exist_ok=True)

        try:
            self._db = await aiosqlite.connect(self.db_path)
            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._create_schema()
            await self._db.commit()
        except aiosqlite.Error as e:
            raise StorageError(f"initialize failed: {e}", operation="initialize") from e

        logger.info("SQLite database initialized successfully")

    async def _create_schema(self) -> None:
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS memories (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                category TEXT,
                content TEXT NOT NULL,
                content_hash TEXT,
                embedding BLOB,
                decay INTEGER NOT NULL DEFAULT 100,
                importance REAL NOT NULL DEFAULT 0.5,
                token_count INTEGER NOT NULL DEFAULT 0,
                metadata TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                last_accessed_at TEXT,
                access_count INTEGER NOT NULL DEFAULT 0
            )
        """)
        await self._db.execute(
            "CREATE INDEX IF NOT EXISTS idx_memories_user ON memories(user_id)"
        )
        await self._db.execute(
            "CREATE INDEX IF NOT EXISTS idx_memories_user_hash "
            "ON memories(user_id, content_hash)"
        )
        await self._db.execute(
            "CREATE INDEX IF NOT EXISTS idx_memories_user_category "
            "ON memories(user_id, category)"
        )

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("SQLite database connection closed")

    @staticmethod
    def _row_to_memory(row: tuple) -> Memory:
        return Memory(
            id=row[0],
            user_id=row[1],
            category=row[2],
            content=row[3],
            content_hash=row[4],
            embedding=deserialize_embedding(row[5]) if row[5] else None,
            decay=row[6],
            importance=row[7],
            token_count=row[8],
            metadata=json.loads(row[9]) if row[9] else {},
            created_at=_from_iso(row[10]),
            updated_at=_from_iso(row[11]),
            last_accessed_at=_from_iso(row[12]),
            access_count=row[13],
        )

    @staticmethod
    def _memory_params(memory: Memory) -> tuple:
        return (
            memory.user_id,
            memory.category,
            memory.content,
            memory.content_hash,
            serialize_embedding(memory.embedding) if memory.embedding else None,
            memory.decay,
            memory.importance,
            memory.token_count,
            json.dumps(memory.metadata, default=str),
            _to_iso(memory.created_at),
            _to_iso(memory.updated_at),
            _to_iso(memory.last_accessed_at),
            memory.access_count,
        )

    @_storage_operation("save")
    async def save(self, memory: Memory) -> Memory:
        await self._db.execute(
            f"INSERT INTO memories ({_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (memory.id, *self._memory_params(memory)),
        )
        await self._db.commit()
        logger.debug(f"Memory inserted: {memory.id}")
        return memory

    @_storage_operation("update")
    async def update(self, memory: Memory) -> Memory:
        cursor = await self._db.execute(
            """
            UPDATE memories SET
                user_id = ?, category = ?, content = ?, content_hash = ?,
                embedding = ?, decay = ?, importance = ?, token_count = ?,
                metadata = ?, created_at = ?, updated_at = ?,
                last_accessed_at = ?, access_count = ?
            WHERE id = ?
            """,
            (*self._memory_params(memory), memory.id),
        )
        if cursor.rowcount == 0:
            raise StorageError(f"Memory not found: {memory.id}", operation="update")
        await self._db.commit()
        logger.debug(f"Memory updated: {memory.id}")
        return memory

    @_storage_operation("update_decay")
    async def update_decay(self, memory_id: str, decay: int) -> None:
        cursor = await self._db.execute(
            "UPDATE memories SET decay = ? WHERE id = ?", (decay, memory_id),
        )
        if cursor.rowcount == 0:
            raise StorageError(f"Memory not found: {memory_id}", operation="update_decay")
        await self._db.commit()

    @_storage_operation("delete")
    async def delete(self, memory_id: str) -> bool:
        cursor = await self._db.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
        await self._db.commit()
        return cursor.rowcount > 0

    @_storage_operation("delete_by_user")
    async def delete_by_user(self, user_id: str) -> int:
        cursor = await self._db.execute(
            "DELETE FROM memories WHERE user_id = ?", (user_id,)
        )
        await self._db.commit()
        return cursor.rowcount

    @_storage_operation("find_by_id")
    async def find_by_id(self, memory_id: str) -> Memory | None:
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM memories WHERE id = ?", (memory_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return self._row_to_memory(row) if row else None

    @_storage_operation("find_by_user")
    async def find_by_user(
        self, user_id: str, category: str | None = None
    ) -> list[Memory]:
        if category is not None:
            query = (
                f"SELECT {_COLUMNS} FROM memories "
                "WHERE user_id = ? AND category = ? ORDER BY id"
            )
            params: tuple = (user_id, category)
        else:
            query = f"SELECT {_COLUMNS} FROM memories WHERE user_id = ? ORDER BY id"
            params = (user_id,)

        async with self._db.execute(query, params) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_memory(row) for row in rows]

    @_storage_operation("find_by_hash")
    async def find_by_hash(self, user_id: str, content_hash: str) -> Memory | None:
        async with self._db.execute(
            f"""
            SELECT {_COLUMNS} FROM memories
            WHERE user_id = ? AND content_hash = ? AND decay > 0
            ORDER BY created_at, id
            LIMIT 1
            """,
            (user_id, content_hash),
        ) as cursor:
            row = await cursor.fetchone()
        return self._row_to_memory(row) if row else None

    async def find_nearest(
        self, user_id: str, embedding: list[float]
    ) -> ScoredMemory | None:
        results = await self.ranked_candidates(user_id, embedding, window_size=1)
        return results[0] if results else None

    @_storage_operation("ranked_candidates")
    async def ranked_candidates(
        self,
        user_id: str,
        query_vector: list[float],
        window_size: int,
        category: str | None = None,
        metadata_filters: dict[str, Any] | None = None,
    ) -> list[ScoredMemory]:
        query = (
            f"SELECT {_COLUMNS} FROM memories "
            "WHERE user_id = ? AND decay > 0 AND embedding IS NOT NULL"
        )
        params: list[Any] = [user_id]
        if category is not None:
            query += " AND category = ?"
            params.append(category)

        async with self._db.execute(query, params) as cursor:
            rows = await cursor.fetchall()

        memories = [self._row_to_memory(row) for row in rows]
        if metadata_filters:
            memories = [
                m for m in memories
                if all(m.metadata.get(k) == v for k, v in metadata_filters.items())
            ]
        dimension = len(query_vector)
        memories = [m for m in memories if len(m.embedding) == dimension]
        if not memories or dimension == 0:
            return []

        matrix = np.asarray([m.embedding for m in memories], dtype=np.float64)
        query_arr = np.asarray(query_vector, dtype=np.float64)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_arr)
        dots = matrix @ query_arr
        similarities = np.divide(
            dots, norms, out=np.zeros_like(dots), where=norms > 0,
        )
        similarities = np.round(np.clip(similarities, -1.0, 1.0), 6)

        scored = [
            ScoredMemory(memory=m, similarity=float(s))
            for m, s in zip(memories, similarities)
        ]
        scored.sort(key=lambda item: (-item.similarity, item.memory.id))
        return scored[:window_size]

    @_storage_operation("count_by_user")
    async def count_by_user(self, user_id: str) -> int:
        async with self._db.execute(
            "SELECT COUNT(*) FROM memories WHERE user_id = ?", (user_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return row[0]

    @_storage_operation("touch")
    async def touch(self, memory_ids: Iterable[str], now: datetime | None = None) -> int:
        timestamp = _to_iso(now or utcnow())
        updated = 0
        for memory_id in memory_ids:
            cursor = await self._db.execute(
                """
                UPDATE memories
                SET last_accessed_at = ?, access_count = access_count + 1
                WHERE id = ?
                """,
                (timestamp, memory_id),
            )
            updated += cursor.rowcount
        await self._db.commit()
        return updated
