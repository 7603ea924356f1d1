"""Storage backends for memorix."""

from __future__ import annotations

from .interfaces import MemoryStore
from .sqlite_store import SQLiteMemoryStore

__all__ = ["MemoryStore", "SQLiteMemoryStore"]
