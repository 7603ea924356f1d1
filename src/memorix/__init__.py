"""Memorix - memory lifecycle, bounded retrieval and deduplication.

Provides:
- Decay strategies (usage-based, time-based, hybrid, permanent)
- Token-budgeted candidate selection under count and similarity limits
- Hash and semantic duplicate detection with reject/merge/update resolution
- An async MemoryService facade over SQLite storage
"""

from .categories import Category, CategoryRegistry, register_builtin_categories
from .config import (
    DecayConfig,
    DeduplicationConfig,
    MemorixConfig,
    load_config,
)
from .exceptions import (
    CategoryError,
    DuplicateMemoryError,
    EmbeddingError,
    ImmutableMemoryError,
    MemorixError,
    StorageError,
    ValidationError,
)
from .lifecycle import DecayContext, LifecycleManager, LifecycleResult
from .memory_service import MemoryService
from .models import DeduplicationStrategy, Memory, MemoryStats, ScoredMemory
from .query import LimitReason, LimitStrategy, QueryLimit, QueryLimitExecutor, QueryResult

__all__ = [
    "Category",
    "CategoryError",
    "CategoryRegistry",
    "DecayConfig",
    "DecayContext",
    "DeduplicationConfig",
    "DeduplicationStrategy",
    "DuplicateMemoryError",
    "EmbeddingError",
    "ImmutableMemoryError",
    "LifecycleManager",
    "LifecycleResult",
    "LimitReason",
    "LimitStrategy",
    "Memory",
    "MemorixConfig",
    "MemorixError",
    "MemoryService",
    "MemoryStats",
    "QueryLimit",
    "QueryLimitExecutor",
    "QueryResult",
    "ScoredMemory",
    "StorageError",
    "ValidationError",
    "load_config",
    "register_builtin_categories",
]
