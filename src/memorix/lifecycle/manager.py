"""Lifecycle manager: batch decay application and expiry cleanup."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Iterable

from loguru import logger

from ..exceptions import StorageError
from ..models import Memory, utcnow
from ..storage.interfaces import MemoryStore
from .strategies import DecayContext, DecayStrategy, get_decay_strategy

if TYPE_CHECKING:
    from ..categories import CategoryRegistry


@dataclass
class LifecycleResult:
    """Outcome of one lifecycle pass.

    ``failures`` maps memory id to the error that stopped it; the pass
    carries on past such records.
    """

    decay_applied: int = 0
    memories_deleted: int = 0
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return not self.failures


class LifecycleManager:
    """Applies each memory's category decay strategy and removes expired memories.

    Records are processed sequentially in id order. Each record resolves its
    own category, so a pass over a user with mixed categories applies the
    right strategy to each one.
    """

    def __init__(self, store: MemoryStore, registry: CategoryRegistry):
        self._store = store
        self._registry = registry

    async def apply_lifecycle(
        self,
        user_id: str,
        category: str | None = None,
        used_ids: Iterable[str] = (),
        active_session: bool = True,
        now: datetime | None = None,
    ) -> LifecycleResult:
        """Run one decay pass over a user's memories.

        Args:
            user_id: Owner of the memories
            category: Restrict the pass to one category
            used_ids: Ids of memories used during the session being closed
            active_session: False for passive background maintenance
            now: Reference time for age and idle calculations

        Returns:
            LifecycleResult with counts and per-record failures
        """
        now = now or utcnow()
        used = set(used_ids)
        result = LifecycleResult()

        memories = await self._store.find_by_user(user_id, category)
        for memory in sorted(memories, key=lambda m: m.id):
            try:
                updated, strategy, context = await self._decay_one(
                    memory, memory.id in used, active_session, now,
                )
            except Exception as e:
                logger.warning(f"Lifecycle failed for memory {memory.id}: {e}")
                result.failures[memory.id] = str(e)
                continue

            result.decay_applied += 1
            if not strategy.should_auto_delete(updated, context):
                continue
            try:
                await self._store.delete(memory.id)
            except Exception as e:
                logger.warning(f"Failed to delete expired memory {memory.id}: {e}")
                result.failures[memory.id] = str(e)
                continue
            logger.debug(f"Memory {memory.id} expired and was deleted")
            result.memories_deleted += 1

        logger.info(
            f"Lifecycle applied for user {user_id}: {result.decay_applied} updated, "
            f"{result.memories_deleted} deleted, {len(result.failures)} failed"
        )
        return result

    async def _decay_one(
        self,
        memory: Memory,
        was_used: bool,
        active_session: bool,
        now: datetime,
    ) -> tuple[Memory, DecayStrategy, DecayContext]:
        category = self._registry.get(memory.category)
        strategy = get_decay_strategy(category.decay_config.strategy)
        context = DecayContext.for_memory(
            memory,
            category.decay_config,
            now=now,
            was_used=was_used,
            active_session=active_session,
        )

        new_decay = strategy.calculate_decay(memory, context)
        await self._store.update_decay(memory.id, new_decay)
        logger.debug(f"Memory {memory.id}: decay {memory.decay} -> {new_decay}")
        return memory.model_copy(update={"decay": new_decay}), strategy, context

    async def cleanup_expired(
        self, user_id: str, category: str | None = None
    ) -> LifecycleResult:
        """Delete memories that are already expired, without recomputing decay.

        Only ``memories_deleted`` and ``failures`` are filled in; a record
        that cannot be checked or deleted is logged and skipped.
        """
        now = utcnow()
        result = LifecycleResult()
        for memory in await self._store.find_by_user(user_id, category):
            try:
                owner = self._registry.get(memory.category)
                strategy = get_decay_strategy(owner.decay_config.strategy)
                context = DecayContext.for_memory(memory, owner.decay_config, now=now)
                if not strategy.should_auto_delete(memory, context):
                    continue
                if await self._store.delete(memory.id):
                    result.memories_deleted += 1
            except Exception as e:
                logger.warning(f"Cleanup failed for memory {memory.id}: {e}")
                result.failures[memory.id] = str(e)

        logger.info(
            f"Cleaned up {result.memories_deleted} expired memories for user {user_id}, "
            f"{len(result.failures)} failed"
        )
        return result

    async def reinforce(self, memory_id: str) -> Memory:
        """Add the category's reinforcement to one memory, clamped to max.

        Raises:
            StorageError: If the memory does not exist
        """
        memory = await self._store.find_by_id(memory_id)
        if memory is None:
            raise StorageError(f"Memory not found: {memory_id}", operation="reinforce")

        config = self._registry.get(memory.category).decay_config
        new_decay = config.clamp(memory.decay + config.decay_reinforcement)
        await self._store.update_decay(memory_id, new_decay)
        logger.debug(f"Reinforced memory {memory_id}: {memory.decay} -> {new_decay}")
        return memory.model_copy(update={"decay": new_decay})
