"""Decay strategies.

A strategy maps ``(memory, context)`` to the memory's next decay value. All
strategies are pure: they read the memory and the context and never touch
storage. Results are always clamped into the category's
``[min_decay, max_decay]`` range.

Strategies are looked up by name through a small registry populated at import
time with the four built-ins. Applications can register their own factories
at startup with :func:`register_decay_strategy`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable

from loguru import logger

from ..config import DecayConfig
from ..exceptions import CategoryError
from ..models import Memory, utcnow


class DecayStrategyType(str, Enum):
    USAGE_BASED = "usage_based"
    TIME_BASED = "time_based"
    HYBRID = "hybrid"
    PERMANENT = "permanent"


@dataclass(frozen=True)
class DecayContext:
    """Inputs for one decay calculation. Built fresh for every record."""

    decay_config: DecayConfig
    now: datetime = field(default_factory=utcnow)
    was_used_in_session: bool = False
    is_active_session: bool = True
    sessions_since_last_use: int = 0
    time_since_last_use: timedelta = timedelta(0)
    time_since_created: timedelta = timedelta(0)
    total_usage_count: int = 0
    custom_params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_memory(
        cls,
        memory: Memory,
        decay_config: DecayConfig,
        now: datetime | None = None,
        was_used: bool = False,
        active_session: bool = True,
        sessions_since_last_use: int = 0,
        custom_params: dict[str, Any] | None = None,
    ) -> "DecayContext":
        """Build a context from the memory's own timestamps.

        A memory that was never accessed counts its idle time from creation.
        """
        now = now or utcnow()
        last_use = memory.last_accessed_at or memory.created_at
        params = dict(decay_config.strategy_params)
        if custom_params:
            params.update(custom_params)

        return cls(
            decay_config=decay_config,
            now=now,
            was_used_in_session=was_used,
            is_active_session=active_session,
            sessions_since_last_use=sessions_since_last_use,
            time_since_last_use=now - last_use,
            time_since_created=now - memory.created_at,
            total_usage_count=memory.access_count,
            custom_params=params,
        )

    @property
    def days_since_last_use(self) -> int:
        return self.time_since_last_use.days

    def param(self, name: str, default: Any) -> Any:
        return self.custom_params.get(name, default)


class DecayStrategy(ABC):
    """Base class for decay strategies."""

    name: str = ""

    @abstractmethod
    def calculate_decay(self, memory: Memory, context: DecayContext) -> int:
        """Return the memory's next decay value, within the configured bounds."""

    def should_auto_delete(self, memory: Memory, context: DecayContext) -> bool:
        """Whether the memory has expired and its category allows deletion."""
        config = context.decay_config
        return config.auto_delete and memory.decay <= config.min_decay


class UsageBasedDecayStrategy(DecayStrategy):
    """Reinforce on use, reduce on an active session without use.

    Outside an active session (passive background maintenance) the decay
    is left as it is.
    """

    name = DecayStrategyType.USAGE_BASED.value

    def calculate_decay(self, memory: Memory, context: DecayContext) -> int:
        config = context.decay_config
        decay = memory.decay
        if context.was_used_in_session:
            decay += config.decay_reinforcement
        elif context.is_active_session:
            decay -= config.decay_reduction
        return config.clamp(decay)


class TimeBasedDecayStrategy(DecayStrategy):
    """Decay derived from age alone.

    ``initial_decay - intervals_elapsed * decay_reduction``, floored at
    ``min_decay``. The result depends only on creation time, so applying it
    twice with the same context gives the same value.
    """

    name = DecayStrategyType.TIME_BASED.value

    def calculate_decay(self, memory: Memory, context: DecayContext) -> int:
        config = context.decay_config
        intervals = max(0, context.time_since_created // config.decay_interval)
        decay = config.initial_decay - intervals * config.decay_reduction
        return config.clamp(max(decay, config.min_decay))


class HybridDecayStrategy(DecayStrategy):
    """Usage, inactivity and importance combined.

    Strategy params:
        inactivity_threshold: idle days before the time penalty applies (90)
        time_decay: penalty subtracted once inactive (2)
    """

    name = DecayStrategyType.HYBRID.value

    DEFAULT_INACTIVITY_THRESHOLD_DAYS = 90
    DEFAULT_TIME_DECAY = 2
    HIGH_IMPORTANCE = 0.8

    def calculate_decay(self, memory: Memory, context: DecayContext) -> int:
        config = context.decay_config
        decay = memory.decay

        if context.was_used_in_session:
            decay += config.decay_reinforcement
        elif context.is_active_session:
            decay -= config.decay_reduction // 2

        threshold = int(context.param(
            "inactivity_threshold", self.DEFAULT_INACTIVITY_THRESHOLD_DAYS
        ))
        if context.days_since_last_use > threshold:
            decay -= int(context.param("time_decay", self.DEFAULT_TIME_DECAY))

        if memory.importance > self.HIGH_IMPORTANCE:
            decay += 1

        return config.clamp(decay)


class PermanentDecayStrategy(DecayStrategy):
    """Never changes decay and never deletes."""

    name = DecayStrategyType.PERMANENT.value

    def calculate_decay(self, memory: Memory, context: DecayContext) -> int:
        return memory.decay

    def should_auto_delete(self, memory: Memory, context: DecayContext) -> bool:
        return False


_REGISTRY: dict[str, Callable[[], DecayStrategy]] = {
    DecayStrategyType.USAGE_BASED.value: UsageBasedDecayStrategy,
    DecayStrategyType.TIME_BASED.value: TimeBasedDecayStrategy,
    DecayStrategyType.HYBRID.value: HybridDecayStrategy,
    DecayStrategyType.PERMANENT.value: PermanentDecayStrategy,
}


def register_decay_strategy(
    name: str, factory: Callable[[], DecayStrategy], replace: bool = False
) -> None:
    """Register a strategy factory under ``name``.

    Raises:
        CategoryError: If the name is taken and ``replace`` is False
    """
    if name in _REGISTRY and not replace:
        raise CategoryError(f"Decay strategy already registered: {name!r}")
    _REGISTRY[name] = factory
    logger.debug(f"Registered decay strategy: {name}")


def get_decay_strategy(name: str) -> DecayStrategy:
    """Instantiate the strategy registered under ``name``.

    Raises:
        CategoryError: If no strategy has that name
    """
    factory = _REGISTRY.get(name)
    if factory is None:
        raise CategoryError(
            f"Unknown decay strategy: {name!r}. "
            f"Available: {', '.join(available_strategies())}"
        )
    return factory()


def available_strategies() -> list[str]:
    return sorted(_REGISTRY)
