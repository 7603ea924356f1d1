"""Decay strategies and the lifecycle manager."""

from __future__ import annotations

from .strategies import (
    DecayContext,
    DecayStrategy,
    DecayStrategyType,
    HybridDecayStrategy,
    PermanentDecayStrategy,
    TimeBasedDecayStrategy,
    UsageBasedDecayStrategy,
    available_strategies,
    get_decay_strategy,
    register_decay_strategy,
)
from .manager import LifecycleManager, LifecycleResult

__all__ = [
    "DecayContext",
    "DecayStrategy",
    "DecayStrategyType",
    "HybridDecayStrategy",
    "LifecycleManager",
    "LifecycleResult",
    "PermanentDecayStrategy",
    "TimeBasedDecayStrategy",
    "UsageBasedDecayStrategy",
    "available_strategies",
    "get_decay_strategy",
    "register_decay_strategy",
]
