"""Memory categories.

A category bundles everything that governs one kind of memory: its decay
behaviour, default retrieval limit, deduplication policy and the function
that extracts metadata from content. Categories are registered explicitly at
startup; every stored memory names its category.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Iterator

from loguru import logger

from .config import DecayConfig, DeduplicationConfig
from .exceptions import CategoryError
from .lifecycle.strategies import available_strategies
from .models import DeduplicationStrategy
from .query.limits import LimitStrategy, QueryLimit


def _no_properties(content: str) -> dict[str, Any]:
    return {}


@dataclass(frozen=True)
class Category:
    name: str
    decay_config: DecayConfig = field(default_factory=DecayConfig)
    default_query_limit: QueryLimit = field(default_factory=QueryLimit.default)
    deduplication_config: DeduplicationConfig = field(
        default_factory=DeduplicationConfig.disabled
    )
    property_extractor: Callable[[str], dict[str, Any]] = _no_properties

    def extract_properties(self, content: str) -> dict[str, Any]:
        return dict(self.property_extractor(content) or {})


class CategoryRegistry:
    """Name-to-category lookup, filled at startup."""

    def __init__(self):
        self._categories: dict[str, Category] = {}

    def register(self, category: Category) -> Category:
        """Register a category.

        Raises:
            CategoryError: If the name is empty or taken, or the decay
                strategy is not registered
        """
        if not category.name:
            raise CategoryError("Category name must not be empty")
        if category.name in self._categories:
            raise CategoryError(f"Category already registered: {category.name!r}")
        strategy = category.decay_config.strategy
        if strategy not in available_strategies():
            raise CategoryError(
                f"Category {category.name!r} uses unknown decay strategy {strategy!r}"
            )

        self._categories[category.name] = category
        logger.info(
            f"Registered category {category.name!r} "
            f"(decay={strategy}, dedup={category.deduplication_config.enabled})"
        )
        return category

    def get(self, name: str) -> Category:
        category = self._categories.get(name)
        if category is None:
            raise CategoryError(f"Unknown category: {name!r}")
        return category

    def find(self, name: str | None) -> Category | None:
        if name is None:
            return None
        return self._categories.get(name)

    def unregister(self, name: str) -> bool:
        return self._categories.pop(name, None) is not None

    def names(self) -> list[str]:
        return sorted(self._categories)

    def __contains__(self, name: object) -> bool:
        return name in self._categories

    def __len__(self) -> int:
        return len(self._categories)

    def __iter__(self) -> Iterator[Category]:
        return iter(list(self._categories.values()))


USER_PREFERENCE = Category(
    name="USER_PREFERENCE",
    decay_config=DecayConfig(
        strategy="usage_based",
        max_decay=200,
        decay_reduction=3,
        decay_reinforcement=8,
    ),
    default_query_limit=QueryLimit(
        max_count=20, max_tokens=400, min_similarity=0.5,
        strategy=LimitStrategy.GREEDY,
    ),
    deduplication_config=DeduplicationConfig(
        enabled=True,
        strategy=DeduplicationStrategy.MERGE,
        semantic_enabled=True,
        semantic_threshold=0.88,
        reinforce_on_merge=True,
    ),
)

CONVERSATION = Category(
    name="CONVERSATION",
    decay_config=DecayConfig(
        strategy="hybrid",
        max_decay=150,
        decay_reduction=4,
        decay_reinforcement=6,
        decay_interval=timedelta(days=7),
        strategy_params={"inactivity_threshold": 30},
    ),
    default_query_limit=QueryLimit(
        max_count=30, max_tokens=800, min_similarity=0.4,
        strategy=LimitStrategy.GREEDY,
    ),
    deduplication_config=DeduplicationConfig.disabled(),
)

DOCUMENTATION = Category(
    name="DOCUMENTATION",
    decay_config=DecayConfig(
        strategy="permanent",
        initial_decay=100,
        min_decay=100,
        max_decay=100,
        decay_reduction=0,
        decay_reinforcement=0,
        auto_delete=False,
        affects_search_ranking=False,
    ),
    default_query_limit=QueryLimit(
        max_count=10, max_tokens=1000, min_similarity=0.6,
        strategy=LimitStrategy.GREEDY,
    ),
    deduplication_config=DeduplicationConfig(
        enabled=True,
        strategy=DeduplicationStrategy.REJECT,
        semantic_enabled=True,
        semantic_threshold=0.92,
        reinforce_on_merge=False,
    ),
)

BUILTIN_CATEGORIES = (USER_PREFERENCE, CONVERSATION, DOCUMENTATION)


def register_builtin_categories(registry: CategoryRegistry) -> CategoryRegistry:
    """Install the bundled example categories, skipping names already present."""
    for category in BUILTIN_CATEGORIES:
        if category.name not in registry:
            registry.register(category)
    return registry
