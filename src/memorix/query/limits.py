"""Query limit and result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ..exceptions import ValidationError
from ..models import Memory, ScoredMemory


class LimitStrategy(str, Enum):
    """How competing limits interact during selection.

    ALL: strict, every limit must hold; stops at the similarity floor.
    ANY: stops as soon as any limit is hit.
    GREEDY: packs as many items as fit, skipping ones that would overflow.
    FIRST_MET: stops the moment any single condition is reached.
    """

    ALL = "ALL"
    ANY = "ANY"
    GREEDY = "GREEDY"
    FIRST_MET = "FIRST_MET"


class LimitReason(str, Enum):
    MAX_COUNT = "maxCount"
    MAX_TOKENS = "maxTokens"
    MIN_SIMILARITY = "minSimilarity"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class QueryLimit:
    """Resource ceilings for one retrieval. ``None`` means unbounded."""

    max_count: int | None = None
    max_tokens: int | None = None
    min_similarity: float | None = None
    strategy: LimitStrategy = LimitStrategy.GREEDY

    def __post_init__(self):
        if self.max_count is not None and self.max_count <= 0:
            raise ValidationError("max_count", "must be positive")
        if self.max_tokens is not None and self.max_tokens <= 0:
            raise ValidationError("max_tokens", "must be positive")
        if self.min_similarity is not None and not 0.0 <= self.min_similarity <= 1.0:
            raise ValidationError("min_similarity", "must be between 0 and 1")
        if not isinstance(self.strategy, LimitStrategy):
            object.__setattr__(self, "strategy", LimitStrategy(self.strategy))

    @classmethod
    def default(cls) -> "QueryLimit":
        """The limit used when a category does not declare its own."""
        return cls(max_count=20, max_tokens=500)


@dataclass
class QueryMetadata:
    total_found: int = 0
    returned: int = 0
    total_tokens: int = 0
    avg_similarity: float = 0.0
    limit_reason: LimitReason = LimitReason.EXHAUSTED
    execution_time_ms: float = 0.0


@dataclass
class QueryResult:
    """Admitted candidates, in their original order, plus selection metadata."""

    items: list[ScoredMemory] = field(default_factory=list)
    metadata: QueryMetadata = field(default_factory=QueryMetadata)

    @property
    def memories(self) -> list[Memory]:
        return [item.memory for item in self.items]

    def __len__(self) -> int:
        return len(self.items)
