"""Bounded candidate selection.

Takes candidates already sorted by descending similarity and admits them in
a single forward pass under count, token and similarity ceilings. There is
no re-sorting and no backtracking, and a memory is never split: it is
either admitted whole or not at all.
"""

from __future__ import annotations

import time
from typing import Sequence

from loguru import logger

from ..models import ScoredMemory
from .limits import LimitReason, LimitStrategy, QueryLimit, QueryMetadata, QueryResult

_STOP_ON_SIMILARITY = {LimitStrategy.ALL, LimitStrategy.FIRST_MET}
_STOP_ON_TOKEN_OVERFLOW = {LimitStrategy.ANY, LimitStrategy.FIRST_MET}


class QueryLimitExecutor:
    """Applies a :class:`QueryLimit` to a ranked candidate list.

    Gates are evaluated per candidate in this order:

    1. similarity floor: ALL and FIRST_MET stop, ANY and GREEDY skip
    2. count: always a hard stop once ``max_count`` items are admitted
    3. tokens: if the candidate would overflow ``max_tokens``, ANY and
       FIRST_MET stop while ALL and GREEDY skip it and keep scanning

    After each admission a saturated token budget stops the scan, then a
    full count does. ``limit_reason`` records the last constraint that
    fired, or ``exhausted`` when none did.
    """

    def select_bounded(
        self, candidates: Sequence[ScoredMemory], limit: QueryLimit
    ) -> QueryResult:
        start = time.perf_counter()

        admitted: list[ScoredMemory] = []
        total_tokens = 0
        reason: LimitReason | None = None

        for candidate in candidates:
            if (
                limit.min_similarity is not None
                and candidate.similarity < limit.min_similarity
            ):
                reason = LimitReason.MIN_SIMILARITY
                if limit.strategy in _STOP_ON_SIMILARITY:
                    break
                continue

            if limit.max_count is not None and len(admitted) >= limit.max_count:
                reason = LimitReason.MAX_COUNT
                break

            tokens = candidate.token_count
            if limit.max_tokens is not None and total_tokens + tokens > limit.max_tokens:
                reason = LimitReason.MAX_TOKENS
                if limit.strategy in _STOP_ON_TOKEN_OVERFLOW:
                    break
                logger.debug(
                    f"Skipping memory {candidate.memory.id}: {tokens} tokens "
                    f"would exceed budget ({total_tokens}/{limit.max_tokens})"
                )
                continue

            admitted.append(candidate)
            total_tokens += tokens

            if limit.max_tokens is not None and total_tokens >= limit.max_tokens:
                reason = LimitReason.MAX_TOKENS
                break
            if limit.max_count is not None and len(admitted) >= limit.max_count:
                reason = LimitReason.MAX_COUNT
                break

        avg_similarity = (
            sum(item.similarity for item in admitted) / len(admitted)
            if admitted else 0.0
        )
        metadata = QueryMetadata(
            total_found=len(candidates),
            returned=len(admitted),
            total_tokens=total_tokens,
            avg_similarity=avg_similarity,
            limit_reason=reason or LimitReason.EXHAUSTED,
            execution_time_ms=(time.perf_counter() - start) * 1000,
        )
        logger.debug(
            f"Selected {metadata.returned}/{metadata.total_found} candidates "
            f"({total_tokens} tokens, strategy={limit.strategy.value}, "
            f"reason={metadata.limit_reason.value})"
        )
        return QueryResult(items=admitted, metadata=metadata)
