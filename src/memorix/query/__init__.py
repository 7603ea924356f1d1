"""Bounded retrieval: limits, results and the selection executor."""

from __future__ import annotations

from .executor import QueryLimitExecutor
from .limits import LimitReason, LimitStrategy, QueryLimit, QueryMetadata, QueryResult

__all__ = [
    "LimitReason",
    "LimitStrategy",
    "QueryLimit",
    "QueryLimitExecutor",
    "QueryMetadata",
    "QueryResult",
]
