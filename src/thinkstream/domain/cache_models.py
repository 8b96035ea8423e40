from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple


def normalize_key(question: str) -> str:
    """Cache key for a question: trimmed and case-folded."""
    return (question or "").strip().casefold()


@dataclass(frozen=True)
class CacheEntry:
    key: str
    question: str
    thoughts: Tuple[str, ...]
    answer: str
    complete: bool
    timestamp: float


@dataclass
class PrefetchTask:
    key: str
    question: str
    in_flight: bool = True


@dataclass(frozen=True)
class CacheStats:
    size: int
    prefetching: int
    questions: List[str]
