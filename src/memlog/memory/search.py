"""Scoring, filtering and bounded recall over decoded memory records."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from memlog.memory.codec import MemoryRecord

DEFAULT_LIMIT = 20

# Bonus for a query word equal to the whole scope or type
EXACT_BONUS = 2

T = TypeVar("T")


def query_words(query: str | None) -> list[str]:
    return (query or "").lower().split()


def score_match(record: MemoryRecord, words: Sequence[str]) -> int:
    """One point per word found anywhere; +2 for exact scope, +2 for exact type."""
    searchable = f"{record.type} {record.scope} {record.content} {' '.join(record.tags)}".lower()
    scope = record.scope.lower()
    mtype = record.type.lower()
    score = 0
    for word in words:
        if word in searchable:
            score += 1
        if scope == word:
            score += EXACT_BONUS
        if mtype == word:
            score += EXACT_BONUS
    return score


def rank(items: Iterable[T], words: Sequence[str], key=lambda item: item) -> list[tuple[T, int]]:
    """Score items, drop zero scores, sort by descending score (stable)."""
    scored = [(item, score_match(key(item), words)) for item in items]
    scored = [pair for pair in scored if pair[1] > 0]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored


def filter_records(
    records: Iterable[MemoryRecord],
    scope: str | None = None,
    type: str | None = None,
    query: str | None = None,
) -> list[MemoryRecord]:
    """Apply scope (equal or substring), type (exact) and query filters."""
    results = list(records)
    if scope:
        results = [r for r in results if r.scope == scope or scope in r.scope]
    if type:
        results = [r for r in results if r.type == type]
    words = query_words(query)
    if words:
        results = [r for r, _ in rank(results, words)]
    return results


@dataclass(frozen=True)
class RecallResult:
    """A bounded slice of matching records plus the counts behind it."""

    records: list[MemoryRecord]
    total: int
    filtered: int
    limit: int

    @property
    def truncated(self) -> bool:
        return self.filtered > self.limit

    def header(self) -> str:
        if self.truncated:
            return f"Found {self.filtered} memories (showing last {self.limit} of {self.total} total)"
        if self.filtered != self.total:
            return f"Found {self.filtered} memories ({self.total} total)"
        return f"Found {self.filtered} memories"


def recall(
    records: Sequence[MemoryRecord],
    scope: str | None = None,
    type: str | None = None,
    query: str | None = None,
    limit: int | None = None,
) -> RecallResult:
    """Filter and rank, then keep the last `limit` records."""
    limit = limit if limit and limit > 0 else DEFAULT_LIMIT
    filtered = filter_records(records, scope=scope, type=type, query=query)
    return RecallResult(
        records=filtered[-limit:],
        total=len(records),
        filtered=len(filtered),
        limit=limit,
    )
