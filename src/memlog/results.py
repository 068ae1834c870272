"""Result values for store operations.

Not-found and ambiguity are ordinary outcomes, not exceptions. I/O failures
are raised as StoreIOError instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from memlog.memory.codec import MemoryRecord


class MemoryLogError(Exception):
    """Base class for memory-log errors."""


class StoreIOError(MemoryLogError):
    """Underlying storage unavailable; the whole operation failed."""


class ResultKind(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class OpResult:
    """Outcome of an update/delete."""

    kind: ResultKind
    message: str = ""
    record: MemoryRecord | None = None
    count: int = 0
    candidates: int = 0
    hint: str = ""

    @property
    def ok(self) -> bool:
        return self.kind is ResultKind.OK

    @classmethod
    def success(cls, message: str, record: MemoryRecord | None = None, count: int = 1) -> OpResult:
        return cls(ResultKind.OK, message=message, record=record, count=count)

    @classmethod
    def not_found(cls, message: str) -> OpResult:
        return cls(ResultKind.NOT_FOUND, message=message)

    @classmethod
    def ambiguous(cls, message: str, candidates: int, hint: str) -> OpResult:
        return cls(ResultKind.AMBIGUOUS, message=message, candidates=candidates, hint=hint)
