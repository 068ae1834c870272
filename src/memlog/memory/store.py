"""Curated memory store — one record file per UTC day plus a deletion audit file.

Record files are the source of truth. Every operation re-reads them; there is
no in-memory index, so anything written by hand between calls is picked up.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

import aiofiles
import aiofiles.os

from memlog.memory.codec import (
    MemoryRecord,
    DeletionRecord,
    decode_deletion,
    decode_record,
    encode_deletion,
    encode_record,
    to_deletion,
    utc_timestamp,
    validate_record,
)
from memlog.memory.search import query_words, rank
from memlog.results import OpResult, StoreIOError

logger = logging.getLogger(__name__)

RECORD_SUFFIX = ".record"
DELETIONS_FILE = f"deletions{RECORD_SUFFIX}"

# Undecodable bytes survive a read-rewrite cycle untouched
_ENCODING = {"encoding": "utf-8", "errors": "surrogateescape"}


@dataclass(frozen=True)
class ScopeSummary:
    scope: str
    count: int
    types: tuple[str, ...]


@dataclass(frozen=True)
class MemorySummary:
    """Counts per scope and per type, most common first."""

    total: int
    scopes: list[ScopeSummary] = field(default_factory=list)
    types: list[tuple[str, int]] = field(default_factory=list)


@dataclass(frozen=True)
class _Match:
    path: Path
    line_index: int
    record: MemoryRecord


class MemoryStore:
    """Async read/write access to the record files under `root`."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    # ── File helpers ──────────────────────────────────────────

    @property
    def deletions_file(self) -> Path:
        return self.root / DELETIONS_FILE

    def day_file(self, day: str | None = None) -> Path:
        """Path of the record file for `day` (YYYY-MM-DD), default today (UTC)."""
        d = day or utc_timestamp().split("T")[0]
        return self.root / f"{d}{RECORD_SUFFIX}"

    async def _ensure_root(self) -> None:
        try:
            await aiofiles.os.makedirs(self.root, exist_ok=True)
        except OSError as e:
            raise StoreIOError(f"Cannot create memory directory {self.root}: {e}") from e

    async def _read_text(self, path: Path) -> str:
        """Whole file content, or "" if it does not exist."""
        try:
            if not await aiofiles.os.path.isfile(path):
                return ""
            async with aiofiles.open(path, "r", **_ENCODING) as f:
                return await f.read()
        except OSError as e:
            raise StoreIOError(f"Cannot read {path}: {e}") from e

    async def _write_text(self, path: Path, text: str) -> None:
        try:
            async with aiofiles.open(path, "w", **_ENCODING) as f:
                await f.write(text)
        except OSError as e:
            raise StoreIOError(f"Cannot write {path}: {e}") from e

    async def _append_line(self, path: Path, line: str) -> None:
        """Read-modify-write: existing content plus one complete line."""
        await self._ensure_root()
        existing = await self._read_text(path)
        if existing and not existing.endswith("\n"):
            existing += "\n"
        await self._write_text(path, f"{existing}{line}\n")

    async def record_files(self) -> list[Path]:
        """Day files in sorted name order, audit file excluded."""
        try:
            if not await aiofiles.os.path.isdir(self.root):
                return []
            names = await aiofiles.os.listdir(self.root)
        except OSError as e:
            raise StoreIOError(f"Cannot list {self.root}: {e}") from e
        return [
            self.root / name
            for name in sorted(names)
            if name.endswith(RECORD_SUFFIX) and name != DELETIONS_FILE
        ]

    # ── Write ─────────────────────────────────────────────────

    async def append(self, record: MemoryRecord) -> MemoryRecord:
        """Append a record to today's file."""
        validate_record(record)
        await self._append_line(self.day_file(), encode_record(record))
        logger.info("Remembered %s/%s", record.type, record.scope)
        return record

    async def remember(
        self,
        type: str,
        scope: str,
        content: str,
        issue: str | None = None,
        tags: list[str] | None = None,
    ) -> MemoryRecord:
        """Stamp a new record with the current time and append it."""
        record = MemoryRecord(
            timestamp=utc_timestamp(),
            type=type,
            scope=scope,
            content=content,
            issue=issue or None,
            tags=tuple(tags or ()),
        )
        return await self.append(record)

    async def log_deletion(self, record: MemoryRecord, reason: str) -> DeletionRecord:
        entry = to_deletion(record, reason)
        await self._append_line(self.deletions_file, encode_deletion(entry))
        return entry

    # ── Read ──────────────────────────────────────────────────

    async def scan_all(self) -> list[MemoryRecord]:
        """Decode every record in every day file; malformed lines are skipped."""
        records: list[MemoryRecord] = []
        for path in await self.record_files():
            text = await self._read_text(path)
            for line in text.split("\n"):
                if not line.strip():
                    continue
                record = decode_record(line)
                if record is not None:
                    records.append(record)
        return records

    async def read_deletions(self) -> list[DeletionRecord]:
        """Decode the audit trail."""
        text = await self._read_text(self.deletions_file)
        entries = (decode_deletion(line) for line in text.split("\n") if line.strip())
        return [e for e in entries if e is not None]

    async def _find_matches(self, scope: str, type: str) -> list[_Match]:
        matches: list[_Match] = []
        for path in await self.record_files():
            text = await self._read_text(path)
            for index, line in enumerate(text.split("\n")):
                record = decode_record(line)
                if record and record.scope == scope and record.type == type:
                    matches.append(_Match(path, index, record))
        return matches

    # ── Update / delete ───────────────────────────────────────

    async def update_matching(
        self,
        scope: str,
        type: str,
        content: str,
        query: str | None = None,
        issue: str | None = None,
        tags: list[str] | None = None,
    ) -> OpResult:
        """Rewrite the single (scope, type) record in place.

        `issue`/`tags` left as None keep the original values. With several
        candidates, `query` picks the best-scoring one.
        """
        matches = await self._find_matches(scope, type)
        if not matches:
            return OpResult.not_found(f"No memories found for {type} in {scope}")

        target = matches[0]
        if len(matches) > 1:
            words = query_words(query)
            if not words:
                return OpResult.ambiguous(
                    f"Found {len(matches)} memories for {type}/{scope}. "
                    "Provide a query to select which one to update, "
                    "or use recall to see all matches.",
                    candidates=len(matches),
                    hint="query",
                )
            ranked = rank(matches, words, key=lambda m: m.record)
            if not ranked:
                return OpResult.ambiguous(
                    f"Found {len(matches)} memories for {type}/{scope}, "
                    f'but none matched query "{query}". Use recall to see all matches.',
                    candidates=len(matches),
                    hint="query",
                )
            target = ranked[0][0]

        original = target.record
        updated = MemoryRecord(
            timestamp=utc_timestamp(),
            type=type,
            scope=scope,
            content=content,
            issue=(issue or None) if issue is not None else original.issue,
            tags=tuple(tags) if tags is not None else original.tags,
        )
        validate_record(updated)

        await self.log_deletion(original, f"Updated to: {content}")

        # Index comes from this operation's scan; a concurrent writer could
        # have shifted lines since (single-writer assumption).
        lines = (await self._read_text(target.path)).split("\n")
        lines[target.line_index] = encode_record(updated)
        await self._write_text(target.path, "\n".join(lines))

        logger.info("Updated %s/%s in %s", type, scope, target.path.name)
        return OpResult.success(f'Updated {type} in {scope}: "{content}"', record=updated)

    async def delete_matching(self, scope: str, type: str, reason: str) -> OpResult:
        """Remove every (scope, type) record from every day file, with audit.

        Each file's audit lines are written before that file is rewritten, so
        a failure part way through never loses a record without a trace.
        """
        removed: list[MemoryRecord] = []
        for path in await self.record_files():
            lines = (await self._read_text(path)).split("\n")
            kept: list[str] = []
            dropped: list[MemoryRecord] = []
            for line in lines:
                record = decode_record(line)
                if record and record.scope == scope and record.type == type:
                    dropped.append(record)
                else:
                    kept.append(line)
            if not dropped:
                continue
            for record in dropped:
                await self.log_deletion(record, reason)
            await self._write_text(path, "\n".join(kept))
            removed.extend(dropped)

        if not removed:
            return OpResult.not_found(f"No memories found for {type} in {scope}")

        logger.info("Deleted %d %s/%s memories: %s", len(removed), type, scope, reason)
        return OpResult.success(
            f"Deleted {len(removed)} {type} memory(s) from {scope}. Reason: {reason}",
            count=len(removed),
        )

    # ── Summary ───────────────────────────────────────────────

    async def list_summary(self) -> MemorySummary:
        records = await self.scan_all()
        scope_counts: Counter[str] = Counter()
        type_counts: Counter[str] = Counter()
        scope_types: dict[str, list[str]] = {}
        for r in records:
            scope_counts[r.scope] += 1
            type_counts[r.type] += 1
            seen = scope_types.setdefault(r.scope, [])
            if r.type not in seen:
                seen.append(r.type)
        return MemorySummary(
            total=len(records),
            scopes=[
                ScopeSummary(scope, count, tuple(scope_types[scope]))
                for scope, count in scope_counts.most_common()
            ],
            types=type_counts.most_common(),
        )
