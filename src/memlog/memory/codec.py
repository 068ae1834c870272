"""Record line format — memory records + deletion audit records (no I/O).

One record per line, space-separated key=value tokens:

    ts=<iso> type=<type> scope=<scope> content="<escaped>" [issue=<id>] [tags=a,b]

Audit lines carry `action=deleted original_ts=<iso>` after `ts` and a quoted
`reason` after `content`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

MEMORY_TYPES = ("decision", "learning", "preference", "blocker", "context", "pattern")

# Keys whose values are double-quoted and escaped
_QUOTED_KEYS = frozenset({"content", "reason"})

_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r"}
_UNESCAPES = {"\\": "\\", '"': '"', "n": "\n", "r": "\r"}

# Bytes that were not valid UTF-8, as read with errors="surrogateescape"
_UNDECODABLE = re.compile("[\udc80-\udcff]")


class InvalidRecordError(ValueError):
    """A record that cannot be written without corrupting the line format."""


@dataclass(frozen=True)
class MemoryRecord:
    """A single curated memory."""

    timestamp: str
    type: str
    scope: str
    content: str = ""
    issue: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)

    @property
    def date(self) -> str:
        return self.timestamp.split("T")[0]


@dataclass(frozen=True)
class DeletionRecord:
    """Audit entry for a deleted or superseded memory."""

    timestamp: str
    original_timestamp: str
    type: str
    scope: str
    content: str
    reason: str
    issue: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)


def utc_timestamp(now: datetime | None = None) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2026-02-21T09:30:00.000Z."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ── Validation ────────────────────────────────────────────────


def _is_token(value: str) -> bool:
    return bool(value) and not any(c.isspace() for c in value)


def validate_record(record: MemoryRecord) -> None:
    """Raise InvalidRecordError for fields that would break the line format."""
    if record.type not in MEMORY_TYPES:
        raise InvalidRecordError(
            f"Unknown memory type {record.type!r} (expected one of {', '.join(MEMORY_TYPES)})"
        )
    if not _is_token(record.scope):
        raise InvalidRecordError(f"Scope must be a single non-empty token: {record.scope!r}")
    if record.issue is not None and not _is_token(record.issue):
        raise InvalidRecordError(f"Issue must be a single token: {record.issue!r}")
    for tag in record.tags:
        if not _is_token(tag) or "," in tag:
            raise InvalidRecordError(f"Tags must be tokens without commas: {tag!r}")


# ── Encoding ──────────────────────────────────────────────────


def escape(text: str) -> str:
    return "".join(_ESCAPES.get(c, c) for c in text)


def _optional_fields(issue: str | None, tags: tuple[str, ...]) -> str:
    parts = ""
    if issue:
        parts += f" issue={issue}"
    if tags:
        parts += f" tags={','.join(tags)}"
    return parts


def encode_record(record: MemoryRecord) -> str:
    """Render a record as one line (no trailing newline)."""
    return (
        f"ts={record.timestamp} type={record.type} scope={record.scope} "
        f'content="{escape(record.content)}"'
        f"{_optional_fields(record.issue, record.tags)}"
    )


def encode_deletion(record: DeletionRecord) -> str:
    return (
        f"ts={record.timestamp} action=deleted original_ts={record.original_timestamp} "
        f"type={record.type} scope={record.scope} "
        f'content="{escape(record.content)}" reason="{escape(record.reason)}"'
        f"{_optional_fields(record.issue, record.tags)}"
    )


# ── Decoding ──────────────────────────────────────────────────


def _read_quoted(line: str, start: int) -> tuple[str, int]:
    """Read an escaped value starting just after the opening quote.

    Returns (value, index after the closing quote). An unterminated value runs
    to the end of the line. Unknown escapes are kept verbatim.
    """
    out: list[str] = []
    i = start
    n = len(line)
    while i < n:
        c = line[i]
        if c == "\\" and i + 1 < n:
            nxt = line[i + 1]
            if nxt in _UNESCAPES:
                out.append(_UNESCAPES[nxt])
            else:
                out.append(c + nxt)
            i += 2
            continue
        if c == '"':
            return "".join(out), i + 1
        out.append(c)
        i += 1
    return "".join(out), n


def tokenize(line: str) -> dict[str, str]:
    """Split a line into key -> value. First occurrence of a key wins.

    Tokens without `=` are skipped; quoted keys consume up to the closing quote
    so their text never leaks into other fields.
    """
    fields: dict[str, str] = {}
    i = 0
    n = len(line)
    while i < n:
        while i < n and line[i].isspace():
            i += 1
        if i >= n:
            break
        j = i
        while j < n and not line[j].isspace() and line[j] != "=":
            j += 1
        if j >= n or line[j] != "=":
            # bare word
            while j < n and not line[j].isspace():
                j += 1
            i = j
            continue
        key = line[i:j]
        j += 1
        if key in _QUOTED_KEYS and j < n and line[j] == '"':
            value, i = _read_quoted(line, j + 1)
        else:
            k = j
            while k < n and not line[k].isspace():
                k += 1
            value = line[j:k]
            i = k
        if key and key not in fields:
            fields[key] = value
    return fields


def _split_tags(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(t for t in value.split(",") if t)


def decode_record(line: str) -> MemoryRecord | None:
    """Parse one line into a MemoryRecord, or None if ts/type/scope is missing."""
    if _UNDECODABLE.search(line):
        logger.debug("Skipping undecodable memory line: %r", line)
        return None
    fields = tokenize(line)
    ts = fields.get("ts")
    mtype = fields.get("type")
    scope = fields.get("scope")
    if not ts or not mtype or not scope:
        if line.strip():
            logger.debug("Skipping malformed memory line: %r", line)
        return None

    return MemoryRecord(
        timestamp=ts,
        type=mtype,
        scope=scope,
        content=fields.get("content", ""),
        issue=fields.get("issue") or None,
        tags=_split_tags(fields.get("tags")),
    )


def decode_deletion(line: str) -> DeletionRecord | None:
    """Parse an audit line. Requires action=deleted plus ts/type/scope."""
    if _UNDECODABLE.search(line):
        return None
    fields = tokenize(line)
    if fields.get("action") != "deleted":
        return None
    ts = fields.get("ts")
    mtype = fields.get("type")
    scope = fields.get("scope")
    if not ts or not mtype or not scope:
        return None
    return DeletionRecord(
        timestamp=ts,
        original_timestamp=fields.get("original_ts", ""),
        type=mtype,
        scope=scope,
        content=fields.get("content", ""),
        reason=fields.get("reason", ""),
        issue=fields.get("issue") or None,
        tags=_split_tags(fields.get("tags")),
    )


def to_deletion(record: MemoryRecord, reason: str, timestamp: str | None = None) -> DeletionRecord:
    """Build the audit entry for a record being deleted or superseded."""
    return DeletionRecord(
        timestamp=timestamp or utc_timestamp(),
        original_timestamp=record.timestamp,
        type=record.type,
        scope=record.scope,
        content=record.content,
        reason=reason,
        issue=record.issue,
        tags=record.tags,
    )
