"""Event log writer — one JSON object per line, one file per session."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiofiles
import aiofiles.os

from memlog.events.sessions import SessionResolver
from memlog.memory.codec import utc_timestamp
from memlog.results import StoreIOError

if TYPE_CHECKING:
    from memlog.config import MemoryLogConfig

logger = logging.getLogger(__name__)

SESSIONS_DIR = "sessions"

ENVELOPE_KEYS = (
    "ts",
    "event",
    "session_id",
    "subagent_session_id",
    "parent_session_id",
    "root_session_id",
    "task_id",
    "agent",
)


@dataclass(frozen=True)
class EventRecord:
    """Envelope + free-form payload for a single host event."""

    event: str
    session_id: str
    parent_session_id: str | None
    root_session_id: str
    task_id: str | None = None
    agent: str | None = None
    payload: Mapping[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> dict[str, Any]:
        """Envelope keys first; payload keys merged in but never overriding them."""
        data: dict[str, Any] = {
            "ts": self.timestamp,
            "event": self.event,
            "session_id": self.session_id,
            "subagent_session_id": self.session_id,
            "parent_session_id": self.parent_session_id,
            "root_session_id": self.root_session_id,
            "task_id": self.task_id,
            "agent": self.agent,
        }
        for key, value in self.payload.items():
            if key not in data:
                data[key] = value
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)


def scope_enabled(config: MemoryLogConfig, scope: str) -> bool:
    """Logger on, and scope passes the filter (empty list or '*' = all)."""
    if not config.logger.enabled:
        return False
    scopes = config.logger.scopes
    if not scopes:
        return True
    return "*" in scopes or scope in scopes


class EventLogWriter:
    """Append events under `<logger_dir>/sessions/`.

    `config` is read on every call, so runtime changes to the logger settings
    take effect immediately.
    """

    def __init__(self, config: MemoryLogConfig, resolver: SessionResolver) -> None:
        self.config = config
        self.resolver = resolver

    @property
    def sessions_root(self) -> Path:
        return self.config.logger_dir / SESSIONS_DIR

    async def build_event(
        self,
        session_id: str,
        event: str,
        payload: Mapping[str, Any] | None = None,
        task_id: str | None = None,
        agent: str | None = None,
    ) -> EventRecord:
        info = await self.resolver.resolve(session_id)
        root = await self.resolver.resolve_root(session_id)
        return EventRecord(
            event=event,
            session_id=session_id,
            parent_session_id=info.parent_id,
            root_session_id=root,
            task_id=task_id or None,
            agent=agent or None,
            payload=dict(payload or {}),
        )

    async def append(
        self,
        session_id: str,
        event: str,
        payload: Mapping[str, Any] | None = None,
        scope: str = "event",
        task_id: str | None = None,
        agent: str | None = None,
    ) -> Path | None:
        """Write one event line. Returns the file written, or None when filtered out."""
        if not scope_enabled(self.config, scope):
            return None

        record = await self.build_event(session_id, event, payload, task_id=task_id, agent=agent)
        path = self.sessions_root / await self.resolver.resolve_path(session_id)
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            existing = ""
            if await aiofiles.os.path.isfile(path):
                async with aiofiles.open(path, "r", encoding="utf-8", errors="surrogateescape") as f:
                    existing = await f.read()
            if existing and not existing.endswith("\n"):
                existing += "\n"
            async with aiofiles.open(path, "w", encoding="utf-8", errors="surrogateescape") as f:
                await f.write(f"{existing}{record.to_json()}\n")
        except OSError as e:
            raise StoreIOError(f"Cannot write event log {path}: {e}") from e

        logger.debug("Logged %s for session %s → %s", event, session_id, path)
        return path
