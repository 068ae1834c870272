"""Process-scoped state shared by the resolver and the event writer.

Constructed once per process (one per plugin instance) and passed by
reference; nothing here is a module-level singleton.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from memlog.events.sessions import SessionInfo


class SessionCache:
    """session_id → SessionInfo. No eviction, no invalidation."""

    def __init__(self) -> None:
        self._entries: dict[str, SessionInfo] = {}

    def get(self, session_id: str) -> SessionInfo | None:
        return self._entries.get(session_id)

    def put(self, info: SessionInfo) -> None:
        self._entries[info.id] = info

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class AgentRegistry:
    """session_id → name of the agent last seen speaking in that session."""

    def __init__(self) -> None:
        self._agents: dict[str, str] = {}

    def record(self, session_id: str, agent: str | None) -> None:
        if agent:
            self._agents[session_id] = agent

    def get(self, session_id: str) -> str | None:
        return self._agents.get(session_id)


@dataclass
class RuntimeState:
    """Per-process state plus the project the process serves."""

    project_dir: Path = field(default_factory=Path.cwd)
    sessions: SessionCache = field(default_factory=SessionCache)
    agents: AgentRegistry = field(default_factory=AgentRegistry)
