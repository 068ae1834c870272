"""Host plugin facade — wires settings, stores and hooks together.

Responsibilities:
1. Build settings once per process, reload them when the host config changes
2. Own the process-scoped state (session cache, last-seen agents)
3. Expose the memory tools to the host's tool registry
4. Turn host lifecycle hooks (chat message, tool before/after) into event lines
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from memlog.config import MemoryLogConfig, load_config
from memlog.events.sessions import SessionLookupFn, SessionResolver
from memlog.events.writer import EventLogWriter
from memlog.memory.store import MemoryStore
from memlog.state import RuntimeState
from memlog.tools.memory_tools import Tool, get_memory_tools

logger = logging.getLogger(__name__)

INLINE_CONFIG_KEY = "memory_log"


def _scope_from(mapping: Mapping[str, Any] | None, default: str) -> str:
    scope = (mapping or {}).get("scope")
    return scope if isinstance(scope, str) and scope else default


class MemoryLogPlugin:
    """One instance per host process."""

    def __init__(
        self,
        project_dir: Path,
        lookup: SessionLookupFn,
        inline: Mapping[str, Any] | None = None,
        state: RuntimeState | None = None,
    ) -> None:
        self.project_dir = Path(project_dir)
        self.state = state or RuntimeState()
        self.state.project_dir = self.project_dir
        self.config: MemoryLogConfig = load_config(self.project_dir, inline)
        self.store = MemoryStore(self.config.memory_dir)
        self.resolver = SessionResolver(lookup, self.state.sessions, self.state.agents)
        self.writer = EventLogWriter(self.config, self.resolver)
        self.tools: dict[str, Tool] = get_memory_tools(self.store, self.writer, self.state)
        logger.info(
            "memory-log ready (memory=%s, logger=%s)",
            self.config.memory_dir,
            "on" if self.config.logger.enabled else "off",
        )

    # ── Config ────────────────────────────────────────────────

    async def on_config(self, host_config: Mapping[str, Any] | None) -> None:
        """Reload settings with the host's `memory_log` table; caches are kept."""
        inline = (host_config or {}).get(INLINE_CONFIG_KEY)
        self.config = load_config(self.project_dir, inline)
        self.store.root = self.config.memory_dir
        self.writer.config = self.config
        logger.debug("Settings reloaded: memory=%s", self.config.memory_dir)

    # ── Exposed operations ────────────────────────────────────

    async def log_event(
        self,
        session_id: str,
        event: str,
        payload: Mapping[str, Any] | None = None,
        scope: str = "event",
        task_id: str | None = None,
    ) -> Path | None:
        return await self.writer.append(
            session_id,
            event,
            payload,
            scope=scope,
            task_id=task_id,
            agent=self.state.agents.get(session_id),
        )

    # ── Hooks ─────────────────────────────────────────────────

    async def on_chat_message(
        self,
        session_id: str,
        agent: str | None = None,
        message_id: str | None = None,
        model: Any = None,
        parts: Any = None,
    ) -> Path | None:
        self.state.agents.record(session_id, agent)
        return await self.log_event(
            session_id,
            "chat_message",
            {"message_id": message_id, "model": model, "parts": parts},
            scope="chat",
        )

    async def on_tool_before(
        self,
        session_id: str,
        call_id: str,
        tool: str,
        args: Mapping[str, Any] | None = None,
    ) -> Path | None:
        return await self.log_event(
            session_id,
            "tool_execute_before",
            {"call_id": call_id, "tool": tool, "args": dict(args or {})},
            scope=_scope_from(args, "tool"),
        )

    async def on_tool_after(
        self,
        session_id: str,
        call_id: str,
        tool: str,
        title: str | None = None,
        output: Any = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Path | None:
        return await self.log_event(
            session_id,
            "tool_execute_after",
            {"call_id": call_id, "tool": tool, "title": title, "output": output},
            scope=_scope_from(metadata, "tool"),
        )
