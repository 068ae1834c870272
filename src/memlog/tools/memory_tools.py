"""Agent-facing memory tools.

These functions are designed to be exposed as tools to the AI agent: every
call returns plain text, failures included, so the agent can read the outcome.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from memlog.config import PERSIST_TARGETS, persist_logger_settings, settings_to_dict
from memlog.memory.codec import InvalidRecordError, MemoryRecord
from memlog.memory.search import recall
from memlog.results import StoreIOError

if TYPE_CHECKING:
    from memlog.events.writer import EventLogWriter
    from memlog.memory.store import MemoryStore
    from memlog.state import RuntimeState

logger = logging.getLogger(__name__)

Tool = Callable[..., Awaitable[str]]


def format_memory(record: MemoryRecord) -> str:
    """`[date] type/scope: content (issue) [tags]`"""
    issue = f" ({record.issue})" if record.issue else ""
    tags = f" [{', '.join(record.tags)}]" if record.tags else ""
    return f"[{record.date}] {record.type}/{record.scope}: {record.content}{issue}{tags}"


def get_memory_tools(
    store: MemoryStore,
    writer: EventLogWriter,
    state: RuntimeState,
) -> dict[str, Tool]:
    """Return a dict of tool_name -> async callable for memory operations.

    These can be registered as plugin tools or called directly.
    """

    async def _log(session_id: str | None, event: str, scope: str, **payload: Any) -> None:
        if not session_id:
            return
        try:
            await writer.append(
                session_id,
                event,
                {"scope": scope, **payload},
                scope=scope,
                agent=state.agents.get(session_id),
            )
        except StoreIOError as e:
            logger.warning("Event %s not logged: %s", event, e)

    async def memory_remember(
        type: str,
        scope: str,
        content: str,
        issue: str | None = None,
        tags: list[str] | None = None,
        session_id: str | None = None,
    ) -> str:
        """Store a memory (decision, learning, preference, blocker, context, pattern)."""
        try:
            await store.remember(type, scope, content, issue=issue, tags=tags)
        except (InvalidRecordError, StoreIOError) as e:
            logger.error("remember failed: %s", e)
            return f"Error: {e}"
        await _log(session_id, "memory_remember", scope, memory_type=type, content=content)
        return f"Remembered: {type} in {scope}"

    async def memory_recall(
        scope: str | None = None,
        type: str | None = None,
        query: str | None = None,
        limit: int | None = None,
    ) -> str:
        """Retrieve memories by scope, type, or search query (words match any)."""
        try:
            records = await store.scan_all()
        except StoreIOError as e:
            logger.error("recall failed: %s", e)
            return f"Error: {e}"
        if not records:
            return "No memories found"

        result = recall(records, scope=scope, type=type, query=query, limit=limit)
        if not result.records:
            return "No matching memories"
        return result.header() + "\n\n" + "\n".join(format_memory(r) for r in result.records)

    async def memory_update(
        scope: str,
        type: str,
        content: str,
        query: str | None = None,
        issue: str | None = None,
        tags: list[str] | None = None,
        session_id: str | None = None,
    ) -> str:
        """Update an existing memory by scope and type.

        If several memories share the scope and type, `query` selects one.
        """
        try:
            result = await store.update_matching(
                scope, type, content, query=query, issue=issue, tags=tags
            )
        except (InvalidRecordError, StoreIOError) as e:
            logger.error("update failed: %s", e)
            return f"Error: {e}"
        if result.ok:
            await _log(session_id, "memory_update", scope, memory_type=type, content=content)
        return result.message

    async def memory_forget(
        scope: str,
        type: str,
        reason: str,
        session_id: str | None = None,
    ) -> str:
        """Delete memories by scope and type; each deletion is logged for audit."""
        try:
            result = await store.delete_matching(scope, type, reason)
        except StoreIOError as e:
            logger.error("forget failed: %s", e)
            return f"Error: {e}"
        await _log(session_id, "memory_forget", scope, memory_type=type, reason=reason)
        if not result.ok:
            return result.message
        return f"{result.message}\nDeletions logged to {store.deletions_file}"

    async def memory_list() -> str:
        """List all unique scopes and types in memory for discovery."""
        try:
            summary = await store.list_summary()
        except StoreIOError as e:
            logger.error("list failed: %s", e)
            return f"Error: {e}"
        if not summary.total:
            return "No memories found"

        lines = [f"Total memories: {summary.total}", "", "Scopes:"]
        for s in summary.scopes:
            lines.append(f"  {s.scope}: {s.count} ({', '.join(s.types)})")
        lines += ["", "Types:"]
        for mtype, count in summary.types:
            lines.append(f"  {mtype}: {count}")
        return "\n".join(lines)

    async def memory_logger_set(
        enabled: bool | None = None,
        scopes: list[str] | None = None,
        persist: str = "session",
    ) -> str:
        """Turn the event logger on/off or change its scope filter.

        `persist` is "session" (this process only), "project" or "global"
        (also merged into that settings file).
        """
        if persist not in PERSIST_TARGETS:
            return f"Error: persist must be one of {', '.join(PERSIST_TARGETS)}"
        log_cfg = writer.config.logger
        if enabled is not None:
            log_cfg.enabled = enabled
        if scopes is not None:
            log_cfg.scopes = list(scopes)
        if persist != "session":
            try:
                persist_logger_settings(writer.config, persist, state.project_dir)
            except StoreIOError as e:
                logger.error("logger_set failed: %s", e)
                return f"Error: {e}"
        mode = "enabled" if log_cfg.enabled else "disabled"
        scope_list = ", ".join(log_cfg.scopes) if log_cfg.scopes else "all"
        logger.info("Logger %s (scopes: %s, persist: %s)", mode, scope_list, persist)
        return f"Logger {mode} (scopes: {scope_list}, persist: {persist})"

    async def memory_logger_status() -> str:
        """Show logger and memory storage configuration."""
        return json.dumps(settings_to_dict(writer.config), indent=2)

    return {
        "memory_remember": memory_remember,
        "memory_recall": memory_recall,
        "memory_update": memory_update,
        "memory_forget": memory_forget,
        "memory_list": memory_list,
        "memory_logger_set": memory_logger_set,
        "memory_logger_status": memory_logger_status,
    }
