"""Tests for the host plugin facade."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from memlog.events.sessions import SessionLookup
from memlog.plugin import MemoryLogPlugin

CREATED = datetime(2026, 2, 21, tzinfo=timezone.utc).timestamp()

SESSIONS = {
    "ses_main": SessionLookup("ses_main", "Fix Auth Bug!!", created=CREATED),
    "ses_sub": SessionLookup("ses_sub", "Explore", parent_id="ses_main", created=CREATED),
}


class CountingLookup:
    def __init__(self) -> None:
        self.calls = 0

    async def __call__(self, session_id: str) -> SessionLookup:
        self.calls += 1
        return SESSIONS[session_id]


@pytest.fixture
def project(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for key in ["MEMORY_LOG_DIR", "MEMORY_LOG_LEVEL", "MEMORY_LOG_LOGGER_ENABLED", "MEMORY_LOG_LOGGER_DIR"]:
        monkeypatch.delenv(key, raising=False)
    project = tmp_path / "repo"
    project.mkdir()
    return project


@pytest.fixture
def plugin(project: Path) -> MemoryLogPlugin:
    return MemoryLogPlugin(project, CountingLookup(), inline={"logger": {"enabled": True}})


def sessions_dir(plugin: MemoryLogPlugin) -> Path:
    return plugin.config.memory_dir / "sessions" / "2026-02-21-fix-auth-bug"


def read_events(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


class TestPlugin:
    def test_wiring(self, plugin: MemoryLogPlugin, project: Path):
        assert plugin.config.memory_dir == project / ".opencode" / "memory"
        assert plugin.store.root == plugin.config.memory_dir
        assert plugin.writer.config is plugin.config
        assert "memory_remember" in plugin.tools

    @pytest.mark.asyncio
    async def test_chat_message_records_agent_for_routing(self, plugin: MemoryLogPlugin):
        await plugin.on_chat_message("ses_sub", agent="explore", message_id="m1", model={"id": "x"})
        await plugin.on_tool_before("ses_sub", "call_1", "grep", {"pattern": "auth"})

        events = read_events(sessions_dir(plugin) / "explore-ses_sub.jsonl")
        assert [e["event"] for e in events] == ["chat_message", "tool_execute_before"]
        assert all(e["agent"] == "explore" for e in events)
        assert events[0]["message_id"] == "m1"
        assert events[1]["args"] == {"pattern": "auth"}
        assert events[1]["parent_session_id"] == "ses_main"
        assert events[1]["root_session_id"] == "ses_main"

    @pytest.mark.asyncio
    async def test_main_session_tool_after(self, plugin: MemoryLogPlugin):
        path = await plugin.on_tool_after("ses_main", "call_2", "read", title="README", output="...")
        assert path == sessions_dir(plugin) / "main.jsonl"
        [event] = read_events(path)
        assert event["event"] == "tool_execute_after"
        assert event["title"] == "README"
        assert event["agent"] is None

    @pytest.mark.asyncio
    async def test_tool_scope_drives_filter(self, plugin: MemoryLogPlugin):
        plugin.config.logger.scopes = ["auth"]
        assert await plugin.on_tool_before("ses_main", "c1", "memory_recall", {"scope": "auth"}) is not None
        assert await plugin.on_tool_before("ses_main", "c2", "read", {"path": "x"}) is None
        assert await plugin.on_tool_after("ses_main", "c3", "memory_recall", metadata={"scope": "auth"}) is not None
        assert await plugin.on_chat_message("ses_main", agent="build") is None

    @pytest.mark.asyncio
    async def test_disabled_logger_writes_nothing(self, project: Path):
        plugin = MemoryLogPlugin(project, CountingLookup())
        assert await plugin.log_event("ses_main", "custom", {"a": 1}) is None
        assert not plugin.config.memory_dir.exists()

    @pytest.mark.asyncio
    async def test_on_config_reloads_and_keeps_caches(self, plugin: MemoryLogPlugin, project: Path):
        lookup = plugin.resolver._lookup
        await plugin.log_event("ses_main", "first")
        await plugin.on_config({"memory_log": {"memory_dir": "elsewhere", "logger": {"enabled": True}}})

        assert plugin.config.memory_dir == project / "elsewhere"
        assert plugin.store.root == project / "elsewhere"
        assert plugin.writer.config is plugin.config

        path = await plugin.log_event("ses_main", "second")
        assert path == project / "elsewhere" / "sessions" / "2026-02-21-fix-auth-bug" / "main.jsonl"
        assert lookup.calls == 1

    @pytest.mark.asyncio
    async def test_tools_use_configured_directory(self, plugin: MemoryLogPlugin):
        await plugin.tools["memory_remember"]("decision", "auth", "use JWT", session_id="ses_main")
        records = await plugin.store.scan_all()
        assert [r.content for r in records] == ["use JWT"]
        [event] = read_events(sessions_dir(plugin) / "main.jsonl")
        assert event["event"] == "memory_remember"
