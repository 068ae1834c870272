"""Session hierarchy — slug + parent chain per session id, cached per process.

Event files are laid out by session:

    sessions/<slug>/main.jsonl                  # root session
    sessions/<parent-slug>/<agent>-<id>.jsonl   # sub-agent session
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePath

from memlog.state import AgentRegistry, SessionCache

logger = logging.getLogger(__name__)

SLUG_MAX_LEN = 60
MAIN_FILE = "main.jsonl"
DEFAULT_AGENT = "subagent"


@dataclass(frozen=True)
class SessionLookup:
    """What the host knows about a session. `created` is epoch seconds."""

    id: str
    title: str
    parent_id: str | None = None
    created: float = 0.0


SessionLookupFn = Callable[[str], Awaitable[SessionLookup]]


@dataclass(frozen=True)
class SessionInfo:
    id: str
    title: str
    slug: str
    parent_id: str | None = None
    degraded: bool = False

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


def slugify(title: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to '-', trim, cap at 60 chars."""
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return slug[:SLUG_MAX_LEN]


def _safe_name(name: str, fallback: str = DEFAULT_AGENT) -> str:
    """Single path component: `[\\w.-]` only, no leading/trailing dots or dashes."""
    return re.sub(r"[^\w.-]+", "-", name).strip("-.") or fallback


def session_slug(title: str, created: float) -> str:
    day = datetime.fromtimestamp(created, tz=timezone.utc).strftime("%Y-%m-%d")
    title_slug = slugify(title)
    return f"{day}-{title_slug}" if title_slug else day


class SessionResolver:
    """Resolve session ids through the host lookup, caching every answer.

    Lookup failures are cached as degraded entries (slug = sanitized raw id,
    no parent) and never retried. Cached titles/parents are assumed not to
    change. Concurrent resolves of one uncached id share a single lookup.
    """

    def __init__(
        self,
        lookup: SessionLookupFn,
        cache: SessionCache,
        agents: AgentRegistry,
    ) -> None:
        self._lookup = lookup
        self._cache = cache
        self._agents = agents
        self._pending: dict[str, asyncio.Future[SessionInfo]] = {}

    async def resolve(self, session_id: str) -> SessionInfo:
        cached = self._cache.get(session_id)
        if cached is not None:
            return cached

        pending = self._pending.get(session_id)
        if pending is None:
            pending = asyncio.ensure_future(self._fetch(session_id))
            self._pending[session_id] = pending
            pending.add_done_callback(lambda _: self._pending.pop(session_id, None))
        return await asyncio.shield(pending)

    async def _fetch(self, session_id: str) -> SessionInfo:
        try:
            found = await self._lookup(session_id)
            info = SessionInfo(
                id=session_id,
                title=found.title,
                slug=session_slug(found.title, found.created),
                parent_id=found.parent_id or None,
            )
        except Exception as e:
            logger.warning("Session lookup failed for %s, using raw id: %s", session_id, e)
            info = SessionInfo(
                id=session_id,
                title=session_id,
                slug=_safe_name(session_id, fallback="session"),
                degraded=True,
            )

        self._cache.put(info)
        return info

    async def resolve_root(self, session_id: str) -> str:
        """Id of the top-most ancestor (the session itself when it has no parent)."""
        current = await self.resolve(session_id)
        seen = {current.id}
        while current.parent_id is not None and current.parent_id not in seen:
            seen.add(current.parent_id)
            current = await self.resolve(current.parent_id)
        return current.id

    async def resolve_path(self, session_id: str) -> PurePath:
        """Event file path relative to the sessions/ directory."""
        info = await self.resolve(session_id)
        if info.parent_id is None:
            return PurePath(info.slug) / MAIN_FILE
        parent = await self.resolve(info.parent_id)
        agent = _safe_name(self._agents.get(session_id) or DEFAULT_AGENT)
        name = _safe_name(session_id, fallback="session")
        return PurePath(parent.slug) / f"{agent}-{name}.jsonl"
