"""Entry point: python -m memlog [list|recall|audit|status]

Inspects the memory directory configured for the current working directory.

- "list":            Scopes and types with counts (default)
- "recall [words]":  Last matching memories, best matches by query
- "audit":           Deletion audit trail
- "status":          Effective settings as JSON
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

from memlog.config import MemoryLogConfig, load_config, settings_to_dict
from memlog.memory.search import recall
from memlog.memory.store import MemoryStore
from memlog.results import StoreIOError
from memlog.tools.memory_tools import format_memory


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


async def _list(store: MemoryStore) -> None:
    summary = await store.list_summary()
    if not summary.total:
        print("No memories found")
        return
    print(f"Total memories: {summary.total}\n\nScopes:")
    for s in summary.scopes:
        print(f"  {s.scope}: {s.count} ({', '.join(s.types)})")
    print("\nTypes:")
    for mtype, count in summary.types:
        print(f"  {mtype}: {count}")


async def _recall(store: MemoryStore, query: str) -> None:
    result = recall(await store.scan_all(), query=query or None)
    if not result.records:
        print("No matching memories")
        return
    print(result.header() + "\n")
    for record in result.records:
        print(format_memory(record))


async def _audit(store: MemoryStore) -> None:
    entries = await store.read_deletions()
    if not entries:
        print("No deletions recorded")
        return
    for e in entries:
        print(f"[{e.timestamp}] {e.type}/{e.scope}: {e.content} — {e.reason}")


def _run(cmd: str, args: list[str], config: MemoryLogConfig) -> None:
    store = MemoryStore(config.memory_dir)
    if cmd == "list":
        asyncio.run(_list(store))
    elif cmd == "recall":
        asyncio.run(_recall(store, " ".join(args)))
    elif cmd == "audit":
        asyncio.run(_audit(store))
    elif cmd == "status":
        print(json.dumps(settings_to_dict(config), indent=2))


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else "list"
    if cmd not in ("list", "recall", "audit", "status"):
        print("Usage: python -m memlog [list|recall [words...]|audit|status]")
        print("  list    — Scopes and types with counts (default)")
        print("  recall  — Search memories")
        print("  audit   — Show deleted/superseded memories")
        print("  status  — Show effective settings")
        sys.exit(1)

    config = load_config(Path.cwd())
    _setup_logging(config.log_level)
    try:
        _run(cmd, sys.argv[2:], config)
    except StoreIOError as e:
        logging.getLogger(__name__).error("%s", e)
        sys.exit(2)


if __name__ == "__main__":
    main()
