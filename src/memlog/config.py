"""Configuration loading from memory-log.toml files, host overrides and env vars."""

from __future__ import annotations

import logging
import os
import re
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import tomli_w

from memlog.results import StoreIOError

logger = logging.getLogger(__name__)

_CONFIG_FILENAME = "memory-log.toml"
_DEFAULT_MEMORY_DIR = ".opencode/memory"

_TRUTHY = {"1", "true", "yes", "on"}

# Where memory_logger_set may write its settings; "session" writes nothing
PERSIST_TARGETS = ("session", "project", "global")


@dataclass
class LoggerConfig:
    """Event logger settings. `dir` defaults to the memory directory."""

    enabled: bool = False
    scopes: list[str] = field(default_factory=list)
    dir: Path | None = None


@dataclass
class MemoryLogConfig:
    """Top-level memory-log configuration."""

    memory_dir: Path = Path(_DEFAULT_MEMORY_DIR)
    logger: LoggerConfig = field(default_factory=LoggerConfig)
    log_level: str = "INFO"

    @property
    def logger_dir(self) -> Path:
        return self.logger.dir or self.memory_dir


def global_settings_file() -> Path:
    return Path.home() / ".config" / "opencode" / _CONFIG_FILENAME


def project_settings_file(project_dir: Path) -> Path:
    return Path(project_dir) / ".opencode" / _CONFIG_FILENAME


def settings_file_paths(project_dir: Path) -> dict[str, Path]:
    return {"global": global_settings_file(), "project": project_settings_file(project_dir)}


# ── Layering ──────────────────────────────────────────────────


def read_settings_file(path: Path) -> dict | None:
    """Parse a TOML settings file. Missing, empty or invalid files yield None."""
    if not path.is_file():
        return None
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return None
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        logger.warning("Ignoring invalid settings file %s: %s", path, e)
        return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


def merge_settings(base: MemoryLogConfig, patch: Mapping[str, Any] | None) -> MemoryLogConfig:
    """Return `base` with every key present in `patch` overridden."""
    if not patch:
        return base
    logger_patch = patch.get("logger") or {}
    log_cfg = base.logger
    merged_logger = LoggerConfig(
        enabled=_as_bool(logger_patch.get("enabled", log_cfg.enabled)),
        scopes=list(logger_patch.get("scopes", log_cfg.scopes)),
        dir=Path(logger_patch["dir"]) if logger_patch.get("dir") else log_cfg.dir,
    )
    return replace(
        base,
        memory_dir=Path(patch["memory_dir"]) if patch.get("memory_dir") else base.memory_dir,
        logger=merged_logger,
        log_level=patch.get("log_level", base.log_level),
    )


def _env_patch() -> dict[str, Any]:
    patch: dict[str, Any] = {}
    logger_patch: dict[str, Any] = {}
    if os.getenv("MEMORY_LOG_DIR"):
        patch["memory_dir"] = os.environ["MEMORY_LOG_DIR"]
    if os.getenv("MEMORY_LOG_LEVEL"):
        patch["log_level"] = os.environ["MEMORY_LOG_LEVEL"]
    if os.getenv("MEMORY_LOG_LOGGER_ENABLED"):
        logger_patch["enabled"] = _as_bool(os.environ["MEMORY_LOG_LOGGER_ENABLED"])
    if os.getenv("MEMORY_LOG_LOGGER_DIR"):
        logger_patch["dir"] = os.environ["MEMORY_LOG_LOGGER_DIR"]
    if logger_patch:
        patch["logger"] = logger_patch
    return patch


# ── Path templates ────────────────────────────────────────────


def expand_template(value: str, project_dir: Path, date: str | None = None) -> Path:
    """Expand ${home} ${project} ${workspace} ${date} ${env:NAME}.

    Relative results are taken relative to the project directory.
    """
    day = date or datetime.now(timezone.utc).strftime("%Y-%m-%d")
    project = str(project_dir)
    resolved = re.sub(r"\$\{home\}", lambda _: str(Path.home()), value, flags=re.IGNORECASE)
    resolved = re.sub(r"\$\{(project|workspace)\}", lambda _: project, resolved, flags=re.IGNORECASE)
    resolved = re.sub(r"\$\{date\}", lambda _: day, resolved, flags=re.IGNORECASE)
    resolved = re.sub(
        r"\$\{env:([A-Z0-9_]+)\}",
        lambda m: os.getenv(m.group(1), ""),
        resolved,
        flags=re.IGNORECASE,
    )
    path = Path(resolved)
    return path if path.is_absolute() else Path(project_dir) / path


def load_config(project_dir: Path, inline: Mapping[str, Any] | None = None) -> MemoryLogConfig:
    """Load configuration for a project.

    Priority: environment variables > inline (host) > project file > global file > defaults.
    """
    project_dir = Path(project_dir)
    config = MemoryLogConfig()
    for layer in (
        read_settings_file(global_settings_file()),
        read_settings_file(project_settings_file(project_dir)),
        inline,
        _env_patch(),
    ):
        config = merge_settings(config, layer)

    return replace(
        config,
        memory_dir=expand_template(str(config.memory_dir), project_dir),
        logger=replace(
            config.logger,
            dir=expand_template(str(config.logger.dir), project_dir) if config.logger.dir else None,
        ),
    )


def settings_to_dict(config: MemoryLogConfig) -> dict[str, Any]:
    return {
        "memory_dir": str(config.memory_dir),
        "log_level": config.log_level,
        "logger": {
            "enabled": config.logger.enabled,
            "scopes": list(config.logger.scopes),
            "dir": str(config.logger_dir),
        },
    }


# ── Persisting ────────────────────────────────────────────────


def persist_logger_settings(config: MemoryLogConfig, target: str, project_dir: Path) -> Path:
    """Merge the current logger settings into the project or global settings file.

    Other keys already in the file are kept; `memory_dir` is filled in only
    when the file does not set one.
    """
    path = project_settings_file(project_dir) if target == "project" else global_settings_file()
    existing = read_settings_file(path) or {}
    log_table = dict(existing.get("logger") or {})
    log_table["enabled"] = config.logger.enabled
    log_table["scopes"] = list(config.logger.scopes)
    if config.logger.dir is not None:
        log_table["dir"] = str(config.logger.dir)
    merged = {
        **existing,
        "logger": log_table,
        "memory_dir": existing.get("memory_dir") or str(config.memory_dir),
    }
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(tomli_w.dumps(merged), encoding="utf-8")
    except OSError as e:
        raise StoreIOError(f"Cannot write settings file {path}: {e}") from e
    logger.info("Logger settings written to %s", path)
    return path
