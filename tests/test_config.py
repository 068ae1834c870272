"""Tests for configuration loading."""

from pathlib import Path

import pytest

from memlog.config import (
    LoggerConfig,
    MemoryLogConfig,
    expand_template,
    load_config,
    merge_settings,
    settings_file_paths,
    settings_to_dict,
)

ENV_KEYS = ["MEMORY_LOG_DIR", "MEMORY_LOG_LEVEL", "MEMORY_LOG_LOGGER_ENABLED", "MEMORY_LOG_LOGGER_DIR"]


@pytest.fixture
def home(tmp_path: Path, monkeypatch) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return home


@pytest.fixture
def project(tmp_path: Path) -> Path:
    project = tmp_path / "repo"
    (project / ".opencode").mkdir(parents=True)
    return project


def write_global(home: Path, text: str) -> None:
    path = home / ".config" / "opencode" / "memory-log.toml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


def write_project(project: Path, text: str) -> None:
    (project / ".opencode" / "memory-log.toml").write_text(text)


class TestConfig:
    def test_defaults(self, home: Path, project: Path):
        config = load_config(project)
        assert config.memory_dir == project / ".opencode" / "memory"
        assert config.logger.enabled is False
        assert config.logger.scopes == []
        assert config.logger_dir == config.memory_dir
        assert config.log_level == "INFO"

    def test_global_file(self, home: Path, project: Path):
        write_global(home, 'memory_dir = "${home}/memories"\n[logger]\nenabled = true\n')
        config = load_config(project)
        assert config.memory_dir == home / "memories"
        assert config.logger.enabled is True

    def test_project_overrides_global(self, home: Path, project: Path):
        write_global(home, '[logger]\nenabled = true\nscopes = ["chat"]\n')
        write_project(project, '[logger]\nscopes = ["auth", "api"]\ndir = "logs"\n')
        config = load_config(project)
        assert config.logger.enabled is True  # kept from global
        assert config.logger.scopes == ["auth", "api"]
        assert config.logger_dir == project / "logs"

    def test_inline_overrides_project(self, home: Path, project: Path):
        write_project(project, 'memory_dir = "from-file"\n')
        config = load_config(project, {"memory_dir": "from-host"})
        assert config.memory_dir == project / "from-host"

    def test_env_overrides_everything(self, home: Path, project: Path, monkeypatch):
        write_project(project, "[logger]\nenabled = true\n")
        monkeypatch.setenv("MEMORY_LOG_LOGGER_ENABLED", "false")
        monkeypatch.setenv("MEMORY_LOG_DIR", "/srv/memory")
        monkeypatch.setenv("MEMORY_LOG_LEVEL", "DEBUG")
        config = load_config(project, {"logger": {"enabled": True}})
        assert config.logger.enabled is False  # env wins
        assert config.memory_dir == Path("/srv/memory")
        assert config.log_level == "DEBUG"

    def test_invalid_and_empty_files_ignored(self, home: Path, project: Path):
        write_global(home, "this is = = not toml")
        write_project(project, "   \n")
        config = load_config(project)
        assert config.memory_dir == project / ".opencode" / "memory"

    def test_settings_file_paths(self, home: Path):
        paths = settings_file_paths(Path("/tmp/repo"))
        assert paths["global"] == home / ".config" / "opencode" / "memory-log.toml"
        assert paths["project"] == Path("/tmp/repo/.opencode/memory-log.toml")


class TestMerge:
    def test_none_patch_returns_base(self):
        base = MemoryLogConfig()
        assert merge_settings(base, None) is base

    def test_string_booleans_from_host(self):
        base = MemoryLogConfig(logger=LoggerConfig(enabled=True))
        assert merge_settings(base, {"logger": {"enabled": "false"}}).logger.enabled is False
        assert merge_settings(base, {"logger": {"enabled": "0"}}).logger.enabled is False
        assert merge_settings(MemoryLogConfig(), {"logger": {"enabled": "yes"}}).logger.enabled is True

    def test_partial_logger_patch(self):
        base = MemoryLogConfig(logger=LoggerConfig(enabled=True, scopes=["a"]))
        merged = merge_settings(base, {"logger": {"scopes": []}})
        assert merged.logger.enabled is True
        assert merged.logger.scopes == []
        assert base.logger.scopes == ["a"]

    def test_settings_to_dict(self):
        data = settings_to_dict(MemoryLogConfig(memory_dir=Path("/m")))
        assert data["memory_dir"] == "/m"
        assert data["logger"] == {"enabled": False, "scopes": [], "dir": "/m"}


class TestExpandTemplate:
    def test_project_and_date(self):
        resolved = expand_template("${project}/logs/${date}", Path("/tmp/repo"), "2026-02-20")
        assert resolved == Path("/tmp/repo/logs/2026-02-20")

    def test_workspace_alias_case_insensitive(self):
        assert expand_template("${WORKSPACE}/m", Path("/tmp/repo")) == Path("/tmp/repo/m")

    def test_env(self, monkeypatch):
        monkeypatch.setenv("MEMLOG_TEST_ROOT", "/data")
        assert expand_template("${env:MEMLOG_TEST_ROOT}/mem", Path("/tmp/repo")) == Path("/data/mem")

    def test_missing_env_is_empty(self, monkeypatch):
        monkeypatch.delenv("MEMLOG_TEST_MISSING", raising=False)
        assert expand_template("x${env:MEMLOG_TEST_MISSING}y", Path("/tmp/repo")) == Path("/tmp/repo/xy")

    def test_relative_joined_to_project(self):
        assert expand_template("notes", Path("/tmp/repo")) == Path("/tmp/repo/notes")

    def test_home(self, home: Path):
        assert expand_template("${home}/m", Path("/tmp/repo")) == home / "m"
