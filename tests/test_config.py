"""Tests for the configuration module."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from agentmirror.config import (
    Config,
    get_config,
    load_config,
    reset_config,
)
from agentmirror.config.loader import dict_to_config, env_overrides
from agentmirror.config.merge import deep_merge, merge_configs
from agentmirror.config.paths import (
    get_config_paths,
    get_project_config_path,
    get_system_config_path,
    get_user_config_path,
)
from agentmirror.config.schema import DEFAULT_COMMAND, ServerConfig


@pytest.fixture(autouse=True)
def isolated_user_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's own config files out of the tests."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.delenv("AGENTMIRROR_LOG", raising=False)
    monkeypatch.delenv("AGENTMIRROR_SERVER_PATH", raising=False)


class TestDeepMerge:
    """Test the deep merge algorithm."""

    def test_simple_override(self) -> None:
        """Test that override values replace base values."""
        result = deep_merge({"a": 1, "b": 2}, {"b": 3, "c": 4})
        assert result == {"a": 1, "b": 3, "c": 4}

    def test_nested_merge(self) -> None:
        """Test that nested dicts are recursively merged."""
        base = {"sync": {"poll_interval": 2.0, "subscriber_id": "a"}}
        result = deep_merge(base, {"sync": {"poll_interval": 0.5}})
        assert result["sync"] == {"poll_interval": 0.5, "subscriber_id": "a"}

    def test_none_does_not_override(self) -> None:
        """Test that None values in override don't replace base values."""
        assert deep_merge({"a": 1}, {"a": None}) == {"a": 1}

    def test_list_replaced_not_merged(self) -> None:
        """Test that lists are replaced, not concatenated."""
        result = deep_merge({"command": ["npx", "too-many-cooks"]}, {"command": ["node", "s.js"]})
        assert result["command"] == ["node", "s.js"]

    def test_base_not_mutated(self) -> None:
        base = {"server": {"env": {"A": "1"}}}
        deep_merge(base, {"server": {"env": {"B": "2"}}})
        assert base == {"server": {"env": {"A": "1"}}}

    def test_merge_configs_multiple(self) -> None:
        """Test merging multiple configs in order."""
        result = merge_configs({"a": 1, "b": 2}, {"b": 3}, {}, {"c": 4})
        assert result == {"a": 1, "b": 3, "c": 4}


class TestConfigPaths:
    """Test platform-aware path resolution."""

    def test_windows_system_path(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "platform", "win32")
        monkeypatch.setenv("PROGRAMDATA", "C:\\ProgramData")

        path = get_system_config_path()
        assert path is not None
        assert "ProgramData" in str(path)
        assert "agentmirror" in str(path)

    def test_windows_user_path(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "platform", "win32")
        monkeypatch.setenv("APPDATA", "C:\\Users\\Test\\AppData\\Roaming")

        path = get_user_config_path()
        assert path is not None
        assert "AppData" in str(path)

    def test_unix_system_path(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "platform", "linux")
        assert get_system_config_path() == Path("/etc/agentmirror/config.yaml")

    def test_unix_user_path_xdg(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "platform", "linux")
        monkeypatch.setenv("XDG_CONFIG_HOME", "/home/test/.config-custom")

        assert get_user_config_path() == Path("/home/test/.config-custom/agentmirror/config.yaml")

    def test_project_config_path(self) -> None:
        path = get_project_config_path("/home/user/myproject")
        assert path == Path("/home/user/myproject/.agentmirror/config.yaml")

    def test_get_config_paths_order(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """System first, then user, then project."""
        monkeypatch.setattr(sys, "platform", "linux")

        paths = get_config_paths("/project")
        assert len(paths) == 3
        assert "etc" in paths[0].parts
        assert "project" in paths[2].parts


class TestServerCommand:
    """Resolution of the argv used to spawn the server."""

    def test_default(self) -> None:
        assert ServerConfig().resolve_command() == DEFAULT_COMMAND

    def test_server_path(self) -> None:
        config = ServerConfig(server_path="/opt/tmc/build/server.js")
        assert config.resolve_command() == ["node", "/opt/tmc/build/server.js"]

    def test_explicit_command_wins(self) -> None:
        config = ServerConfig(command=["deno", "run", "server.ts"], server_path="/ignored.js")
        assert config.resolve_command() == ["deno", "run", "server.ts"]

    def test_resolved_command_is_a_copy(self) -> None:
        ServerConfig().resolve_command().append("--oops")
        assert ServerConfig().resolve_command() == DEFAULT_COMMAND


class TestDictToConfig:
    def test_defaults(self) -> None:
        config = dict_to_config({})
        assert config.sync.poll_interval == 2.0
        assert config.sync.events == ["*"]
        assert config.client.protocol_version == "2024-11-05"
        assert config.server.command is None

    def test_string_command_becomes_list(self) -> None:
        config = dict_to_config({"server": {"command": "too-many-cooks"}})
        assert config.server.command == ["too-many-cooks"]

    def test_env_values_stringified(self) -> None:
        config = dict_to_config({"server": {"env": {"PORT": 8080}}})
        assert config.server.env == {"PORT": "8080"}


class TestConfigLoading:
    """Test configuration loading."""

    @pytest.fixture
    def temp_config_dir(self, tmp_path: Path) -> Path:
        config_dir = tmp_path / "project" / ".agentmirror"
        config_dir.mkdir(parents=True)
        return config_dir

    def test_load_yaml_config(self, temp_config_dir: Path) -> None:
        (temp_config_dir / "config.yaml").write_text(
            """
server:
  server_path: ./build/server.js
  env:
    TMC_DB: /tmp/tmc.db
sync:
  poll_interval: 0.5
  subscriber_id: mirror-test
logging:
  verbose: 3
"""
        )
        config = load_config(project_root=str(temp_config_dir.parent))

        assert config.server.resolve_command() == ["node", "./build/server.js"]
        assert config.server.env == {"TMC_DB": "/tmp/tmc.db"}
        assert config.sync.poll_interval == 0.5
        assert config.sync.subscriber_id == "mirror-test"
        assert config.logging.verbose == 3

    def test_explicit_file_overrides_project(self, temp_config_dir: Path, tmp_path: Path) -> None:
        (temp_config_dir / "config.yaml").write_text("sync:\n  poll_interval: 5\n  subscriber_id: proj\n")
        extra = tmp_path / "extra.yaml"
        extra.write_text("sync:\n  poll_interval: 1\n")

        config = load_config(project_root=str(temp_config_dir.parent), config_file=extra)

        assert config.sync.poll_interval == 1.0
        assert config.sync.subscriber_id == "proj"

    def test_env_overrides_config(
        self, temp_config_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (temp_config_dir / "config.yaml").write_text("server:\n  server_path: from-file.js\n")
        monkeypatch.setenv("AGENTMIRROR_SERVER_PATH", "from-env.js")
        monkeypatch.setenv("AGENTMIRROR_LOG", "/tmp/agentmirror.log")

        config = load_config(project_root=str(temp_config_dir.parent))

        assert config.server.server_path == "from-env.js"
        assert config.logging.file == "/tmp/agentmirror.log"

    def test_env_overrides_empty_by_default(self) -> None:
        assert env_overrides() == {}

    def test_invalid_yaml_uses_defaults(self, temp_config_dir: Path) -> None:
        (temp_config_dir / "config.yaml").write_text("invalid: yaml: :")
        config = load_config(project_root=str(temp_config_dir.parent))
        assert config.sync.poll_interval == 2.0

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        config = load_config(project_root=str(tmp_path))
        assert isinstance(config, Config)
        assert config.server.server_path is None

    def test_extra_fields_preserved(self, temp_config_dir: Path) -> None:
        (temp_config_dir / "config.yaml").write_text("dashboard:\n  theme: dark\n")
        config = load_config(project_root=str(temp_config_dir.parent))
        assert config.extra == {"dashboard": {"theme": "dark"}}


class TestConfigCaching:
    """Test config caching behavior."""

    def test_get_config_caches(self) -> None:
        assert get_config() is get_config()

    def test_reset_clears_cache(self) -> None:
        config1 = get_config()
        reset_config()
        assert get_config() is not config1

    def test_project_config_not_cached(self, tmp_path: Path) -> None:
        project_config = load_config(project_root=str(tmp_path))
        assert project_config is not get_config()
