"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Environment variable overrides
- Config caching
- Conversion from dict to typed Config dataclass
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from agentmirror.config.merge import merge_configs
from agentmirror.config.paths import get_config_paths
from agentmirror.config.schema import (
    ClientConfig,
    Config,
    LoggingConfig,
    ServerConfig,
    SyncConfig,
)

# Module logger (may not be configured yet at import time)
_log = logging.getLogger("agentmirror.config")

LOG_ENV_VAR = "AGENTMIRROR_LOG"
SERVER_PATH_ENV_VAR = "AGENTMIRROR_SERVER_PATH"

_cached_config: Config | None = None


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning an empty dict if missing or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def env_overrides() -> dict[str, Any]:
    """Build a config layer from environment variables."""
    overrides: dict[str, Any] = {}

    log_path = os.environ.get(LOG_ENV_VAR)
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    server_path = os.environ.get(SERVER_PATH_ENV_VAR)
    if server_path:
        overrides.setdefault("server", {})["server_path"] = server_path

    return overrides


def _str_list(value: Any) -> list[str] | None:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(v) for v in value]
    return None


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert a merged dict to the typed Config dataclass."""
    server_data = data.get("server") or {}
    env = server_data.get("env") or {}
    server = ServerConfig(
        command=_str_list(server_data.get("command")),
        server_path=server_data.get("server_path"),
        env={str(k): str(v) for k, v in env.items()} if isinstance(env, dict) else {},
        shutdown_timeout=float(server_data.get("shutdown_timeout", 3.0)),
    )

    client_data = data.get("client") or {}
    client_defaults = ClientConfig()
    client = ClientConfig(
        name=client_data.get("name", client_defaults.name),
        version=str(client_data.get("version", client_defaults.version)),
        protocol_version=str(
            client_data.get("protocol_version", client_defaults.protocol_version)
        ),
    )

    sync_data = data.get("sync") or {}
    sync_defaults = SyncConfig()
    sync = SyncConfig(
        poll_interval=float(sync_data.get("poll_interval", sync_defaults.poll_interval)),
        subscriber_id=sync_data.get("subscriber_id", sync_defaults.subscriber_id),
        events=_str_list(sync_data.get("events")) or sync_defaults.events,
    )

    log_data = data.get("logging") or {}
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=log_data.get("verbose"),
        file=log_data.get("file"),
    )

    known_keys = {"server", "client", "sync", "logging"}
    extra = {k: v for k, v in data.items() if k not in known_keys}

    return Config(
        server=server,
        client=client,
        sync=sync,
        logging=logging_config,
        extra=extra,
    )


def load_config(
    project_root: str | None = None,
    reload: bool = False,
    config_file: Path | None = None,
) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables
    2. Explicit config_file (e.g. from --config)
    3. Project config ($project_root/.agentmirror/config.yaml)
    4. User config
    5. System config

    Only the plain global config (no project_root, no config_file) is cached.
    """
    global _cached_config

    is_global = project_root is None and config_file is None
    if _cached_config is not None and not reload and is_global:
        return _cached_config

    layers: list[dict[str, Any]] = []

    paths = get_config_paths(project_root)
    if config_file is not None:
        paths.append(config_file)

    for path in paths:
        layer = load_yaml_file(path)
        if layer:
            _log.debug("Loaded config from %s", path)
            layers.append(layer)

    env_layer = env_overrides()
    if env_layer:
        layers.append(env_layer)

    config = dict_to_config(merge_configs(*layers))

    if is_global:
        _cached_config = config

    return config


def get_config() -> Config:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Drop the cached config (tests, forced reload)."""
    global _cached_config
    _cached_config = None
