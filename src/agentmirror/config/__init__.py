"""Configuration management for agentmirror.

Provides hierarchical YAML-based configuration with:
- System-level config (/etc/agentmirror/ or %PROGRAMDATA%)
- User-level config (~/.config/agentmirror/, ~/.agentmirror/ or %APPDATA%)
- Project-level config ($project_root/.agentmirror/)
- Environment variable overrides (highest priority)

Example usage:
    from agentmirror.config import load_config

    config = load_config(project_root="/path/to/project")
    print(config.server.resolve_command())
    print(config.sync.poll_interval)
"""

from agentmirror.config.loader import (
    get_config,
    load_config,
    reset_config,
)
from agentmirror.config.paths import (
    get_config_paths,
    get_project_config_path,
    get_system_config_path,
    get_user_config_path,
)
from agentmirror.config.schema import (
    ClientConfig,
    Config,
    LoggingConfig,
    ServerConfig,
    SyncConfig,
)

__all__ = [
    # Main API
    "Config",
    "load_config",
    "get_config",
    "reset_config",
    # Schema types
    "ServerConfig",
    "ClientConfig",
    "SyncConfig",
    "LoggingConfig",
    # Path utilities
    "get_config_paths",
    "get_system_config_path",
    "get_user_config_path",
    "get_project_config_path",
]
