"""Configuration schema dataclasses for agentmirror.

Defines the structure of configuration at all levels (system, user, project).
All fields have defaults so partial configs merge together cleanly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_COMMAND = ["npx", "too-many-cooks"]


@dataclass
class ServerConfig:
    """How to launch the coordination server subprocess.

    Example config.yaml:
        server:
          server_path: ./build/server.js
          env:
            TMC_DB: "${HOME}/.tmc/db.sqlite"
    """

    command: list[str] | None = None  # Explicit argv, wins over server_path
    server_path: str | None = None  # Local build, launched with node
    env: dict[str, str] = field(default_factory=dict)
    shutdown_timeout: float = 3.0  # Seconds between terminate and kill

    def resolve_command(self) -> list[str]:
        """Return the argv used to spawn the server."""
        if self.command:
            return list(self.command)
        if self.server_path:
            return ["node", self.server_path]
        return list(DEFAULT_COMMAND)


@dataclass
class ClientConfig:
    """Identity announced in the initialize handshake."""

    name: str = "agentmirror"
    version: str = "0.1.0"
    protocol_version: str = "2024-11-05"


@dataclass
class SyncConfig:
    """Subscription and polling behaviour."""

    poll_interval: float = 2.0  # Seconds between full refreshes
    subscriber_id: str = "agentmirror"
    events: list[str] = field(default_factory=lambda: ["*"])


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, overrides level
    file: str | None = None  # Log file path


@dataclass
class Config:
    """Root configuration object."""

    server: ServerConfig = field(default_factory=ServerConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Unknown top-level keys, kept for extensions
    extra: dict[str, Any] = field(default_factory=dict)
