"""Root pytest configuration for all tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from agentmirror.config import Config, reset_config
from agentmirror.config.schema import ServerConfig, SyncConfig
from agentmirror.connection import ConnectionController
from agentmirror.logging import reset_logging
from tests.utils import FAKE_SERVER_COMMAND

# Configure pytest-asyncio to use auto mode
# This is redundant with pyproject.toml but ensures it's set
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(scope="session")
def anyio_backend():
    """Set anyio backend to asyncio."""
    return "asyncio"


@pytest.fixture(autouse=True)
def _isolate_globals():
    """Drop cached config and installed log handlers between tests."""
    reset_config()
    yield
    reset_config()
    reset_logging()


@pytest.fixture
def server_env(tmp_path: Path) -> dict[str, str]:
    """Environment for the fake server; tests add switches to it."""
    return {
        "FAKE_SERVER_SPAWN_LOG": str(tmp_path / "spawns.log"),
        "FAKE_SERVER_STATE": str(tmp_path / "server-state.json"),
    }


@pytest.fixture
def spawn_count(tmp_path: Path):
    """Number of fake server processes started during the test."""

    def count() -> int:
        path = tmp_path / "spawns.log"
        if not path.exists():
            return 0
        return len(path.read_text().splitlines())

    return count


@pytest.fixture
def server_config(server_env: dict[str, str]) -> Config:
    """Config pointing at the fake server; polling effectively off."""
    return Config(
        server=ServerConfig(
            command=list(FAKE_SERVER_COMMAND),
            env=server_env,
            shutdown_timeout=2.0,
        ),
        sync=SyncConfig(poll_interval=60.0),
    )


@pytest.fixture
async def controller(server_config: Config):
    """Controller wired to the fake server, disconnected on teardown."""
    ctrl = ConnectionController(server_config)
    yield ctrl
    await ctrl.disconnect()
