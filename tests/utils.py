"""Shared test utilities for agentmirror tests."""

from __future__ import annotations

import asyncio
import sys
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from agentmirror.protocol.types import NotificationEvent, StatusResponse

FAKE_SERVER = Path(__file__).parent / "fixtures" / "fake_server.py"
FAKE_SERVER_COMMAND = [sys.executable, str(FAKE_SERVER)]


async def wait_for_condition(
    predicate: Callable[[], bool],
    timeout: float = 5.0,
    interval: float = 0.01,
) -> None:
    """Poll ``predicate`` until it holds.

    Raises:
        asyncio.TimeoutError: If it is still false after ``timeout`` seconds.
    """
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise asyncio.TimeoutError(f"Condition not met within {timeout}s")
        await asyncio.sleep(interval)


async def wait_for_async(coro, timeout: float = 5.0):
    """Wait for an async coroutine with a timeout."""
    return await asyncio.wait_for(coro, timeout=timeout)


def make_status(
    agents: list[dict[str, Any]] | None = None,
    locks: list[dict[str, Any]] | None = None,
    plans: list[dict[str, Any]] | None = None,
    messages: list[dict[str, Any]] | None = None,
) -> StatusResponse:
    """Build a StatusResponse from plain dicts, the way the server sends them."""
    return StatusResponse.model_validate(
        {
            "agents": agents or [],
            "locks": locks or [],
            "plans": plans or [],
            "messages": messages or [],
        }
    )


def agent(name: str, registered_at: int = 1000, last_active: int = 1000) -> dict[str, Any]:
    return {"agent_name": name, "registered_at": registered_at, "last_active": last_active}


def lock(
    file_path: str,
    agent_name: str,
    acquired_at: int = 1000,
    expires_at: int = 10_000,
    reason: str | None = None,
) -> dict[str, Any]:
    return {
        "file_path": file_path,
        "agent_name": agent_name,
        "acquired_at": acquired_at,
        "expires_at": expires_at,
        "reason": reason,
    }


def plan(agent_name: str, goal: str = "ship", current_task: str = "coding") -> dict[str, Any]:
    return {
        "agent_name": agent_name,
        "goal": goal,
        "current_task": current_task,
        "updated_at": 1000,
    }


def message(
    msg_id: str,
    from_agent: str,
    to_agent: str,
    content: str = "hello",
    read_at: int | None = None,
) -> dict[str, Any]:
    return {
        "id": msg_id,
        "from_agent": from_agent,
        "to_agent": to_agent,
        "content": content,
        "created_at": 1000,
        "read_at": read_at,
    }


def event(kind: str, payload: dict[str, Any], timestamp: int = 5000) -> NotificationEvent:
    return NotificationEvent(event=kind, payload=payload, timestamp=timestamp)
