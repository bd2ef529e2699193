"""Typed facade over the coordination server's named tools.

Every tool answers with a JSON document inside the tool-call envelope.
A document carrying an ``error`` field is a failed operation and raises
ToolError; nothing here touches local state.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from agentmirror.errors import ToolError
from agentmirror.protocol.types import Registration, StatusResponse

_log = logging.getLogger("agentmirror.protocol.operations")

# (tool_name, arguments) -> raw JSON text
ToolCaller = Callable[[str, dict[str, Any]], Awaitable[str]]


def parse_tool_payload(text: str) -> Any:
    """Decode a tool's JSON text, raising ToolError on a reported error."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ToolError(f"Tool returned invalid JSON: {e}") from e

    if isinstance(data, dict) and data.get("error"):
        raise ToolError(str(data["error"]))
    return data


class RemoteOperations:
    """Named remote operations: register, lock, message, plan, status, admin, subscribe."""

    def __init__(self, call_tool: ToolCaller) -> None:
        self._call_tool = call_tool

    async def invoke(self, tool: str, arguments: dict[str, Any]) -> Any:
        """Call ``tool`` and return its decoded payload."""
        text = await self._call_tool(tool, arguments)
        return parse_tool_payload(text)

    # -- status / identity -------------------------------------------------

    async def status(self) -> StatusResponse:
        data = await self.invoke("status", {})
        return StatusResponse.model_validate(data)

    async def register(self, name: str) -> Registration:
        """Register ``name``; registering a known name succeeds again."""
        data = await self.invoke("register", {"name": name})
        return Registration.model_validate(data)

    # -- locks -------------------------------------------------------------

    async def acquire_lock(
        self,
        file_path: str,
        agent_name: str,
        agent_key: str,
        reason: str | None = None,
    ) -> Any:
        args: dict[str, Any] = {
            "action": "acquire",
            "file_path": file_path,
            "agent_name": agent_name,
            "agent_key": agent_key,
        }
        if reason is not None:
            args["reason"] = reason
        return await self.invoke("lock", args)

    async def release_lock(self, file_path: str, agent_name: str, agent_key: str) -> Any:
        return await self.invoke(
            "lock",
            {
                "action": "release",
                "file_path": file_path,
                "agent_name": agent_name,
                "agent_key": agent_key,
            },
        )

    async def renew_lock(self, file_path: str, agent_name: str, agent_key: str) -> Any:
        return await self.invoke(
            "lock",
            {
                "action": "renew",
                "file_path": file_path,
                "agent_name": agent_name,
                "agent_key": agent_key,
            },
        )

    # -- messages ----------------------------------------------------------

    async def send_message(
        self,
        agent_name: str,
        agent_key: str,
        to_agent: str,
        content: str,
    ) -> Any:
        return await self.invoke(
            "message",
            {
                "action": "send",
                "agent_name": agent_name,
                "agent_key": agent_key,
                "to_agent": to_agent,
                "content": content,
            },
        )

    async def get_messages(self, agent_name: str, agent_key: str) -> Any:
        """Fetch messages addressed to ``agent_name``; the server marks them read."""
        return await self.invoke(
            "message",
            {"action": "get", "agent_name": agent_name, "agent_key": agent_key},
        )

    async def mark_read(self, agent_name: str, agent_key: str, message_id: str) -> Any:
        return await self.invoke(
            "message",
            {
                "action": "mark_read",
                "agent_name": agent_name,
                "agent_key": agent_key,
                "message_id": message_id,
            },
        )

    # -- plans -------------------------------------------------------------

    async def update_plan(
        self,
        agent_name: str,
        agent_key: str,
        goal: str,
        current_task: str,
    ) -> Any:
        return await self.invoke(
            "plan",
            {
                "action": "update",
                "agent_name": agent_name,
                "agent_key": agent_key,
                "goal": goal,
                "current_task": current_task,
            },
        )

    # -- admin -------------------------------------------------------------

    async def delete_lock(self, file_path: str) -> Any:
        return await self.invoke("admin", {"action": "delete_lock", "file_path": file_path})

    async def delete_agent(self, agent_name: str) -> Any:
        return await self.invoke("admin", {"action": "delete_agent", "agent_name": agent_name})

    # -- subscriptions -----------------------------------------------------

    async def subscribe(self, subscriber_id: str, events: list[str]) -> Any:
        return await self.invoke(
            "subscribe",
            {"action": "subscribe", "subscriber_id": subscriber_id, "events": events},
        )

    async def unsubscribe(self, subscriber_id: str) -> Any:
        return await self.invoke(
            "subscribe",
            {"action": "unsubscribe", "subscriber_id": subscriber_id},
        )
