"""Wire types exchanged with the coordination server.

Inbound payloads are validated with pydantic so a malformed status response
fails loudly at the refresh boundary instead of corrupting the local mirror.
Field names follow the server's snake_case JSON; the tool-call envelope uses
camelCase aliases.
"""

from __future__ import annotations

from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field

# Milliseconds since the Unix epoch, as the server reports them
Timestamp = Union[int, float]

NOTIFICATION_METHOD = "notifications/message"
INITIALIZED_METHOD = "notifications/initialized"
BROADCAST = "*"


class WireModel(BaseModel):
    """Base model for wire types with populate_by_name enabled."""

    model_config = ConfigDict(populate_by_name=True)


class AgentRecord(WireModel):
    """Agent row from a status snapshot."""

    agent_name: str
    registered_at: Timestamp
    last_active: Timestamp


class LockRecord(WireModel):
    """Lock row from a status snapshot."""

    file_path: str
    agent_name: str
    acquired_at: Timestamp
    expires_at: Timestamp
    reason: str | None = None


class PlanRecord(WireModel):
    """Plan row from a status snapshot."""

    agent_name: str
    goal: str
    current_task: str
    updated_at: Timestamp


class MessageRecord(WireModel):
    """Message row from a status snapshot."""

    id: str
    from_agent: str
    to_agent: str
    content: str
    created_at: Timestamp
    read_at: Timestamp | None = None


class StatusResponse(WireModel):
    """Full snapshot returned by the ``status`` tool."""

    agents: list[AgentRecord] = Field(default_factory=list)
    locks: list[LockRecord] = Field(default_factory=list)
    plans: list[PlanRecord] = Field(default_factory=list)
    messages: list[MessageRecord] = Field(default_factory=list)


class Registration(WireModel):
    """Result of the ``register`` tool."""

    agent_name: str | None = None
    agent_key: str


class NotificationEvent(WireModel):
    """Server push carried in ``notifications/message`` params.data."""

    event: str
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: Timestamp = 0


class ToolContent(WireModel):
    """One content block of a tool-call result."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str = "text"
    text: str | None = None


class ToolCallResult(WireModel):
    """Envelope returned by ``tools/call``."""

    content: list[ToolContent] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")

    def first_text(self) -> str | None:
        """Text of the first content block, if any."""
        if not self.content:
            return None
        return self.content[0].text
