"""Wire types and named remote operations of the coordination server."""

from agentmirror.protocol.operations import (
    RemoteOperations,
    ToolCaller,
    parse_tool_payload,
)
from agentmirror.protocol.types import (
    BROADCAST,
    AgentRecord,
    LockRecord,
    MessageRecord,
    NotificationEvent,
    PlanRecord,
    Registration,
    StatusResponse,
    ToolCallResult,
)

__all__ = [
    "BROADCAST",
    "AgentRecord",
    "LockRecord",
    "MessageRecord",
    "NotificationEvent",
    "PlanRecord",
    "Registration",
    "RemoteOperations",
    "StatusResponse",
    "ToolCallResult",
    "ToolCaller",
    "parse_tool_payload",
]
