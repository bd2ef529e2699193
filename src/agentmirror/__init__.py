"""agentmirror: live local mirror of a multi-agent coordination server."""

__version__ = "0.1.0"

# Public API
from agentmirror.config import Config, get_config, load_config
from agentmirror.connection import ConnectionController, ConnectionState, StatusPoller
from agentmirror.errors import (
    AgentMirrorError,
    ClientStopped,
    HandshakeError,
    NotConnected,
    ParseError,
    RemoteError,
    ToolError,
    TransportNotStarted,
)
from agentmirror.protocol import NotificationEvent, RemoteOperations, StatusResponse
from agentmirror.state import (
    Agent,
    AgentDetail,
    FileLock,
    Message,
    Plan,
    StateStore,
    StateTables,
    StateViews,
)
from agentmirror.transport import StdioTransport, TransportHandlers

__all__ = [
    "__version__",
    # Connection
    "ConnectionController",
    "ConnectionState",
    "StatusPoller",
    # Transport
    "StdioTransport",
    "TransportHandlers",
    # State
    "Agent",
    "AgentDetail",
    "FileLock",
    "Message",
    "Plan",
    "StateStore",
    "StateTables",
    "StateViews",
    # Protocol
    "NotificationEvent",
    "RemoteOperations",
    "StatusResponse",
    # Config
    "Config",
    "get_config",
    "load_config",
    # Errors
    "AgentMirrorError",
    "ClientStopped",
    "HandshakeError",
    "NotConnected",
    "ParseError",
    "RemoteError",
    "ToolError",
    "TransportNotStarted",
]
