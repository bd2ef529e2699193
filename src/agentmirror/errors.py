"""Exception hierarchy for agentmirror.

Every error raised by the transport, the connection controller, and the
remote operation facade derives from AgentMirrorError so callers can catch
the whole family at one site.
"""

from __future__ import annotations


class AgentMirrorError(Exception):
    """Base class for all agentmirror errors."""


class TransportNotStarted(AgentMirrorError):
    """Raised when a request is issued before the transport was started."""

    def __init__(self, message: str = "Transport not started") -> None:
        super().__init__(message)


class HandshakeError(AgentMirrorError):
    """Raised when the server fails before the initialize exchange completes.

    Covers:
    - The server command cannot be spawned
    - The server process exits before answering ``initialize``
    - The server answers ``initialize`` with an error
    """


class RemoteError(AgentMirrorError):
    """A JSON-RPC response carried an ``error`` member.

    The remote message is passed through verbatim as the exception text.
    """

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class ToolError(AgentMirrorError):
    """A tool call reported failure.

    Raised when the tool-call envelope has ``isError: true`` or when the
    tool's JSON payload contains an ``error`` field.
    """


class ClientStopped(AgentMirrorError):
    """A pending request was settled because the transport shut down."""

    def __init__(self, message: str = "Client stopped") -> None:
        super().__init__(message)


class ParseError(AgentMirrorError):
    """An inbound line could not be decoded as JSON."""

    def __init__(self, line: str, reason: str) -> None:
        super().__init__(f"Failed to parse server message: {reason}")
        self.line = line
        self.reason = reason


class NotConnected(AgentMirrorError):
    """Raised when a controller operation needs a live connection."""

    def __init__(self, message: str = "Not connected") -> None:
        super().__init__(message)
