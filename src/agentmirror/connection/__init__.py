"""Connection lifecycle: single-flight connect, polling, teardown."""

from agentmirror.connection.controller import (
    ConnectionController,
    ConnectionState,
    TransportFactory,
)
from agentmirror.connection.poller import DEFAULT_POLL_INTERVAL, StatusPoller

__all__ = [
    "DEFAULT_POLL_INTERVAL",
    "ConnectionController",
    "ConnectionState",
    "StatusPoller",
    "TransportFactory",
]
