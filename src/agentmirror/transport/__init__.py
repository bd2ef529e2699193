"""Transport layer: newline-delimited JSON-RPC over a server subprocess."""

from agentmirror.transport.framing import (
    JsonRpcMessage,
    LineBuffer,
    decode_line,
    encode_message,
)
from agentmirror.transport.stdio import StdioTransport, TransportHandlers

__all__ = [
    "JsonRpcMessage",
    "LineBuffer",
    "StdioTransport",
    "TransportHandlers",
    "decode_line",
    "encode_message",
]
