"""Newline-delimited JSON-RPC framing.

The coordination server speaks the MCP stdio convention: one compact JSON
object per line, UTF-8, terminated by ``\\n``. There are no Content-Length
headers. A line may arrive split across several reads, and several lines may
arrive in one read, so inbound bytes go through a LineBuffer first.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from agentmirror.errors import ParseError

CONTENT_ENCODING = "utf-8"
NEWLINE = b"\n"


@dataclass
class JsonRpcMessage:
    """Parsed JSON-RPC message."""

    jsonrpc: str = "2.0"
    id: int | str | None = None
    method: str | None = None
    params: dict[str, Any] | None = None
    result: Any = None
    error: dict[str, Any] | None = None

    def is_notification(self) -> bool:
        """Check if this is a notification (has method but no id)."""
        return self.method is not None and self.id is None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        d: dict[str, Any] = {"jsonrpc": self.jsonrpc}
        if self.id is not None:
            d["id"] = self.id
        if self.method is not None:
            d["method"] = self.method
        if self.params is not None:
            d["params"] = self.params
        if self.result is not None:
            d["result"] = self.result
        if self.error is not None:
            d["error"] = self.error
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JsonRpcMessage:
        """Parse from dictionary."""
        error = data.get("error")
        if error is not None and not isinstance(error, dict):
            error = {"message": str(error)}
        params = data.get("params")
        return cls(
            jsonrpc=data.get("jsonrpc", "2.0"),
            id=data.get("id"),
            method=data.get("method"),
            params=params if isinstance(params, dict) else None,
            result=data.get("result"),
            error=error,
        )


def encode_message(msg: JsonRpcMessage) -> bytes:
    """Serialize one message as a newline-terminated frame."""
    body = json.dumps(msg.to_dict(), separators=(",", ":"))
    return body.encode(CONTENT_ENCODING) + NEWLINE


def decode_line(line: str) -> JsonRpcMessage | None:
    """Parse one frame.

    Returns None for valid JSON that is not an object; such lines carry no
    JSON-RPC meaning and are dropped by the caller.

    Raises:
        ParseError: If the line is not valid JSON.
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise ParseError(line, str(e)) from e

    if not isinstance(data, dict):
        return None
    return JsonRpcMessage.from_dict(data)


class LineBuffer:
    """Reassembles newline-terminated lines from arbitrary byte chunks."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def feed(self, chunk: bytes) -> list[str]:
        """Append ``chunk`` and return every complete, non-empty line.

        A trailing carriage return on each line is stripped. An incomplete
        tail stays buffered until the next feed.
        """
        self._buffer.extend(chunk)
        lines: list[str] = []

        while True:
            index = self._buffer.find(NEWLINE)
            if index == -1:
                break
            raw = bytes(self._buffer[:index])
            del self._buffer[: index + 1]

            if raw.endswith(b"\r"):
                raw = raw[:-1]
            if not raw:
                continue
            lines.append(raw.decode(CONTENT_ENCODING, errors="replace"))

        return lines

    @property
    def pending(self) -> bytes:
        """Bytes received after the last newline."""
        return bytes(self._buffer)

    def clear(self) -> None:
        self._buffer.clear()
