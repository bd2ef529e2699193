"""Stdio JSON-RPC transport to the coordination server subprocess.

Owns the server process, correlates responses to requests by numeric id,
and dispatches server pushes to a fixed set of typed handler slots.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from agentmirror.config.schema import ClientConfig
from agentmirror.errors import (
    AgentMirrorError,
    ClientStopped,
    HandshakeError,
    ParseError,
    RemoteError,
    ToolError,
    TransportNotStarted,
)
from agentmirror.logging import TRACE
from agentmirror.protocol.types import (
    INITIALIZED_METHOD,
    NOTIFICATION_METHOD,
    NotificationEvent,
    ToolCallResult,
)
from agentmirror.transport.framing import (
    JsonRpcMessage,
    LineBuffer,
    decode_line,
    encode_message,
)

_log = logging.getLogger("agentmirror.transport")

READ_CHUNK_SIZE = 64 * 1024


@dataclass
class TransportHandlers:
    """Handler slots for everything the server sends besides responses.

    Each slot takes at most one callable. Handlers run synchronously on the
    reader task; an exception raised by a handler is logged and dropped.
    """

    on_notification: Callable[[NotificationEvent], None] | None = None
    on_log: Callable[[str], None] | None = None
    on_error: Callable[[Exception], None] | None = None
    on_close: Callable[[], None] | None = None


def _expand_env_vars(env: dict[str, str]) -> dict[str, str]:
    """Expand ``${VAR}`` references in env values from the current environment."""
    result = {}
    for key, value in env.items():
        if value.startswith("${") and value.endswith("}"):
            result[key] = os.environ.get(value[2:-1], "")
        else:
            result[key] = value
    return result


class StdioTransport:
    """Newline-delimited JSON-RPC over a child process's stdin/stdout.

    Lifecycle: ``start()`` spawns and handshakes, ``call()``/``notify()``
    exchange messages, ``stop()`` settles every pending request with
    ClientStopped and terminates the child. Ids start at 1 and are never
    reused for the lifetime of one instance.
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        handlers: TransportHandlers | None = None,
        env: dict[str, str] | None = None,
        client: ClientConfig | None = None,
        shutdown_timeout: float = 3.0,
    ) -> None:
        if not command:
            raise ValueError("Server command must not be empty")
        self.command = list(command)
        self.handlers = handlers or TransportHandlers()
        self._env = env or {}
        self._client = client or ClientConfig()
        self._shutdown_timeout = shutdown_timeout

        self._process: asyncio.subprocess.Process | None = None
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._next_id = 1
        self._buffer = LineBuffer()
        self._stderr_buffer = LineBuffer()
        self._tasks: list[asyncio.Task[None]] = []
        self._write_lock = asyncio.Lock()
        self._started = False
        self._initialized = False
        self._closed = False

    # -- state -------------------------------------------------------------

    @property
    def started(self) -> bool:
        return self._started

    @property
    def is_connected(self) -> bool:
        """True once the handshake completed and the server output is open."""
        return self._started and self._initialized and not self._closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        """Spawn the server and complete the initialize handshake.

        Raises:
            HandshakeError: If the server cannot be spawned, exits, or
                rejects ``initialize``. The transport is stopped first.
        """
        if self._started:
            return

        env = dict(os.environ)
        env.update(_expand_env_vars(self._env))

        _log.debug("Spawning server: %s", " ".join(self.command))
        try:
            self._process = await asyncio.create_subprocess_exec(
                self.command[0],
                *self.command[1:],
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as e:
            raise HandshakeError(f"Failed to start server {self.command[0]!r}: {e}") from e

        self._started = True
        self._closed = False
        self._tasks = [
            asyncio.create_task(self._read_stdout()),
            asyncio.create_task(self._read_stderr()),
        ]

        try:
            await self.call(
                "initialize",
                {
                    "protocolVersion": self._client.protocol_version,
                    "capabilities": {},
                    "clientInfo": {
                        "name": self._client.name,
                        "version": self._client.version,
                    },
                },
            )
            await self.notify(INITIALIZED_METHOD, {})
        except (AgentMirrorError, OSError) as e:
            await self.stop()
            raise HandshakeError(f"Handshake failed: {e}") from e

        self._initialized = True
        _log.info("Server started (pid %s)", self.pid)

    async def stop(self) -> None:
        """Settle pending requests, terminate the server. Idempotent."""
        if not self._started and self._process is None:
            return

        self._started = False
        self._initialized = False
        self._reject_pending("Client stopped")

        tasks, self._tasks = self._tasks, []
        current = asyncio.current_task()
        for task in tasks:
            if task is not current:
                task.cancel()

        process, self._process = self._process, None
        if process is not None:
            await self._terminate(process)

        others = [task for task in tasks if task is not current]
        results = await asyncio.gather(*others, return_exceptions=True)
        for task, result in zip(others, results):
            if isinstance(result, Exception):
                _log.warning("Reader task %s failed: %r", task.get_name(), result)

        self._buffer.clear()
        self._stderr_buffer.clear()
        _log.debug("Transport stopped")

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """Close stdin, then terminate and finally kill the process."""
        if process.stdin is not None:
            with contextlib.suppress(OSError):
                process.stdin.close()

        if process.returncode is not None:
            return

        with contextlib.suppress(ProcessLookupError):
            process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=self._shutdown_timeout)
        except asyncio.TimeoutError:
            _log.warning("Server did not exit after terminate, killing pid %s", process.pid)
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()

    # -- outbound ----------------------------------------------------------

    async def call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Send a request and wait for its response.

        Raises:
            TransportNotStarted: If called before start() or after stop().
            RemoteError: If the response carries an ``error`` member.
            ClientStopped: If the transport shuts down first.
        """
        if not self._started:
            raise TransportNotStarted()
        if self._closed:
            raise ClientStopped("Server process exited")

        request_id = self._next_id
        self._next_id += 1
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            await self._send(JsonRpcMessage(id=request_id, method=method, params=params or {}))
        except OSError as e:
            self._pending.pop(request_id, None)
            if not future.done():
                future.cancel()
            raise ClientStopped(f"Failed to write request: {e}") from e

        try:
            return await future
        finally:
            self._pending.pop(request_id, None)

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Send a notification; nothing is correlated or awaited besides the write."""
        if not self._started:
            raise TransportNotStarted()
        await self._send(JsonRpcMessage(method=method, params=params or {}))

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> str:
        """Invoke a server tool and return the text of its first content block.

        Raises:
            ToolError: If the envelope is flagged ``isError``.
        """
        raw = await self.call("tools/call", {"name": name, "arguments": arguments})
        result = ToolCallResult.model_validate(raw or {})
        text = result.first_text()
        if result.is_error:
            raise ToolError(text or "Unknown error")
        return text if text is not None else "{}"

    async def _send(self, msg: JsonRpcMessage) -> None:
        process = self._process
        if process is None or process.stdin is None:
            raise TransportNotStarted()

        data = encode_message(msg)
        async with self._write_lock:
            process.stdin.write(data)
            await process.stdin.drain()
        _log.log(TRACE, ">> %s", data.rstrip())

    # -- inbound -----------------------------------------------------------

    def feed(self, chunk: bytes) -> None:
        """Process a chunk of raw server output.

        Each complete line is parsed on its own; a line that is not JSON is
        reported once on the error slot and the following lines still run.
        """
        for line in self._buffer.feed(chunk):
            _log.log(TRACE, "<< %s", line)
            try:
                msg = decode_line(line)
            except ParseError as e:
                _log.warning("Discarding unparseable server line: %s", e.reason)
                self._emit(self.handlers.on_error, e)
                continue
            if msg is not None:
                self._route(msg)

    def _route(self, msg: JsonRpcMessage) -> None:
        if isinstance(msg.id, (int, str)) and msg.id in self._pending:
            future = self._pending.pop(msg.id)  # type: ignore[arg-type]
            if future.done():
                return
            if msg.error is not None:
                code = msg.error.get("code")
                future.set_exception(
                    RemoteError(
                        str(msg.error.get("message", "Unknown error")),
                        code if isinstance(code, int) else None,
                    )
                )
            else:
                future.set_result(msg.result)
            return

        if msg.method == NOTIFICATION_METHOD:
            data = (msg.params or {}).get("data")
            if isinstance(data, dict) and data.get("event"):
                try:
                    event = NotificationEvent.model_validate(data)
                except ValidationError as e:
                    _log.warning("Malformed notification payload: %s", e)
                    return
                self._emit(self.handlers.on_notification, event)
                return

        _log.debug("Ignoring server message: %s", msg.to_dict())

    async def _read_stdout(self) -> None:
        process = self._process
        if process is None or process.stdout is None:
            return
        stdout = process.stdout

        try:
            while True:
                chunk = await stdout.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                self.feed(chunk)
        except Exception:
            _log.exception("Server output reader failed")

        self._handle_closed()

    async def _read_stderr(self) -> None:
        process = self._process
        if process is None or process.stderr is None:
            return
        stderr = process.stderr

        # Chunked like stdout; a line may be longer than the stream limit
        while True:
            chunk = await stderr.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            for line in self._stderr_buffer.feed(chunk):
                text = line.rstrip()
                if text:
                    self._emit(self.handlers.on_log, text)

        tail = self._stderr_buffer.pending.decode("utf-8", errors="replace").rstrip()
        self._stderr_buffer.clear()
        if tail:
            self._emit(self.handlers.on_log, tail)

    def _handle_closed(self) -> None:
        """Server output reached EOF without stop() being called."""
        if self._closed:
            return
        self._closed = True
        self._reject_pending("Server process exited")
        _log.info("Server closed its output stream")
        self._emit(self.handlers.on_close)

    def _reject_pending(self, reason: str) -> None:
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(ClientStopped(reason))

    def _emit(self, handler: Callable[..., None] | None, *args: Any) -> None:
        if handler is None:
            return
        try:
            handler(*args)
        except Exception:
            _log.exception("Transport handler %r failed", handler)
