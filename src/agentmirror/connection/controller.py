"""Connection lifecycle for one coordination server.

ConnectionController owns the transport, the state store and its views:

    DISCONNECTED --connect()--> CONNECTING --handshake, subscribe, refresh--> CONNECTED
    CONNECTING --any step fails--> DISCONNECTED (error re-raised to callers)
    CONNECTED --server exits or disconnect()--> DISCONNECTED

Concurrent connect() calls share one attempt. disconnect() bumps a session
generation; work started under an older generation (a connect attempt, a
poll tick, a notification from the old server) is dropped instead of
touching the store.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from functools import partial
from typing import Any

from agentmirror.config.schema import Config
from agentmirror.connection.poller import StatusPoller
from agentmirror.errors import ClientStopped, NotConnected
from agentmirror.protocol.operations import RemoteOperations
from agentmirror.protocol.types import NotificationEvent
from agentmirror.state.store import StateStore
from agentmirror.state.views import StateViews
from agentmirror.transport.stdio import StdioTransport, TransportHandlers

_log = logging.getLogger("agentmirror.connection")
_server_log = logging.getLogger("agentmirror.server")

TransportFactory = Callable[[TransportHandlers], StdioTransport]


class ConnectionState(Enum):
    """State of the server connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


StatusListener = Callable[[ConnectionState], None]


class ConnectionController:
    """Connects to the server and keeps the state store in sync with it."""

    def __init__(
        self,
        config: Config | None = None,
        *,
        store: StateStore | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self.config = config or Config()
        self.store = store or StateStore()
        self.views = StateViews(self.store)
        self.operations = RemoteOperations(self.call_tool)

        self._transport_factory = transport_factory or self._default_transport
        self._transport: StdioTransport | None = None
        self._connect_task: asyncio.Task[None] | None = None
        self._poller: StatusPoller | None = None
        self._state = ConnectionState.DISCONNECTED
        self._generation = 0
        self._status_listeners: list[StatusListener] = []

    def _default_transport(self, handlers: TransportHandlers) -> StdioTransport:
        server = self.config.server
        return StdioTransport(
            server.resolve_command(),
            handlers=handlers,
            env=server.env,
            client=self.config.client,
            shutdown_timeout=server.shutdown_timeout,
        )

    # -- state -------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return (
            self._state is ConnectionState.CONNECTED
            and self._transport is not None
            and self._transport.is_connected
        )

    @property
    def transport(self) -> StdioTransport | None:
        return self._transport

    @property
    def poller(self) -> StatusPoller | None:
        return self._poller

    def add_status_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Call ``listener`` with the new state on every transition.

        Returns:
            A function that removes the listener.
        """
        self._status_listeners.append(listener)

        def remove() -> None:
            if listener in self._status_listeners:
                self._status_listeners.remove(listener)

        return remove

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        self._state = state
        _log.info("Connection status: %s", state.value)
        for listener in list(self._status_listeners):
            try:
                listener(state)
            except Exception:
                _log.exception("Status listener failed")

    # -- connect -----------------------------------------------------------

    async def connect(self) -> None:
        """Connect, or join the attempt already in progress.

        Every caller sharing an attempt sees the same outcome. Calling this
        while connected does nothing.
        """
        if self._connect_task is not None:
            _log.debug("Connect already in progress, waiting")
            await asyncio.shield(self._connect_task)
            return

        if self.is_connected:
            return

        self._set_state(ConnectionState.CONNECTING)
        task = asyncio.create_task(self._do_connect(self._generation))
        task.add_done_callback(self._connect_finished)
        self._connect_task = task
        await asyncio.shield(task)

    def _connect_finished(self, task: asyncio.Task[None]) -> None:
        if self._connect_task is task:
            self._connect_task = None
        if not task.cancelled():
            # Mark the outcome retrieved; awaiting callers still receive it.
            task.exception()

    def _check_current(self, generation: int) -> None:
        if generation != self._generation:
            raise ClientStopped("Connection attempt aborted by disconnect")

    async def _do_connect(self, generation: int) -> None:
        previous = self._transport
        if previous is not None:
            # Left behind by a server that exited on its own.
            self._transport = None
            await previous.stop()

        self._check_current(generation)
        transport = self._transport_factory(self._make_handlers(generation))
        self._transport = transport

        sync = self.config.sync
        try:
            await transport.start()
            self._check_current(generation)
            await self.operations.subscribe(sync.subscriber_id, sync.events)
            self._check_current(generation)
            await self._refresh(generation)
            self._check_current(generation)
            if not transport.is_connected:
                raise ClientStopped("Server process exited")
        except Exception as e:
            _log.error("Connection failed: %s", e)
            if self._transport is transport:
                self._transport = None
            await transport.stop()
            if generation == self._generation:
                self._set_state(ConnectionState.DISCONNECTED)
            raise

        self._set_state(ConnectionState.CONNECTED)
        self._start_poller(generation)

    def _make_handlers(self, generation: int) -> TransportHandlers:
        return TransportHandlers(
            on_notification=partial(self._on_notification, generation),
            on_log=self._on_server_log,
            on_error=self._on_transport_error,
            on_close=partial(self._on_transport_closed, generation),
        )

    # -- transport events --------------------------------------------------

    def _on_notification(self, generation: int, event: NotificationEvent) -> None:
        if generation != self._generation:
            return
        _log.debug("Notification received: %s", event.event)
        self.store.apply_event(event)

    def _on_server_log(self, text: str) -> None:
        _server_log.info("%s", text)

    def _on_transport_error(self, error: Exception) -> None:
        _log.warning("Transport error: %s", error)

    def _on_transport_closed(self, generation: int) -> None:
        if generation != self._generation:
            return
        _log.warning("Server connection closed")
        self._stop_poller()
        self._set_state(ConnectionState.DISCONNECTED)

    # -- polling -----------------------------------------------------------

    def _start_poller(self, generation: int) -> None:
        self._stop_poller()
        self._poller = StatusPoller(
            partial(self._refresh, generation),
            interval=self.config.sync.poll_interval,
            should_poll=lambda: self.is_connected,
        )
        self._poller.start()

    def _stop_poller(self) -> None:
        if self._poller is not None:
            self._poller.stop()
            self._poller = None

    # -- disconnect --------------------------------------------------------

    async def disconnect(self) -> None:
        """Tear down the connection and clear the store. Idempotent.

        Order: abandon any connect attempt, stop polling, best-effort
        unsubscribe, stop the transport, reset the store.
        """
        _log.debug("disconnect() called")
        self._generation += 1
        self._connect_task = None
        self._stop_poller()

        transport, self._transport = self._transport, None
        if transport is not None:
            if transport.is_connected:
                await self._unsubscribe(transport)
            await transport.stop()

        self.store.reset()
        self._set_state(ConnectionState.DISCONNECTED)

    async def _unsubscribe(self, transport: StdioTransport) -> None:
        operations = RemoteOperations(transport.call_tool)
        try:
            await asyncio.wait_for(
                operations.unsubscribe(self.config.sync.subscriber_id),
                timeout=self.config.server.shutdown_timeout,
            )
        except Exception as e:
            _log.debug("Unsubscribe failed during disconnect (ignored): %s", e)

    async def __aenter__(self) -> ConnectionController:
        await self.connect()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.disconnect()

    # -- sync --------------------------------------------------------------

    async def refresh_status(self) -> None:
        """Replace every table from a fresh ``status`` snapshot.

        Raises:
            NotConnected: If there is no live transport.
        """
        await self._refresh(self._generation)

    async def _refresh(self, generation: int) -> None:
        status = await self.operations.status()
        if generation != self._generation:
            _log.debug("Discarding refresh from a previous session")
            return
        self.store.apply_snapshot(status)

    # -- remote operations -------------------------------------------------

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> str:
        """Invoke a server tool over the live transport.

        Raises:
            NotConnected: If there is no live transport.
        """
        transport = self._transport
        if transport is None or not transport.is_connected:
            raise NotConnected()
        return await transport.call_tool(name, arguments)

    async def force_release_lock(self, file_path: str) -> None:
        """Delete any lock on ``file_path`` regardless of owner or expiry."""
        generation = self._generation
        await self.operations.delete_lock(file_path)
        if generation == self._generation:
            self.store.remove_lock(file_path)
        _log.info("Force released lock: %s", file_path)

    async def delete_agent(self, agent_name: str) -> None:
        """Remove an agent along with its plan and locks."""
        generation = self._generation
        await self.operations.delete_agent(agent_name)
        if generation == self._generation:
            self.store.remove_agent(agent_name)
        _log.info("Deleted agent: %s", agent_name)

    async def send_message(self, from_agent: str, to_agent: str, content: str) -> None:
        """Register ``from_agent`` and send ``content`` to ``to_agent`` ("*" for all).

        The store is not touched; the message arrives through the server's
        push or the next refresh.
        """
        registration = await self.operations.register(from_agent)
        await self.operations.send_message(
            from_agent, registration.agent_key, to_agent, content
        )
        _log.info("Message sent from %s to %s", from_agent, to_agent)
