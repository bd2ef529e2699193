"""Command-line interface for agentmirror."""

from __future__ import annotations

import argparse
import asyncio
import shlex
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from agentmirror import __version__
from agentmirror.config import Config, load_config
from agentmirror.connection import ConnectionController, ConnectionState
from agentmirror.errors import AgentMirrorError
from agentmirror.logging import get_logger, setup_logging
from agentmirror.state import StateViews

console = Console()
err_console = Console(stderr=True)

log = get_logger("cli")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="agentmirror",
        description="Live mirror of a multi-agent coordination server",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=None,
        help="Increase verbosity (can be repeated, up to 4)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Extra config file layered over system/user/project config",
    )
    parser.add_argument(
        "--project",
        help="Project root for .agentmirror/config.yaml (default: cwd)",
    )
    parser.add_argument(
        "--server-path",
        help="Server script launched with node instead of 'npx too-many-cooks'",
    )
    parser.add_argument(
        "--command",
        help="Full server command line, e.g. \"node build/server.js\"",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        help="Seconds between full refreshes",
    )

    subparsers = parser.add_subparsers(dest="mode", help="Operation")

    subparsers.add_parser("status", help="Print a one-shot snapshot")
    subparsers.add_parser("watch", help="Print a summary whenever state changes")

    send_parser = subparsers.add_parser("send", help="Send a message as an agent")
    send_parser.add_argument("from_agent", help="Sender agent name (registered if new)")
    send_parser.add_argument("to_agent", help="Recipient agent name, or '*' for all")
    send_parser.add_argument("content", help="Message text")

    release_parser = subparsers.add_parser("release-lock", help="Force release a file lock")
    release_parser.add_argument("file_path", help="Locked file path")

    delete_parser = subparsers.add_parser(
        "delete-agent", help="Remove an agent with its plan and locks"
    )
    delete_parser.add_argument("agent_name", help="Agent to remove")

    return parser


def build_config(parsed: argparse.Namespace) -> Config:
    """Load layered config and apply command-line overrides."""
    config = load_config(
        project_root=parsed.project or str(Path.cwd()),
        config_file=parsed.config,
    )
    if parsed.server_path:
        config.server.server_path = parsed.server_path
    if parsed.command:
        config.server.command = shlex.split(parsed.command)
    if parsed.poll_interval is not None:
        config.sync.poll_interval = parsed.poll_interval
    if parsed.verbose is not None:
        config.logging.verbose = min(parsed.verbose, 4)
    return config


def summary_line(views: StateViews) -> str:
    """One-line digest of the mirrored state."""
    return (
        f"agents={views.agent_count} "
        f"locks={len(views.active_locks())} active/{len(views.expired_locks())} expired "
        f"messages={views.message_count} ({views.unread_message_count} unread)"
    )


def render_snapshot(views: StateViews) -> Table:
    """Per-agent table of locks, plan and message traffic."""
    table = Table(title="Agents")
    table.add_column("Agent")
    table.add_column("Locks")
    table.add_column("Plan")
    table.add_column("Sent", justify="right")
    table.add_column("Received", justify="right")

    for detail in views.agent_details():
        plan = detail.plan
        table.add_row(
            escape(detail.agent_name),
            escape("\n".join(lock.file_path for lock in detail.locks)) or "-",
            escape(f"{plan.goal}: {plan.current_task}") if plan else "-",
            str(len(detail.sent_messages)),
            str(len(detail.received_messages)),
        )
    return table


async def run_status(controller: ConnectionController) -> int:
    async with controller:
        console.print(summary_line(controller.views))
        console.print(render_snapshot(controller.views))
    return 0


async def run_watch(controller: ConnectionController) -> int:
    closed = asyncio.Event()

    def on_status(state: ConnectionState) -> None:
        err_console.print(f"[dim]connection: {state.value}[/dim]")
        if state is ConnectionState.DISCONNECTED:
            closed.set()

    def on_change(views: StateViews, changed: frozenset[str]) -> None:
        console.print(escape(f"[{', '.join(sorted(changed))}] {summary_line(views)}"))

    remove_status = controller.add_status_listener(on_status)
    unsubscribe = controller.views.subscribe(on_change)
    try:
        await controller.connect()
        console.print(summary_line(controller.views))
        await closed.wait()
    finally:
        unsubscribe()
        remove_status()
        await controller.disconnect()

    err_console.print("[yellow]Server connection closed[/yellow]")
    return 1


async def run_send(controller: ConnectionController, from_agent: str, to_agent: str, content: str) -> int:
    async with controller:
        await controller.send_message(from_agent, to_agent, content)
    preview = content if len(content) <= 50 else content[:50] + "..."
    console.print(escape(f'Message sent to {to_agent}: "{preview}"'))
    return 0


async def run_release_lock(controller: ConnectionController, file_path: str) -> int:
    async with controller:
        await controller.force_release_lock(file_path)
    console.print(escape(f"Lock released: {file_path}"))
    return 0


async def run_delete_agent(controller: ConnectionController, agent_name: str) -> int:
    async with controller:
        await controller.delete_agent(agent_name)
    console.print(escape(f"Agent removed: {agent_name}"))
    return 0


def run_cli(args: Sequence[str]) -> int:
    """Run the CLI with the given arguments."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.mode is None:
        parser.print_help()
        return 1

    config = build_config(parsed)
    setup_logging(config.logging)
    controller = ConnectionController(config)

    if parsed.mode == "status":
        coro = run_status(controller)
    elif parsed.mode == "watch":
        coro = run_watch(controller)
    elif parsed.mode == "send":
        coro = run_send(controller, parsed.from_agent, parsed.to_agent, parsed.content)
    elif parsed.mode == "release-lock":
        coro = run_release_lock(controller, parsed.file_path)
    elif parsed.mode == "delete-agent":
        coro = run_delete_agent(controller, parsed.agent_name)
    else:
        parser.print_help()
        return 1

    try:
        return asyncio.run(coro)
    except AgentMirrorError as e:
        log.debug("Command failed", exc_info=True)
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1
    except KeyboardInterrupt:
        return 130
