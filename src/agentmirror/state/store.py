"""Canonical local mirror of the coordination server's state.

The store holds four tables (agents, locks, messages, plans) as one immutable
StateTables value. Every mutation builds new table tuples and swaps the whole
StateTables reference in a single step, so a reader never sees a table set
that is half old and half new.

Writers:
- apply_snapshot(): full refresh from a ``status`` response. Authoritative;
  it replaces every table and so repairs drift from missed or reordered
  notifications.
- apply_event(): incremental patch from one server push.
- remove_lock() / remove_agent(): local echo of successful admin operations.
- reset(): back to the empty baseline on disconnect.

Only the connection controller calls these; everything else reads.

Each table carries a version counter that is bumped only when the table's
content actually changes. Derived views key their memoization on these
counters, and listeners are told which tables changed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from typing import Any

from agentmirror.logging import VERBOSE
from agentmirror.protocol.types import NotificationEvent, StatusResponse
from agentmirror.state.models import Agent, FileLock, Message, Plan

_log = logging.getLogger("agentmirror.state")

TABLES = ("agents", "locks", "messages", "plans")


@dataclass(frozen=True)
class StateTables:
    """One consistent set of the four tables."""

    agents: tuple[Agent, ...] = ()
    locks: tuple[FileLock, ...] = ()
    messages: tuple[Message, ...] = ()
    plans: tuple[Plan, ...] = ()


# (new tables, names of the tables that changed)
StoreListener = Callable[[StateTables, frozenset[str]], None]


class StateStore:
    """Single-writer store for the mirrored tables."""

    def __init__(self) -> None:
        self._tables = StateTables()
        self._versions: dict[str, int] = dict.fromkeys(TABLES, 0)
        self._listeners: list[StoreListener] = []

    # -- reads -------------------------------------------------------------

    @property
    def tables(self) -> StateTables:
        return self._tables

    @property
    def agents(self) -> tuple[Agent, ...]:
        return self._tables.agents

    @property
    def locks(self) -> tuple[FileLock, ...]:
        return self._tables.locks

    @property
    def messages(self) -> tuple[Message, ...]:
        return self._tables.messages

    @property
    def plans(self) -> tuple[Plan, ...]:
        return self._tables.plans

    def version(self, table: str) -> int:
        return self._versions[table]

    def versions(self, *tables: str) -> tuple[int, ...]:
        return tuple(self._versions[t] for t in tables)

    def is_empty(self) -> bool:
        return self._tables == StateTables()

    # -- listeners ---------------------------------------------------------

    def add_listener(self, listener: StoreListener) -> Callable[[], None]:
        """Call ``listener`` after every commit that changed a table.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # -- commit ------------------------------------------------------------

    def _commit(self, **changes: tuple[Any, ...]) -> frozenset[str]:
        """Swap in new tables; unchanged ones keep their version."""
        current = self._tables
        changed = {
            name: value for name, value in changes.items() if value != getattr(current, name)
        }
        if not changed:
            return frozenset()

        self._tables = replace(current, **changed)
        for name in changed:
            self._versions[name] += 1

        names = frozenset(changed)
        _log.log(VERBOSE, "Tables changed: %s", ", ".join(sorted(names)))
        for listener in list(self._listeners):
            try:
                listener(self._tables, names)
            except Exception:
                _log.exception("State listener failed")
        return names

    # -- full refresh ------------------------------------------------------

    def apply_snapshot(self, status: StatusResponse) -> frozenset[str]:
        """Replace all four tables from a status response."""
        return self._commit(
            agents=tuple(Agent.from_record(a) for a in status.agents),
            locks=tuple(FileLock.from_record(lock) for lock in status.locks),
            messages=tuple(Message.from_record(m) for m in status.messages),
            plans=tuple(Plan.from_record(p) for p in status.plans),
        )

    def reset(self) -> frozenset[str]:
        """Return to the empty baseline."""
        return self._commit(agents=(), locks=(), messages=(), plans=())

    # -- incremental patches -----------------------------------------------

    def apply_event(self, event: NotificationEvent) -> frozenset[str]:
        """Patch the tables from one server push.

        Unknown event kinds and payloads missing required fields are
        ignored; the next full refresh reconciles either way.
        """
        handler = _EVENT_HANDLERS.get(event.event)
        if handler is None:
            _log.debug("Ignoring unknown event %r", event.event)
            return frozenset()

        try:
            changes = handler(self._tables, event.payload, event.timestamp)
        except (KeyError, TypeError, ValueError) as e:
            _log.warning("Malformed %s payload (%s): %r", event.event, e, event.payload)
            return frozenset()
        return self._commit(**changes)

    # -- admin echoes ------------------------------------------------------

    def remove_lock(self, file_path: str) -> frozenset[str]:
        return self._commit(locks=_without_lock(self._tables.locks, file_path))

    def remove_agent(self, agent_name: str) -> frozenset[str]:
        """Drop an agent together with its plan and every lock it holds."""
        tables = self._tables
        return self._commit(
            agents=tuple(a for a in tables.agents if a.agent_name != agent_name),
            plans=tuple(p for p in tables.plans if p.agent_name != agent_name),
            locks=tuple(lock for lock in tables.locks if lock.agent_name != agent_name),
        )


def _without_lock(locks: tuple[FileLock, ...], file_path: str) -> tuple[FileLock, ...]:
    return tuple(lock for lock in locks if lock.file_path != file_path)


def _agent_registered(
    tables: StateTables, payload: Mapping[str, Any], timestamp: Any
) -> dict[str, tuple[Any, ...]]:
    # No dedup; a refresh collapses duplicates.
    agent = Agent(
        agent_name=str(payload["agent_name"]),
        registered_at=payload["registered_at"],
        last_active=timestamp,
    )
    return {"agents": (*tables.agents, agent)}


def _lock_acquired(
    tables: StateTables, payload: Mapping[str, Any], timestamp: Any
) -> dict[str, tuple[Any, ...]]:
    lock = FileLock(
        file_path=str(payload["file_path"]),
        agent_name=str(payload["agent_name"]),
        acquired_at=timestamp,
        expires_at=payload["expires_at"],
        reason=payload.get("reason"),
    )
    return {"locks": (*_without_lock(tables.locks, lock.file_path), lock)}


def _lock_released(
    tables: StateTables, payload: Mapping[str, Any], timestamp: Any
) -> dict[str, tuple[Any, ...]]:
    return {"locks": _without_lock(tables.locks, str(payload["file_path"]))}


def _lock_renewed(
    tables: StateTables, payload: Mapping[str, Any], timestamp: Any
) -> dict[str, tuple[Any, ...]]:
    file_path = str(payload["file_path"])
    expires_at = payload["expires_at"]
    return {
        "locks": tuple(
            replace(lock, expires_at=expires_at) if lock.file_path == file_path else lock
            for lock in tables.locks
        )
    }


def _message_sent(
    tables: StateTables, payload: Mapping[str, Any], timestamp: Any
) -> dict[str, tuple[Any, ...]]:
    message = Message(
        id=str(payload["message_id"]),
        from_agent=str(payload["from_agent"]),
        to_agent=str(payload["to_agent"]),
        content=str(payload["content"]),
        created_at=timestamp,
    )
    return {"messages": (*tables.messages, message)}


def _plan_updated(
    tables: StateTables, payload: Mapping[str, Any], timestamp: Any
) -> dict[str, tuple[Any, ...]]:
    plan = Plan(
        agent_name=str(payload["agent_name"]),
        goal=str(payload["goal"]),
        current_task=str(payload["current_task"]),
        updated_at=timestamp,
    )
    plans = tables.plans
    if any(p.agent_name == plan.agent_name for p in plans):
        plans = tuple(plan if p.agent_name == plan.agent_name else p for p in plans)
    else:
        plans = (*plans, plan)
    return {"plans": plans}


_EVENT_HANDLERS: dict[
    str,
    Callable[[StateTables, Mapping[str, Any], Any], dict[str, tuple[Any, ...]]],
] = {
    "agent_registered": _agent_registered,
    "lock_acquired": _lock_acquired,
    "lock_released": _lock_released,
    "lock_renewed": _lock_renewed,
    "message_sent": _message_sent,
    "plan_updated": _plan_updated,
}
