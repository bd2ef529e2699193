"""Derived, read-only views over the state store.

Views are pull-based: each memoized view names the tables it reads in
VIEW_DEPENDENCIES, and its cached value is reused while the version counters
of exactly those tables are unchanged. A commit to an unrelated table never
invalidates it.

Lock activity depends on the wall clock, so active_locks() and
expired_locks() are recomputed on every call and never cached.

Consumers that need push instead of pull subscribe() and are called
synchronously after every store commit that changed something.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from collections.abc import Callable
from typing import Any

from agentmirror.state.models import AgentDetail, FileLock
from agentmirror.state.store import StateStore, StateTables

_log = logging.getLogger("agentmirror.state.views")

# Returns "now" in milliseconds since the epoch
Clock = Callable[[], float]

# (views, names of the tables that changed)
ViewObserver = Callable[["StateViews", frozenset[str]], None]

VIEW_DEPENDENCIES: dict[str, tuple[str, ...]] = {
    "agent_count": ("agents",),
    "lock_count": ("locks",),
    "message_count": ("messages",),
    "unread_message_count": ("messages",),
    "agent_details": ("agents", "locks", "messages", "plans"),
}


def now_ms() -> int:
    return int(time.time() * 1000)


def build_agent_details(tables: StateTables) -> tuple[AgentDetail, ...]:
    """Join locks, plan and messages onto every agent by name."""
    details = []
    for agent in tables.agents:
        name = agent.agent_name
        details.append(
            AgentDetail(
                agent=agent,
                locks=tuple(lock for lock in tables.locks if lock.agent_name == name),
                plan=next((p for p in tables.plans if p.agent_name == name), None),
                sent_messages=tuple(m for m in tables.messages if m.from_agent == name),
                received_messages=tuple(m for m in tables.messages if m.is_for(name)),
            )
        )
    return tuple(details)


class StateViews:
    """Memoized aggregates of a StateStore."""

    def __init__(self, store: StateStore, clock: Clock | None = None) -> None:
        self._store = store
        self._clock = clock or now_ms
        self._memo: dict[str, tuple[tuple[int, ...], Any]] = {}
        self._observers: list[ViewObserver] = []
        self.recompute_counts: Counter[str] = Counter()
        self._detach = store.add_listener(self._on_commit)

    @property
    def store(self) -> StateStore:
        return self._store

    def _memoized(self, name: str, compute: Callable[[StateTables], Any]) -> Any:
        key = self._store.versions(*VIEW_DEPENDENCIES[name])
        cached = self._memo.get(name)
        if cached is not None and cached[0] == key:
            return cached[1]

        value = compute(self._store.tables)
        self._memo[name] = (key, value)
        self.recompute_counts[name] += 1
        return value

    # -- counts ------------------------------------------------------------

    @property
    def agent_count(self) -> int:
        return self._memoized("agent_count", lambda t: len(t.agents))

    @property
    def lock_count(self) -> int:
        return self._memoized("lock_count", lambda t: len(t.locks))

    @property
    def message_count(self) -> int:
        return self._memoized("message_count", lambda t: len(t.messages))

    @property
    def unread_message_count(self) -> int:
        return self._memoized(
            "unread_message_count",
            lambda t: sum(1 for m in t.messages if m.is_unread),
        )

    # -- clock-dependent ---------------------------------------------------

    def active_locks(self) -> tuple[FileLock, ...]:
        now = self._clock()
        return tuple(lock for lock in self._store.locks if lock.is_active(now))

    def expired_locks(self) -> tuple[FileLock, ...]:
        now = self._clock()
        return tuple(lock for lock in self._store.locks if not lock.is_active(now))

    # -- per-agent ---------------------------------------------------------

    def agent_details(self) -> tuple[AgentDetail, ...]:
        return self._memoized("agent_details", build_agent_details)

    def agent_detail(self, agent_name: str) -> AgentDetail | None:
        return next((d for d in self.agent_details() if d.agent_name == agent_name), None)

    # -- observers ---------------------------------------------------------

    def subscribe(self, observer: ViewObserver) -> Callable[[], None]:
        """Call ``observer`` after each store commit that changed a table.

        Returns:
            A function that removes the observer.
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _on_commit(self, tables: StateTables, changed: frozenset[str]) -> None:
        for observer in list(self._observers):
            try:
                observer(self, changed)
            except Exception:
                _log.exception("View observer failed")

    def close(self) -> None:
        """Detach from the store and drop observers."""
        self._detach()
        self._observers.clear()
        self._memo.clear()
