"""Immutable rows of the local state mirror.

Rows are frozen so a table (a tuple of rows) can be shared between the store
and every derived view without copying. Changing a row means building a new
one and swapping in a new table.
"""

from __future__ import annotations

from dataclasses import dataclass

from agentmirror.protocol.types import (
    BROADCAST,
    AgentRecord,
    LockRecord,
    MessageRecord,
    PlanRecord,
    Timestamp,
)


@dataclass(frozen=True)
class Agent:
    """A registered agent, keyed by name."""

    agent_name: str
    registered_at: Timestamp
    last_active: Timestamp

    @classmethod
    def from_record(cls, record: AgentRecord) -> Agent:
        return cls(
            agent_name=record.agent_name,
            registered_at=record.registered_at,
            last_active=record.last_active,
        )


@dataclass(frozen=True)
class FileLock:
    """An advisory lock on one file path.

    Whether the lock is active depends on the clock, so it is never stored;
    ask ``is_active(now)``.
    """

    file_path: str
    agent_name: str
    acquired_at: Timestamp
    expires_at: Timestamp
    reason: str | None = None
    version: int = 1

    def is_active(self, now: Timestamp) -> bool:
        return self.expires_at > now

    @classmethod
    def from_record(cls, record: LockRecord) -> FileLock:
        return cls(
            file_path=record.file_path,
            agent_name=record.agent_name,
            acquired_at=record.acquired_at,
            expires_at=record.expires_at,
            reason=record.reason,
        )


@dataclass(frozen=True)
class Message:
    """A message between agents; ``to_agent == "*"`` is a broadcast."""

    id: str
    from_agent: str
    to_agent: str
    content: str
    created_at: Timestamp
    read_at: Timestamp | None = None

    @property
    def is_unread(self) -> bool:
        return self.read_at is None

    @property
    def is_broadcast(self) -> bool:
        return self.to_agent == BROADCAST

    def is_for(self, agent_name: str) -> bool:
        """True if ``agent_name`` receives this message."""
        return self.to_agent == agent_name or self.is_broadcast

    @classmethod
    def from_record(cls, record: MessageRecord) -> Message:
        return cls(
            id=record.id,
            from_agent=record.from_agent,
            to_agent=record.to_agent,
            content=record.content,
            created_at=record.created_at,
            read_at=record.read_at,
        )


@dataclass(frozen=True)
class Plan:
    """The single live plan of an agent."""

    agent_name: str
    goal: str
    current_task: str
    updated_at: Timestamp

    @classmethod
    def from_record(cls, record: PlanRecord) -> Plan:
        return cls(
            agent_name=record.agent_name,
            goal=record.goal,
            current_task=record.current_task,
            updated_at=record.updated_at,
        )


@dataclass(frozen=True)
class AgentDetail:
    """Everything that references one agent by name. Derived, never stored."""

    agent: Agent
    locks: tuple[FileLock, ...]
    plan: Plan | None
    sent_messages: tuple[Message, ...]
    received_messages: tuple[Message, ...]

    @property
    def agent_name(self) -> str:
        return self.agent.agent_name
