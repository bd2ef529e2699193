"""Local state mirror: immutable tables, the single-writer store, derived views."""

from agentmirror.state.models import Agent, AgentDetail, FileLock, Message, Plan
from agentmirror.state.store import TABLES, StateStore, StateTables
from agentmirror.state.views import VIEW_DEPENDENCIES, StateViews, now_ms

__all__ = [
    "TABLES",
    "VIEW_DEPENDENCIES",
    "Agent",
    "AgentDetail",
    "FileLock",
    "Message",
    "Plan",
    "StateStore",
    "StateTables",
    "StateViews",
    "now_ms",
]
