"""Tests for derived views and their memoization."""

from __future__ import annotations

import pytest

from agentmirror.state.store import StateStore
from agentmirror.state.views import VIEW_DEPENDENCIES, StateViews, build_agent_details
from tests.utils import agent, event, lock, make_status, message, plan


class FakeClock:
    """Settable millisecond clock."""

    def __init__(self, now: float = 5000) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def store() -> StateStore:
    s = StateStore()
    s.apply_snapshot(
        make_status(
            agents=[agent("A"), agent("B")],
            locks=[lock("/x", "A", expires_at=10_000), lock("/old", "B", expires_at=1_000)],
            plans=[plan("A")],
            messages=[
                message("m1", "A", "B"),
                message("m2", "B", "A", read_at=3000),
                message("m3", "B", "*"),
            ],
        )
    )
    return s


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def views(store: StateStore, clock: FakeClock) -> StateViews:
    v = StateViews(store, clock=clock)
    yield v
    v.close()


class TestCounts:
    def test_counts(self, views: StateViews) -> None:
        assert views.agent_count == 2
        assert views.lock_count == 2
        assert views.message_count == 3
        assert views.unread_message_count == 2

    def test_counts_follow_events(self, store: StateStore, views: StateViews) -> None:
        store.apply_event(
            event("message_sent", {"message_id": "m4", "from_agent": "A", "to_agent": "*", "content": "x"})
        )
        assert views.message_count == 4
        assert views.unread_message_count == 3

    def test_empty_store(self) -> None:
        v = StateViews(StateStore())
        assert (v.agent_count, v.lock_count, v.message_count, v.unread_message_count) == (0, 0, 0, 0)
        assert v.agent_details() == ()


class TestMemoization:
    """Views recompute only when a table they read changed."""

    def test_repeated_reads_cached(self, views: StateViews) -> None:
        for _ in range(3):
            assert views.agent_count == 2
        assert views.recompute_counts["agent_count"] == 1

    def test_unrelated_table_change_keeps_cache(self, store: StateStore, views: StateViews) -> None:
        """A message push does not invalidate the agent count."""
        views.agent_count
        views.message_count

        store.apply_event(
            event("message_sent", {"message_id": "m4", "from_agent": "A", "to_agent": "B", "content": "x"})
        )
        views.agent_count
        views.message_count

        assert views.recompute_counts["agent_count"] == 1
        assert views.recompute_counts["message_count"] == 2

    def test_noop_commit_keeps_cache(self, store: StateStore, views: StateViews) -> None:
        """A refresh that changes nothing does not recompute anything."""
        details = views.agent_details()
        store.apply_event(event("lock_released", {"file_path": "/nope"}))
        assert views.agent_details() is details
        assert views.recompute_counts["agent_details"] == 1

    def test_agent_details_depends_on_every_table(
        self, store: StateStore, views: StateViews
    ) -> None:
        views.agent_details()
        store.apply_event(
            event("plan_updated", {"agent_name": "B", "goal": "g", "current_task": "t"})
        )
        views.agent_details()
        assert views.recompute_counts["agent_details"] == 2

    def test_dependency_map_names_real_tables(self) -> None:
        for deps in VIEW_DEPENDENCIES.values():
            assert set(deps) <= {"agents", "locks", "messages", "plans"}


class TestLockActivity:
    """Active/expired split follows the clock, not the store."""

    def test_partition(self, views: StateViews) -> None:
        assert [lk.file_path for lk in views.active_locks()] == ["/x"]
        assert [lk.file_path for lk in views.expired_locks()] == ["/old"]

    def test_clock_advance_without_commit(self, views: StateViews, clock: FakeClock) -> None:
        """A lock expires on the next read once time passes its expiry."""
        assert len(views.active_locks()) == 1
        clock.now = 20_000
        assert views.active_locks() == ()
        assert len(views.expired_locks()) == 2

    def test_expiry_boundary_is_expired(self, views: StateViews, clock: FakeClock) -> None:
        clock.now = 10_000
        assert views.active_locks() == ()

    def test_partition_is_complete(self, views: StateViews, clock: FakeClock) -> None:
        for now in (0, 1_000, 5_000, 10_000, 50_000):
            clock.now = now
            active = set(views.active_locks())
            expired = set(views.expired_locks())
            assert active.isdisjoint(expired)
            assert len(active) + len(expired) == views.lock_count


class TestAgentDetails:
    """Per-agent join."""

    def test_join(self, views: StateViews) -> None:
        detail = views.agent_detail("A")
        assert detail is not None
        assert [lk.file_path for lk in detail.locks] == ["/x"]
        assert detail.plan is not None and detail.plan.goal == "ship"
        assert [m.id for m in detail.sent_messages] == ["m1"]
        assert [m.id for m in detail.received_messages] == ["m2", "m3"]

    def test_broadcast_received_by_everyone(self, views: StateViews) -> None:
        for detail in views.agent_details():
            assert "m3" in {m.id for m in detail.received_messages}

    def test_agent_without_plan(self, views: StateViews) -> None:
        detail = views.agent_detail("B")
        assert detail is not None
        assert detail.plan is None

    def test_unknown_agent(self, views: StateViews) -> None:
        assert views.agent_detail("nobody") is None

    def test_build_is_pure(self, store: StateStore) -> None:
        assert build_agent_details(store.tables) == build_agent_details(store.tables)


class TestObservers:
    """Push notifications from the view layer."""

    def test_observer_called_after_commit(self, store: StateStore, views: StateViews) -> None:
        seen: list[tuple[int, frozenset[str]]] = []
        views.subscribe(lambda v, changed: seen.append((v.agent_count, changed)))

        store.apply_event(event("agent_registered", {"agent_name": "C", "registered_at": 1}))

        assert seen == [(3, frozenset({"agents"}))]

    def test_unsubscribe(self, store: StateStore, views: StateViews) -> None:
        seen: list[frozenset[str]] = []
        unsubscribe = views.subscribe(lambda v, changed: seen.append(changed))
        unsubscribe()

        store.reset()
        assert seen == []

    def test_failing_observer_isolated(self, store: StateStore, views: StateViews) -> None:
        seen: list[frozenset[str]] = []

        def broken(v: StateViews, changed: frozenset[str]) -> None:
            raise RuntimeError("render failed")

        views.subscribe(broken)
        views.subscribe(lambda v, changed: seen.append(changed))

        store.reset()
        assert len(seen) == 1

    def test_close_detaches(self, store: StateStore) -> None:
        v = StateViews(store)
        seen: list[frozenset[str]] = []
        v.subscribe(lambda views, changed: seen.append(changed))
        v.close()

        store.reset()
        assert seen == []
