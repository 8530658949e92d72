"""Tests for the sync orchestrator."""

import asyncio
from unittest.mock import patch

import pytest

from conftest import FakeRemote, make_task
from tasksync.errors import AuthError, RemoteError, StorageError
from tasksync.models import CreateList, DeleteList, MoveTask, TodoList
from tasksync.sync import SyncOrchestrator, SyncResult, SyncState, SyncStatus


@pytest.fixture
def orchestrator(store, remote):
    return SyncOrchestrator(store, remote)


async def _wait_until_syncing(orchestrator: SyncOrchestrator) -> None:
    for _ in range(20):
        if orchestrator.state is SyncState.SYNCING:
            return
        await asyncio.sleep(0)
    raise AssertionError("sync never started")


class TestSyncResult:
    def test_truthiness_follows_status(self):
        assert SyncResult(status=SyncStatus.SUCCESS)
        assert not SyncResult(status=SyncStatus.FAILED)
        assert not SyncResult(status=SyncStatus.SKIPPED)


class TestSyncProtocol:
    """Tests for the drain-then-pull protocol."""

    @pytest.mark.asyncio
    async def test_sync_pulls_full_snapshot(self, orchestrator, store, remote):
        remote.add_list("a", "Tasks", [make_task("t1"), make_task("t2")])
        remote.add_list("b", "Done", [make_task("t3")])

        result = await orchestrator.sync()

        assert result.status == SyncStatus.SUCCESS
        assert result.lists_pulled == 2
        assert [lst.id for lst in store.get_all_lists()] == ["a", "b"]
        assert [t.id for t in store.get_tasks_for_list("a")] == ["t1", "t2"]
        assert [t.list_id for t in store.get_tasks_for_list("b")] == ["b"]
        assert orchestrator.last_sync == result.timestamp

    @pytest.mark.asyncio
    async def test_snapshot_overwrites_stale_mirror(self, orchestrator, store, remote):
        """Test lists and tasks gone remotely disappear locally."""
        store.replace_all_lists([TodoList(id="stale", display_name="Old")])
        store.replace_tasks_for_list("stale", [make_task("orphan")])
        store.replace_tasks_for_list("a", [make_task("gone")])
        remote.add_list("a", "Tasks", [make_task("t1")])

        await orchestrator.sync()

        assert store.get_all_lists() == [TodoList(id="a", display_name="Tasks")]
        assert [t.id for t in store.get_tasks_for_list("a")] == ["t1"]
        assert store.get_tasks_for_list("stale") == []

    @pytest.mark.asyncio
    async def test_deleted_list_tasks_leave_mirror(self, orchestrator, store, remote):
        remote.add_list("a", "Tasks", [make_task("t1")])
        remote.add_list("b", "Done", [make_task("t2")])
        await orchestrator.sync()
        orchestrator.enqueue(DeleteList(list_id="b"))

        result = await orchestrator.sync()

        assert result.ok
        assert store.get_tasks_for_list("b") == []
        assert store.get_task("t2") is None

    @pytest.mark.asyncio
    async def test_drain_runs_before_pull(self, orchestrator, remote):
        orchestrator.enqueue(CreateList(list_name="Work"))

        result = await orchestrator.sync()

        assert result.ok
        assert result.actions_processed == 1
        assert remote.operations()[:2] == ["create_list", "list_all_lists"]

    @pytest.mark.asyncio
    async def test_success_empties_queue(self, orchestrator, store, remote):
        remote.add_list("old", "Old")
        orchestrator.enqueue(CreateList(list_name="Work"))
        orchestrator.enqueue(DeleteList(list_id="old"))
        orchestrator.enqueue(CreateList(list_name="Home"))

        result = await orchestrator.sync()

        assert result.ok
        assert store.list_queued_actions() == []
        assert sorted(lst.display_name for lst in store.get_all_lists()) == ["Home", "Work"]

    @pytest.mark.asyncio
    async def test_drain_failure_keeps_suffix_and_still_pulls(self, orchestrator, store, remote):
        remote.add_list("a", "Tasks", [make_task("t1")])
        orchestrator.enqueue(CreateList(list_name="Work"))
        orchestrator.enqueue(DeleteList(list_id="x"))
        orchestrator.enqueue(CreateList(list_name="Home"))
        remote.fail_on["delete_list"] = RemoteError("Graph API error: 500", status_code=500)

        result = await orchestrator.sync()

        assert result.status == SyncStatus.FAILED
        assert result.error.startswith("Action ")
        assert result.actions_processed == 1
        assert result.actions_remaining == 2
        assert [q.type for q in store.list_queued_actions()] == ["deleteList", "createList"]
        assert remote.operations()[:3] == ["create_list", "delete_list", "list_all_lists"]
        assert sorted(lst.display_name for lst in store.get_all_lists()) == ["Tasks", "Work"]
        assert [t.id for t in store.get_tasks_for_list("a")] == ["t1"]

    @pytest.mark.asyncio
    async def test_rejected_action_does_not_freeze_mirror(self, orchestrator, store, remote):
        """Test a permanently rejected action still lets every sync refresh."""
        remote.add_list("a", "Tasks", [make_task("t1")])
        orchestrator.enqueue(CreateList(list_name="Work"))
        remote.fail_on["create_list"] = RemoteError("Graph API error: 400", status_code=400)

        for _ in range(3):
            result = await orchestrator.sync()
            assert result.status == SyncStatus.FAILED

        remote.add_list("b", "Done", [make_task("t2")])
        result = await orchestrator.sync()

        assert not result
        assert len(store.list_queued_actions()) == 1
        assert [lst.id for lst in store.get_all_lists()] == ["a", "b"]
        assert [t.id for t in store.get_tasks_for_list("b")] == ["t2"]

    @pytest.mark.asyncio
    async def test_drain_and_refresh_failures_both_reported(self, orchestrator, remote):
        remote.add_list("a", "Tasks")
        orchestrator.enqueue(CreateList(list_name="Work"))
        remote.fail_on["create_list"] = RemoteError("Graph API error: 500", status_code=500)
        remote.fail_tasks_for["a"] = RemoteError("Graph API error: 503", status_code=503)

        result = await orchestrator.sync()

        assert result.status == SyncStatus.FAILED
        assert result.failed_lists == ["a"]
        assert result.error.startswith("Action ")
        assert "Failed to refresh tasks for 1 of 1 lists" in result.error

    @pytest.mark.asyncio
    async def test_not_found_deletes_do_not_fail_sync(self, orchestrator, store, remote):
        remote.add_list("a", "To Do")
        orchestrator.enqueue(DeleteList(list_id="already-deleted"))
        orchestrator.enqueue(
            MoveTask(
                source_list_id="a",
                destination_list_id="a",
                task_to_move=make_task("missing", list_id="a"),
            )
        )

        result = await orchestrator.sync()

        assert result.ok
        assert store.list_queued_actions() == []


class TestSyncFailures:
    """Tests for failure reporting and lock release."""

    @pytest.mark.asyncio
    async def test_pull_failure_reports_failed(self, orchestrator, remote):
        remote.fail_on["list_all_lists"] = RemoteError("offline", category="network")

        result = await orchestrator.sync()

        assert result.status == SyncStatus.FAILED
        assert "offline" in result.error
        assert orchestrator.state is SyncState.IDLE

    @pytest.mark.asyncio
    async def test_auth_error_reports_failed(self, orchestrator, remote):
        remote.fail_on["list_all_lists"] = AuthError("Could not acquire access token.")

        result = await orchestrator.sync()

        assert not result

    @pytest.mark.asyncio
    async def test_storage_error_reports_failed(self, orchestrator, store, remote):
        remote.add_list("a", "Tasks")

        with patch.object(
            store, "replace_all_lists", side_effect=StorageError("disk full")
        ):
            result = await orchestrator.sync()

        assert result.status == SyncStatus.FAILED
        assert result.error == "disk full"

    @pytest.mark.asyncio
    async def test_unexpected_error_releases_lock(self, orchestrator, remote):
        remote.fail_on["list_all_lists"] = RuntimeError("boom")

        first = await orchestrator.sync()
        del remote.fail_on["list_all_lists"]
        second = await orchestrator.sync()

        assert first.status == SyncStatus.FAILED
        assert second.status == SyncStatus.SUCCESS
        assert orchestrator.state is SyncState.IDLE

    @pytest.mark.asyncio
    async def test_partial_list_failure_fails_sync(self, orchestrator, store, remote):
        """Test one failed list fails the sync but keeps the lists that worked."""
        remote.add_list("a", "Tasks", [make_task("t1")])
        remote.add_list("b", "Done", [make_task("t2")])
        remote.fail_tasks_for["b"] = RemoteError("Graph API error: 502", status_code=502)

        result = await orchestrator.sync()

        assert result.status == SyncStatus.FAILED
        assert result.failed_lists == ["b"]
        assert [t.id for t in store.get_tasks_for_list("a")] == ["t1"]
        assert orchestrator.get_sync_status()["consecutive_failures"] == 1

    @pytest.mark.asyncio
    async def test_task_fetches_are_bounded(self, store):
        remote = FakeRemote()
        for i in range(6):
            remote.add_list(f"l{i}", f"List {i}")
        in_flight = 0
        peak = 0
        original = remote.list_tasks

        async def tracking_list_tasks(list_id):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            try:
                await asyncio.sleep(0)
                return await original(list_id)
            finally:
                in_flight -= 1

        remote.list_tasks = tracking_list_tasks
        orchestrator = SyncOrchestrator(store, remote, max_concurrent_fetches=2)

        result = await orchestrator.sync()

        assert result.ok
        assert peak == 2


class TestSingleFlight:
    """Tests for the single-flight guard."""

    @pytest.mark.asyncio
    async def test_concurrent_sync_is_skipped(self, orchestrator, store, remote):
        remote.pull_gate = asyncio.Event()
        first = asyncio.create_task(orchestrator.sync())
        await _wait_until_syncing(orchestrator)
        calls_before = list(remote.calls)

        with patch.object(store, "list_queued_actions") as queue_read:
            skipped = await orchestrator.sync()

        assert skipped.status == SyncStatus.SKIPPED
        queue_read.assert_not_called()
        assert remote.calls == calls_before

        remote.pull_gate.set()
        result = await first

        assert result.status == SyncStatus.SUCCESS
        assert orchestrator.state is SyncState.IDLE

    @pytest.mark.asyncio
    async def test_instances_do_not_share_guard(self, store):
        """Test each orchestrator gets its own lock by default."""
        blocked = FakeRemote()
        blocked.pull_gate = asyncio.Event()
        free = FakeRemote()
        first = SyncOrchestrator(store, blocked)
        second = SyncOrchestrator(store, free)

        pending = asyncio.create_task(first.sync())
        await _wait_until_syncing(first)
        result = await second.sync()

        assert result.status == SyncStatus.SUCCESS
        blocked.pull_gate.set()
        await pending

    @pytest.mark.asyncio
    async def test_injected_lock_is_shared(self, store):
        lock = asyncio.Lock()
        blocked = FakeRemote()
        blocked.pull_gate = asyncio.Event()
        first = SyncOrchestrator(store, blocked, lock=lock)
        second = SyncOrchestrator(store, FakeRemote(), lock=lock)

        pending = asyncio.create_task(first.sync())
        await _wait_until_syncing(first)
        result = await second.sync()

        assert result.status == SyncStatus.SKIPPED
        blocked.pull_gate.set()
        await pending


class TestScenarios:
    """End-to-end scenarios."""

    @pytest.mark.asyncio
    async def test_create_list_failure_keeps_action(self, orchestrator, store, remote):
        orchestrator.enqueue(CreateList(list_name="Work"))
        remote.fail_on["create_list"] = RemoteError("Graph API error: 500", status_code=500)

        result = await orchestrator.sync()

        assert not result
        queued = store.list_queued_actions()
        assert len(queued) == 1
        assert queued[0].action == CreateList(list_name="Work")

    @pytest.mark.asyncio
    async def test_move_task_lands_in_destination(self, orchestrator, store, remote):
        task = make_task("t1", list_id="A", title="Review PR")
        remote.add_list("A", "To Do", [task])
        remote.add_list("B", "Done")
        store.replace_tasks_for_list("A", [task])
        orchestrator.enqueue(
            MoveTask(source_list_id="A", destination_list_id="B", task_to_move=task)
        )

        result = await orchestrator.sync()

        assert result.ok
        assert store.list_queued_actions() == []
        assert [t.title for t in store.get_tasks_for_list("B")] == ["Review PR"]
        assert store.get_tasks_for_list("A") == []


class TestSyncLoop:
    @pytest.mark.asyncio
    async def test_loop_stops_on_event(self, orchestrator, remote):
        stop_event = asyncio.Event()

        async def stop_after_first_sync():
            while orchestrator.last_sync is None:
                await asyncio.sleep(0)
            stop_event.set()

        await asyncio.wait_for(
            asyncio.gather(
                orchestrator.sync_loop(interval_seconds=60, stop_event=stop_event),
                stop_after_first_sync(),
            ),
            timeout=5,
        )

        assert remote.operations().count("list_all_lists") == 1

    def test_get_sync_status(self, orchestrator):
        orchestrator.enqueue(CreateList(list_name="Work"))

        status = orchestrator.get_sync_status()

        assert status["state"] == "idle"
        assert status["last_sync"] is None
        assert status["pending_actions"] == 1
