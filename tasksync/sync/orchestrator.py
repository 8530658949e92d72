"""Sync orchestrator: drain queued actions, then pull a full remote snapshot.

A sync attempt runs in three phases:

1. Drain the action queue against the remote, halting at the first failure.
   A halted drain fails the attempt, but the pull phases below still run.
2. Pull every list and replace the mirrored lists.
3. Pull each list's tasks concurrently and replace them list by list.

At most one attempt runs at a time per orchestrator. A call made while an
attempt is in flight returns SKIPPED immediately instead of waiting.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..models import Action, TodoList
from ..remote import RemoteClient
from ..store import LocalStore
from .action_queue import ActionQueue

logger = logging.getLogger(__name__)


class SyncState(Enum):
    IDLE = "idle"
    SYNCING = "syncing"


class SyncStatus(Enum):
    """Status of a sync attempt."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"  # Another attempt was already running


@dataclass
class SyncResult:
    """Result of a sync attempt."""

    status: SyncStatus
    actions_processed: int = 0
    actions_remaining: int = 0
    lists_pulled: int = 0
    failed_lists: list[str] = field(default_factory=list)
    error: str | None = None
    timestamp: datetime | None = None

    @property
    def ok(self) -> bool:
        return self.status is SyncStatus.SUCCESS

    def __bool__(self) -> bool:
        return self.ok


class SyncOrchestrator:
    """Runs the drain-then-pull protocol against a remote client.

    The single-flight guard is an asyncio.Lock owned by this instance. Pass
    one in to share the guard between orchestrators deliberately.
    """

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteClient,
        lock: asyncio.Lock | None = None,
        max_concurrent_fetches: int = 8,
    ):
        """Initialize the orchestrator.

        Args:
            store: Local mirror and queue storage.
            remote: Client for the remote service.
            lock: Single-flight guard. A private lock is created if None.
            max_concurrent_fetches: Upper bound on parallel per-list task fetches.
        """
        self.store = store
        self.remote = remote
        self.queue = ActionQueue(store)
        self.max_concurrent_fetches = max(1, max_concurrent_fetches)
        self._lock = lock if lock is not None else asyncio.Lock()
        self._last_sync: datetime | None = None
        self._consecutive_failures = 0

    @property
    def state(self) -> SyncState:
        return SyncState.SYNCING if self._lock.locked() else SyncState.IDLE

    @property
    def last_sync(self) -> datetime | None:
        """Get timestamp of last successful sync."""
        return self._last_sync

    def enqueue(self, action: Action) -> None:
        """Queue a user action for the next sync."""
        self.queue.enqueue(action)

    async def sync(self) -> SyncResult:
        """Run one sync attempt.

        Never raises; failures are logged and reported as FAILED. The queue
        left in the store describes what is still pending.

        Returns:
            SyncResult for this attempt.
        """
        # Checking and acquiring an uncontended asyncio.Lock does not yield,
        # so no other task can slip in between.
        if self._lock.locked():
            logger.info("Sync already in progress. Skipping.")
            return SyncResult(status=SyncStatus.SKIPPED, timestamp=datetime.now())

        async with self._lock:
            logger.info("Starting sync with server...")
            try:
                result = await self._run()
            except Exception as e:
                logger.error(f"Sync failed: {e}", exc_info=True)
                result = SyncResult(status=SyncStatus.FAILED, error=str(e))
            else:
                if not result.ok:
                    logger.warning(f"Sync failed: {result.error}")

            result.timestamp = datetime.now()
            if result.ok:
                self._last_sync = result.timestamp
                self._consecutive_failures = 0
                logger.info(
                    f"Sync completed successfully: "
                    f"actions={result.actions_processed}, lists={result.lists_pulled}"
                )
            else:
                self._consecutive_failures += 1

            return result

    async def _run(self) -> SyncResult:
        drain = await self.queue.drain(self.remote)
        result = SyncResult(
            status=SyncStatus.SUCCESS,
            actions_processed=drain.processed,
            actions_remaining=drain.remaining,
        )

        if drain.halted:
            # The pull still runs; the attempt stays failed
            result.status = SyncStatus.FAILED
            result.error = f"Action {drain.failed_action_id} failed: {drain.error}"

        lists = await self.remote.list_all_lists()
        self.store.replace_all_lists(lists)
        result.lists_pulled = len(lists)

        result.failed_lists = await self._refresh_tasks(lists)
        if result.failed_lists:
            refresh_error = (
                f"Failed to refresh tasks for {len(result.failed_lists)} "
                f"of {len(lists)} lists"
            )
            result.status = SyncStatus.FAILED
            result.error = f"{result.error}; {refresh_error}" if result.error else refresh_error

        return result

    async def _refresh_tasks(self, lists: list[TodoList]) -> list[str]:
        """Pull and store tasks for every list concurrently.

        Returns:
            Ids of lists whose refresh failed. Lists that succeeded are
            already written regardless.
        """
        semaphore = asyncio.Semaphore(self.max_concurrent_fetches)

        async def refresh(todo_list: TodoList) -> None:
            async with semaphore:
                tasks = await self.remote.list_tasks(todo_list.id)
            self.store.replace_tasks_for_list(todo_list.id, tasks)

        outcomes = await asyncio.gather(
            *(refresh(todo_list) for todo_list in lists),
            return_exceptions=True,
        )

        failed = []
        for todo_list, outcome in zip(lists, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error(
                    f"Failed to refresh tasks for list {todo_list.id} "
                    f"({todo_list.display_name}): {outcome}"
                )
                failed.append(todo_list.id)

        return failed

    async def sync_loop(
        self,
        interval_seconds: int = 300,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        """Run sync periodically until stop_event is set.

        Args:
            interval_seconds: Seconds between sync attempts.
            stop_event: Event to signal loop should stop.
        """
        logger.info(f"Starting sync loop with {interval_seconds}s interval")

        while True:
            if stop_event and stop_event.is_set():
                break

            result = await self.sync()
            logger.info(
                f"Sync: {result.status.value}, "
                f"processed={result.actions_processed}, "
                f"pending={result.actions_remaining}"
            )

            # Back off while the remote keeps failing
            wait_time = interval_seconds
            if self._consecutive_failures > 0:
                wait_time = min(
                    interval_seconds * (2 ** self._consecutive_failures),
                    3600,  # Max 1 hour
                )
                logger.debug(f"Backing off sync for {wait_time}s")

            if stop_event:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=wait_time)
                    break  # Stop event was set
                except asyncio.TimeoutError:
                    pass  # Normal timeout, continue loop
            else:
                await asyncio.sleep(wait_time)

        logger.info("Sync loop stopped")

    def get_sync_status(self) -> dict[str, Any]:
        """Get current sync status.

        Returns:
            Dictionary with sync statistics.
        """
        return {
            "state": self.state.value,
            "last_sync": self._last_sync.isoformat() if self._last_sync else None,
            "consecutive_failures": self._consecutive_failures,
            "pending_actions": len(self.queue),
        }
