"""Ordered queue of user actions waiting to be applied to the remote service.

Actions are drained strictly oldest first, one at a time. A later action may
depend on an earlier one (a task moved into a list created by a previous
action), so the drain stops at the first failure and leaves that action and
everything after it queued for the next attempt.
"""

import logging
from dataclasses import dataclass

from ..errors import RemoteNotFound, TaskSyncError
from ..models import Action, CreateList, DeleteList, MoveTask, QueuedAction
from ..remote import RemoteClient
from ..store import LocalStore

logger = logging.getLogger(__name__)


@dataclass
class DrainResult:
    """Outcome of one drain pass."""

    processed: int = 0
    remaining: int = 0
    failed_action_id: int | None = None
    error: str | None = None

    @property
    def halted(self) -> bool:
        return self.failed_action_id is not None


class ActionQueue:
    """Persistent FIFO of pending actions backed by a LocalStore."""

    def __init__(self, store: LocalStore):
        self.store = store

    def enqueue(self, action: Action) -> None:
        """Append an action to the end of the queue."""
        self.store.enqueue_action(action)
        logger.info(f"Queued {action.TYPE} action")

    def pending(self) -> list[QueuedAction]:
        """Get queued actions, oldest first."""
        return self.store.list_queued_actions()

    def __len__(self) -> int:
        return self.store.count_queued_actions()

    async def drain(self, remote: RemoteClient) -> DrainResult:
        """Apply queued actions against the remote until done or one fails.

        Args:
            remote: Client used to apply each action.

        Returns:
            DrainResult describing how far the drain got.
        """
        queued_actions = self.pending()
        result = DrainResult(remaining=len(queued_actions))
        if not queued_actions:
            return result

        logger.info(f"Processing {len(queued_actions)} queued actions...")

        for queued in queued_actions:
            try:
                await self._apply(queued, remote)
                self.store.dequeue_action(queued.id)
            except TaskSyncError as e:
                logger.error(
                    f"Failed to process action {queued.id} ({queued.type}), "
                    f"it will be retried on next sync: {e}"
                )
                result.failed_action_id = queued.id
                result.error = str(e)
                break

            result.processed += 1
            result.remaining -= 1
            logger.info(f"Action {queued.id} ({queued.type}) processed successfully")

        return result

    async def _apply(self, queued: QueuedAction, remote: RemoteClient) -> None:
        action = queued.action

        if isinstance(action, MoveTask):
            await self._apply_move_task(queued, action, remote)
        elif isinstance(action, CreateList):
            created = await remote.create_list(action.list_name)
            logger.debug(f"Created list {created.id} ({action.list_name})")
        elif isinstance(action, DeleteList):
            await self._delete_ignoring_missing(
                remote.delete_list(action.list_id), f"list {action.list_id}"
            )

    async def _apply_move_task(
        self, queued: QueuedAction, action: MoveTask, remote: RemoteClient
    ) -> None:
        task = action.task_to_move

        # Skip the create if an earlier attempt already made the copy
        if action.created_task_id is None:
            created = await remote.create_task(
                action.destination_list_id, task.to_draft()
            )
            action.created_task_id = created.id
            self.store.update_queued_action(queued)

        await self._delete_ignoring_missing(
            remote.delete_task(action.source_list_id, task.id),
            f"task {task.id} in list {action.source_list_id}",
        )

    @staticmethod
    async def _delete_ignoring_missing(delete_call, description: str) -> None:
        """Await a remote delete, treating not-found as already deleted."""
        try:
            await delete_call
        except RemoteNotFound:
            logger.info(f"Remote {description} already deleted")
