"""Abstract interface for the remote task service."""

from abc import ABC, abstractmethod
from typing import Any

from ..models import Task, TodoList


class RemoteClient(ABC):
    """Operations the sync engine needs from the remote service.

    Implementations raise AuthError, RemoteNotFound or RemoteError
    (all from tasksync.errors) on failure.
    """

    @abstractmethod
    async def list_all_lists(self) -> list[TodoList]:
        """Get every list owned by the user."""
        pass

    @abstractmethod
    async def list_tasks(self, list_id: str) -> list[Task]:
        """Get every task in a list.

        Args:
            list_id: The list to read.

        Returns:
            Tasks stamped with list_id.
        """
        pass

    @abstractmethod
    async def create_task(self, list_id: str, draft: dict[str, Any]) -> Task:
        """Create a task in a list.

        Args:
            list_id: Destination list.
            draft: Task fields as produced by Task.to_draft().

        Returns:
            The created task with its remote-assigned id.
        """
        pass

    @abstractmethod
    async def delete_task(self, list_id: str, task_id: str) -> None:
        pass

    @abstractmethod
    async def create_list(self, name: str) -> TodoList:
        pass

    @abstractmethod
    async def delete_list(self, list_id: str) -> None:
        pass
