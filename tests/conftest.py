"""Shared fixtures: in-memory store and an in-process fake remote service."""

import asyncio
from typing import Any

import pytest

from tasksync.errors import RemoteNotFound
from tasksync.models import Task, TodoList
from tasksync.remote import RemoteClient
from tasksync.store import LocalStore


class FakeRemote(RemoteClient):
    """Remote service kept in memory.

    Set fail_on[operation] to make that operation raise, and
    fail_tasks_for[list_id] to make list_tasks fail for one list. Set
    pull_gate to hold list_all_lists until the event is set.
    """

    def __init__(self) -> None:
        self.lists: dict[str, TodoList] = {}
        self.tasks: dict[str, list[Task]] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.fail_on: dict[str, Exception] = {}
        self.fail_tasks_for: dict[str, Exception] = {}
        self.pull_gate: asyncio.Event | None = None
        self._next_id = 0

    def add_list(self, list_id: str, name: str, tasks: list[Task] | None = None) -> None:
        self.lists[list_id] = TodoList(id=list_id, display_name=name)
        self.tasks[list_id] = [
            Task.from_dict(task.to_dict(), list_id=list_id) for task in tasks or []
        ]

    def _new_id(self, prefix: str) -> str:
        self._next_id += 1
        return f"{prefix}-{self._next_id}"

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise self.fail_on[operation]

    async def list_all_lists(self) -> list[TodoList]:
        self.calls.append(("list_all_lists",))
        if self.pull_gate is not None:
            await self.pull_gate.wait()
        self._check("list_all_lists")
        return list(self.lists.values())

    async def list_tasks(self, list_id: str) -> list[Task]:
        self.calls.append(("list_tasks", list_id))
        await asyncio.sleep(0)
        if list_id in self.fail_tasks_for:
            raise self.fail_tasks_for[list_id]
        self._check("list_tasks")
        return [Task.from_dict(t.to_dict(), list_id=list_id) for t in self.tasks.get(list_id, [])]

    async def create_task(self, list_id: str, draft: dict[str, Any]) -> Task:
        self.calls.append(("create_task", list_id, draft))
        self._check("create_task")
        task = Task.from_dict({"id": self._new_id("task"), **draft}, list_id=list_id)
        self.tasks.setdefault(list_id, []).append(task)
        return task

    async def delete_task(self, list_id: str, task_id: str) -> None:
        self.calls.append(("delete_task", list_id, task_id))
        self._check("delete_task")
        remaining = [t for t in self.tasks.get(list_id, []) if t.id != task_id]
        if len(remaining) == len(self.tasks.get(list_id, [])):
            raise RemoteNotFound(f"Task {task_id} not found", status_code=404)
        self.tasks[list_id] = remaining

    async def create_list(self, name: str) -> TodoList:
        self.calls.append(("create_list", name))
        self._check("create_list")
        todo_list = TodoList(id=self._new_id("list"), display_name=name)
        self.lists[todo_list.id] = todo_list
        self.tasks[todo_list.id] = []
        return todo_list

    async def delete_list(self, list_id: str) -> None:
        self.calls.append(("delete_list", list_id))
        self._check("delete_list")
        if self.lists.pop(list_id, None) is None:
            raise RemoteNotFound(f"List {list_id} not found", status_code=404)
        self.tasks.pop(list_id, None)

    def operations(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def store():
    """Create an in-memory LocalStore for testing."""
    store = LocalStore(":memory:")
    store.connect()
    yield store
    store.close()


@pytest.fixture
def remote():
    return FakeRemote()


def make_task(task_id: str, list_id: str = "", title: str | None = None, **extra: Any) -> Task:
    """Build a Task from wire-style fields."""
    return Task.from_dict(
        {"id": task_id, "title": title or f"Task {task_id}", **extra},
        list_id=list_id,
    )
