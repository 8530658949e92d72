"""Data model for mirrored lists, tasks, settings and queued actions.

Wire dictionaries use the remote service's camelCase keys so they can be
passed straight to and from the Graph API.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Union


class Importance(Enum):
    """Task importance as reported by the remote service."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"

    @classmethod
    def parse(cls, value: str | None) -> "Importance":
        try:
            return cls(value)
        except ValueError:
            return cls.NORMAL


@dataclass
class TodoList:
    """A remote task list."""

    id: str
    display_name: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "displayName": self.display_name}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TodoList":
        return cls(id=data["id"], display_name=data.get("displayName", ""))


@dataclass
class TaskBody:
    content_type: str
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {"contentType": self.content_type, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskBody":
        return cls(
            content_type=data.get("contentType", "text"),
            content=data.get("content", ""),
        )


@dataclass
class DateTimeTimeZone:
    """Due timestamp in the remote's dateTime/timeZone form."""

    date_time: str
    time_zone: str = "UTC"

    def to_dict(self) -> dict[str, Any]:
        return {"dateTime": self.date_time, "timeZone": self.time_zone}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DateTimeTimeZone":
        return cls(
            date_time=data["dateTime"],
            time_zone=data.get("timeZone", "UTC"),
        )


@dataclass
class Task:
    """A task belonging to exactly one list."""

    id: str
    list_id: str
    title: str
    importance: Importance = Importance.NORMAL
    body: TaskBody | None = None
    due_date_time: DateTimeTimeZone | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "listId": self.list_id,
            "title": self.title,
            "importance": self.importance.value,
        }
        if self.body is not None:
            data["body"] = self.body.to_dict()
        if self.due_date_time is not None:
            data["dueDateTime"] = self.due_date_time.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], list_id: str | None = None) -> "Task":
        """Create from a wire dict.

        Args:
            data: Task dictionary (remote response or serialized payload).
            list_id: List to stamp on the task. Remote task payloads carry no
                list id, so the caller supplies the list it fetched from.
        """
        body = data.get("body")
        due = data.get("dueDateTime")
        return cls(
            id=data["id"],
            list_id=list_id if list_id is not None else data.get("listId", ""),
            title=data.get("title", ""),
            importance=Importance.parse(data.get("importance")),
            body=TaskBody.from_dict(body) if body else None,
            due_date_time=DateTimeTimeZone.from_dict(due) if due else None,
        )

    def to_draft(self) -> dict[str, Any]:
        """Fields that are safe to set when creating a copy of this task."""
        draft: dict[str, Any] = {
            "title": self.title,
            "importance": self.importance.value,
        }
        if self.body is not None and self.body.content:
            draft["body"] = self.body.to_dict()
        if self.due_date_time is not None:
            draft["dueDateTime"] = self.due_date_time.to_dict()
        return draft


@dataclass
class Settings:
    """Keyed configuration blob stored alongside the mirror."""

    key: str = "layout"
    value: dict[str, Any] = field(default_factory=dict)


# ==================== Queued actions ====================


@dataclass
class MoveTask:
    """Move a task between lists (create in destination, delete from source)."""

    TYPE: ClassVar[str] = "moveTask"

    source_list_id: str
    destination_list_id: str
    task_to_move: Task
    created_task_id: str | None = None

    def payload(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "sourceListId": self.source_list_id,
            "destinationListId": self.destination_list_id,
            "taskToMove": self.task_to_move.to_dict(),
        }
        if self.created_task_id is not None:
            data["createdTaskId"] = self.created_task_id
        return data

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "MoveTask":
        return cls(
            source_list_id=data["sourceListId"],
            destination_list_id=data["destinationListId"],
            task_to_move=Task.from_dict(data["taskToMove"]),
            created_task_id=data.get("createdTaskId"),
        )


@dataclass
class CreateList:
    TYPE: ClassVar[str] = "createList"

    list_name: str

    def payload(self) -> dict[str, Any]:
        return {"listName": self.list_name}

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "CreateList":
        return cls(list_name=data["listName"])


@dataclass
class DeleteList:
    TYPE: ClassVar[str] = "deleteList"

    list_id: str

    def payload(self) -> dict[str, Any]:
        return {"listId": self.list_id}

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "DeleteList":
        return cls(list_id=data["listId"])


Action = Union[MoveTask, CreateList, DeleteList]

ACTION_TYPES: dict[str, type] = {
    MoveTask.TYPE: MoveTask,
    CreateList.TYPE: CreateList,
    DeleteList.TYPE: DeleteList,
}


def action_to_dict(action: Action) -> dict[str, Any]:
    """Serialize an action to its tagged form."""
    return {"type": action.TYPE, "payload": action.payload()}


def action_from_dict(data: dict[str, Any]) -> Action:
    """Decode a tagged action.

    Raises:
        ValueError: If the type tag is not a known action type.
    """
    action_type = ACTION_TYPES.get(data.get("type"))
    if action_type is None:
        raise ValueError(f"Unknown action type: {data.get('type')!r}")
    return action_type.from_payload(data.get("payload") or {})


@dataclass
class QueuedAction:
    """An action persisted in the queue, ordered by its store-assigned id."""

    id: int
    action: Action

    @property
    def type(self) -> str:
        return self.action.TYPE
