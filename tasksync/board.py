"""Kanban board view over the local mirror.

Columns map a board title to the display name of a remote list. The mapping
comes from config and can be overridden by the "layout" settings row.
"""

import logging
from dataclasses import dataclass, field

from .models import Settings, Task
from .store import LocalStore

logger = logging.getLogger(__name__)

LAYOUT_KEY = "layout"

DEFAULT_COLUMNS = {
    "Inbox": "Tasks",  # The default list is usually named "Tasks"
    "To Do": "To Do",
    "In Progress": "In Progress",
    "Done": "Done",
}


@dataclass
class BoardColumn:
    title: str
    list_name: str
    list_id: str | None = None
    tasks: list[Task] = field(default_factory=list)


def load_layout(store: LocalStore, default: dict[str, str] | None = None) -> dict[str, str]:
    """Get the column mapping, preferring the stored layout.

    Args:
        store: Local store holding the settings row.
        default: Mapping to use when no layout is stored.

    Returns:
        Ordered mapping of column title to list display name.
    """
    settings = store.get_settings(LAYOUT_KEY)
    if settings and settings.value.get("columns"):
        return dict(settings.value["columns"])
    return dict(default if default is not None else DEFAULT_COLUMNS)


def save_layout(store: LocalStore, columns: dict[str, str]) -> None:
    """Persist a column mapping as the layout settings row."""
    settings = store.get_settings(LAYOUT_KEY) or Settings(key=LAYOUT_KEY)
    settings.value["columns"] = dict(columns)
    store.put_settings(settings)
    logger.info(f"Saved board layout with {len(columns)} columns")


def build_board(store: LocalStore, columns: dict[str, str]) -> dict[str, BoardColumn]:
    """Build the board from mirrored lists and tasks.

    Args:
        store: Local mirror to read from.
        columns: Column title to list display name, in display order.

    Returns:
        Columns keyed by title, in the order of the mapping. A column whose
        list is not mirrored is empty and has no list_id.
    """
    list_ids = {lst.display_name: lst.id for lst in store.get_all_lists()}

    board: dict[str, BoardColumn] = {}
    for title, list_name in columns.items():
        column = BoardColumn(title=title, list_name=list_name)
        list_id = list_ids.get(list_name)
        if list_id is None:
            logger.warning(
                f'List "{list_name}" for column "{title}" not found. It will be empty.'
            )
        else:
            column.list_id = list_id
            column.tasks = store.get_tasks_for_list(list_id)
        board[title] = column

    return board


def parse_columns(text: str) -> dict[str, str]:
    """Parse "Title=List Name,Other=Other List" into a column mapping.

    Raises:
        ValueError: If an entry has no "=" or an empty side.
    """
    columns: dict[str, str] = {}
    for part in text.split(","):
        if not part.strip():
            continue
        title, sep, list_name = part.partition("=")
        if not sep or not title.strip() or not list_name.strip():
            raise ValueError(f"Invalid column entry: {part!r}")
        columns[title.strip()] = list_name.strip()
    return columns
