"""Local SQLite mirror of remote lists and tasks, plus the pending-action queue."""

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..errors import StorageError
from ..models import (
    Action,
    DateTimeTimeZone,
    Importance,
    QueuedAction,
    Settings,
    Task,
    TaskBody,
    TodoList,
    action_from_dict,
    action_to_dict,
)

logger = logging.getLogger(__name__)

# SQL schema for the local mirror
SCHEMA = """
-- Lists mirrored from the remote service
CREATE TABLE IF NOT EXISTS lists (
    id TEXT PRIMARY KEY,
    display_name TEXT NOT NULL
);

-- Tasks mirrored from the remote service, stamped with the list they were pulled under
CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    list_id TEXT NOT NULL,
    title TEXT NOT NULL,
    importance TEXT NOT NULL DEFAULT 'normal',
    body TEXT,
    due_date_time TEXT
);

CREATE INDEX IF NOT EXISTS idx_tasks_list ON tasks(list_id);

-- Keyed configuration blobs
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- Pending user mutations; AUTOINCREMENT keeps ids from ever being reused
CREATE TABLE IF NOT EXISTS action_queue (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    type TEXT NOT NULL,
    payload TEXT NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""


class LocalStore:
    """SQLite-backed durable store for the offline mirror.

    Replacement operations run inside a single transaction, so readers see
    either the old collection or the new one, never an empty one in between.
    Every sqlite failure is re-raised as StorageError.
    """

    def __init__(self, db_path: str | Path):
        """Initialize the local store.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self.db_path = Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Initialize database connection and schema."""
        if self._conn is not None:
            return

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        except (sqlite3.Error, OSError) as e:
            self._conn = None
            raise StorageError(f"Failed to open {self.db_path}: {e}") from e

        logger.info(f"LocalStore connected to {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.info("LocalStore connection closed")

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure we have a database connection."""
        if self._conn is None:
            self.connect()
        return self._conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block in one transaction, rolling back on any exception."""
        conn = self._ensure_connected()
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        """Run a read, including row decoding, so corrupt rows surface as StorageError."""
        conn = self._ensure_connected()
        try:
            yield conn
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e
        except (ValueError, KeyError, TypeError) as e:
            raise StorageError(f"Corrupt row in {self.db_path}: {e}") from e

    # ==================== List Operations ====================

    def replace_all_lists(self, lists: list[TodoList]) -> None:
        """Replace every mirrored list with the given ones.

        Tasks stamped with a list that is no longer present are deleted in
        the same transaction.

        Args:
            lists: Complete set of lists from the remote service.
        """
        with self._transaction() as conn:
            conn.execute("DELETE FROM lists")
            conn.executemany(
                "INSERT OR REPLACE INTO lists (id, display_name) VALUES (?, ?)",
                [(lst.id, lst.display_name) for lst in lists],
            )
            conn.execute("DELETE FROM tasks WHERE list_id NOT IN (SELECT id FROM lists)")

        logger.debug(f"Replaced mirrored lists ({len(lists)} lists)")

    def get_all_lists(self) -> list[TodoList]:
        with self._reading() as conn:
            rows = conn.execute(
                "SELECT id, display_name FROM lists ORDER BY rowid"
            ).fetchall()

        return [TodoList(id=row["id"], display_name=row["display_name"]) for row in rows]

    # ==================== Task Operations ====================

    def replace_tasks_for_list(self, list_id: str, tasks: list[Task]) -> None:
        """Replace the mirrored tasks of one list.

        Tasks of other lists are not touched. Each stored task is stamped
        with list_id regardless of what it carried before.

        Args:
            list_id: List whose tasks are replaced.
            tasks: Complete set of tasks for that list.
        """
        rows = [
            (
                task.id,
                list_id,
                task.title,
                task.importance.value,
                json.dumps(task.body.to_dict()) if task.body else None,
                json.dumps(task.due_date_time.to_dict()) if task.due_date_time else None,
            )
            for task in tasks
        ]

        with self._transaction() as conn:
            conn.execute("DELETE FROM tasks WHERE list_id = ?", (list_id,))
            conn.executemany(
                """
                INSERT OR REPLACE INTO tasks (
                    id, list_id, title, importance, body, due_date_time
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                rows,
            )

        logger.debug(f"Replaced tasks for list {list_id} ({len(rows)} tasks)")

    def get_tasks_for_list(self, list_id: str) -> list[Task]:
        with self._reading() as conn:
            rows = conn.execute(
                """
                SELECT id, list_id, title, importance, body, due_date_time
                FROM tasks
                WHERE list_id = ?
                ORDER BY rowid
                """,
                (list_id,),
            ).fetchall()
            return [self._row_to_task(row) for row in rows]

    def get_task(self, task_id: str) -> Task | None:
        """Look up one mirrored task by id."""
        with self._reading() as conn:
            row = conn.execute(
                """
                SELECT id, list_id, title, importance, body, due_date_time
                FROM tasks
                WHERE id = ?
                """,
                (task_id,),
            ).fetchone()
            return self._row_to_task(row) if row else None

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            list_id=row["list_id"],
            title=row["title"],
            importance=Importance.parse(row["importance"]),
            body=TaskBody.from_dict(json.loads(row["body"])) if row["body"] else None,
            due_date_time=(
                DateTimeTimeZone.from_dict(json.loads(row["due_date_time"]))
                if row["due_date_time"]
                else None
            ),
        )

    # ==================== Settings ====================

    def get_settings(self, key: str = "layout") -> Settings | None:
        with self._reading() as conn:
            row = conn.execute(
                "SELECT key, value FROM settings WHERE key = ?", (key,)
            ).fetchone()
            if row is None:
                return None
            return Settings(key=row["key"], value=json.loads(row["value"]))

    def put_settings(self, settings: Settings) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (settings.key, json.dumps(settings.value)),
            )

    # ==================== Action Queue ====================

    def enqueue_action(self, action: Action) -> None:
        """Append an action to the queue with the next store-assigned id."""
        data = action_to_dict(action)

        with self._transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO action_queue (type, payload) VALUES (?, ?)",
                (data["type"], json.dumps(data["payload"])),
            )

        logger.debug(f"Queued action {cursor.lastrowid} ({data['type']})")

    def list_queued_actions(self) -> list[QueuedAction]:
        """Get all queued actions, oldest first."""
        with self._reading() as conn:
            rows = conn.execute(
                "SELECT id, type, payload FROM action_queue ORDER BY id ASC"
            ).fetchall()
            return [
                QueuedAction(
                    id=row["id"],
                    action=action_from_dict(
                        {"type": row["type"], "payload": json.loads(row["payload"])}
                    ),
                )
                for row in rows
            ]

    def update_queued_action(self, queued: QueuedAction) -> None:
        """Rewrite the payload of a still-queued action, keeping its id."""
        data = action_to_dict(queued.action)

        with self._transaction() as conn:
            conn.execute(
                "UPDATE action_queue SET type = ?, payload = ? WHERE id = ?",
                (data["type"], json.dumps(data["payload"]), queued.id),
            )

    def dequeue_action(self, action_id: int) -> None:
        """Delete a queued action. Deleting an absent id is a no-op."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM action_queue WHERE id = ?", (action_id,))

    def count_queued_actions(self) -> int:
        with self._reading() as conn:
            return conn.execute("SELECT COUNT(*) FROM action_queue").fetchone()[0]

    # ==================== Stats ====================

    def get_stats(self) -> dict[str, Any]:
        """Get row counts for each collection.

        Returns:
            Dictionary with counts and database size.
        """
        with self._reading() as conn:
            stats: dict[str, Any] = {
                "lists_count": conn.execute("SELECT COUNT(*) FROM lists").fetchone()[0],
                "tasks_count": conn.execute("SELECT COUNT(*) FROM tasks").fetchone()[0],
                "queued_actions": conn.execute(
                    "SELECT COUNT(*) FROM action_queue"
                ).fetchone()[0],
            }

        if self.db_path.exists():
            stats["db_size_mb"] = round(self.db_path.stat().st_size / (1024 * 1024), 2)

        return stats
