"""CLI entry point for tasksync."""

import argparse
import asyncio
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .board import build_board, load_layout, parse_columns, save_layout
from .config import Config, load_config
from .errors import StorageError
from .models import CreateList, DeleteList, MoveTask, action_to_dict
from .remote import GraphClient, static_token_provider
from .store import LocalStore
from .sync import ActionQueue, SyncOrchestrator, SyncStatus


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            # Fallback for non-serializable objects
            log_data["message"] = str(log_data["message"])
            if "exception" in log_data:
                log_data["exception"] = str(log_data["exception"])
            return json.dumps(log_data)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )


def _open_store(config: Config) -> LocalStore:
    store = LocalStore(config.store.db_path)
    store.connect()
    return store


def _make_remote(config: Config) -> GraphClient:
    return GraphClient(
        token_provider=static_token_provider(config.remote.access_token),
        base_url=config.remote.base_url,
        timeout=config.remote.timeout,
        max_retries=config.remote.max_retries,
        page_size=config.remote.page_size,
    )


async def cmd_sync(args: argparse.Namespace) -> int:
    """Run a single sync attempt."""
    config = load_config(args.config)
    store = _open_store(config)

    try:
        async with _make_remote(config) as remote:
            orchestrator = SyncOrchestrator(
                store,
                remote,
                max_concurrent_fetches=config.sync.max_concurrent_fetches,
            )
            result = await orchestrator.sync()
    finally:
        store.close()

    print(
        f"Sync {result.status.value}: "
        f"{result.actions_processed} actions applied, "
        f"{result.actions_remaining} pending, "
        f"{result.lists_pulled} lists pulled"
    )
    if result.error:
        print(f"Error: {result.error}", file=sys.stderr)

    return 1 if result.status is SyncStatus.FAILED else 0


async def cmd_run(args: argparse.Namespace) -> int:
    """Sync periodically until interrupted."""
    config = load_config(args.config)
    interval = args.interval or config.sync.interval_minutes

    print(f"Syncing {config.store.db_path} with {config.remote.base_url}")
    print(f"Interval: {interval} minutes")

    store = _open_store(config)
    stop_event = asyncio.Event()

    try:
        async with _make_remote(config) as remote:
            orchestrator = SyncOrchestrator(
                store,
                remote,
                max_concurrent_fetches=config.sync.max_concurrent_fetches,
            )
            await orchestrator.sync_loop(interval * 60, stop_event)
    except (KeyboardInterrupt, asyncio.CancelledError):
        print("\nShutting down...")
    finally:
        stop_event.set()
        store.close()

    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show the state of the local mirror and queue."""
    config = load_config(args.config)
    store = _open_store(config)

    try:
        stats = store.get_stats()
        pending = store.list_queued_actions()
    finally:
        store.close()

    status_data = {
        "timestamp": datetime.now().isoformat(),
        "db_path": config.store.db_path,
        "remote_url": config.remote.base_url,
        "token_configured": bool(config.remote.access_token),
        "lists": stats["lists_count"],
        "tasks": stats["tasks_count"],
        "pending_actions": [
            {"id": queued.id, **action_to_dict(queued.action)} for queued in pending
        ],
    }

    if args.json:
        print(json.dumps(status_data, indent=2))
        return 0

    print("tasksync Status")
    print("===============")
    print(f"Database: {status_data['db_path']}")
    print(f"Remote: {status_data['remote_url']}")
    print(f"  Token configured: {'Yes' if status_data['token_configured'] else 'No'}")
    print()
    print(f"Mirrored lists: {status_data['lists']}")
    print(f"Mirrored tasks: {status_data['tasks']}")
    print(f"Pending actions: {len(pending)}")
    for queued in pending:
        print(f"  - #{queued.id} {queued.type}")

    return 0


def cmd_queue_list(args: argparse.Namespace) -> int:
    """List pending actions."""
    config = load_config(args.config)
    store = _open_store(config)

    try:
        pending = ActionQueue(store).pending()
    finally:
        store.close()

    if not pending:
        print("Queue is empty")
        return 0

    for queued in pending:
        payload = json.dumps(action_to_dict(queued.action)["payload"])
        print(f"#{queued.id} {queued.type} {payload}")

    return 0


def cmd_queue_create_list(args: argparse.Namespace) -> int:
    """Queue creation of a list."""
    config = load_config(args.config)
    store = _open_store(config)

    try:
        ActionQueue(store).enqueue(CreateList(list_name=args.name))
    finally:
        store.close()

    print(f'Queued creation of list "{args.name}"')
    return 0


def cmd_queue_delete_list(args: argparse.Namespace) -> int:
    """Queue deletion of a list."""
    config = load_config(args.config)
    store = _open_store(config)

    try:
        ActionQueue(store).enqueue(DeleteList(list_id=args.list_id))
    finally:
        store.close()

    print(f"Queued deletion of list {args.list_id}")
    return 0


def cmd_queue_move_task(args: argparse.Namespace) -> int:
    """Queue a move of a mirrored task to another list."""
    config = load_config(args.config)
    store = _open_store(config)

    try:
        task = store.get_task(args.task_id)
        if task is None:
            print(f"Task {args.task_id} is not in the local mirror", file=sys.stderr)
            return 1
        if task.list_id == args.to:
            print(f"Task {args.task_id} is already in list {args.to}", file=sys.stderr)
            return 1

        ActionQueue(store).enqueue(
            MoveTask(
                source_list_id=task.list_id,
                destination_list_id=args.to,
                task_to_move=task,
            )
        )
    finally:
        store.close()

    print(f'Queued move of "{task.title}" to list {args.to}')
    return 0


def cmd_board(args: argparse.Namespace) -> int:
    """Print the kanban board from the local mirror."""
    config = load_config(args.config)
    store = _open_store(config)

    try:
        if args.columns:
            try:
                save_layout(store, parse_columns(args.columns))
            except ValueError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1

        columns = load_layout(store, config.board.columns)
        board = build_board(store, columns)
    finally:
        store.close()

    for column in board.values():
        print(f"{column.title} ({len(column.tasks)})")
        if column.list_id is None:
            print(f'  list "{column.list_name}" not found')
        for task in column.tasks:
            marker = "!" if task.importance.value == "high" else "-"
            print(f"  {marker} {task.title} [{task.id}]")
        print()

    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="tasksync",
        description="Offline mirror and sync for remote task lists",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Sync command
    sync_parser = subparsers.add_parser("sync", help="Run one sync attempt")
    sync_parser.set_defaults(func=cmd_sync)

    # Run command
    run_parser = subparsers.add_parser("run", help="Sync periodically")
    run_parser.add_argument(
        "-i", "--interval",
        type=int,
        default=None,
        help="Minutes between syncs (default: from config)",
    )
    run_parser.set_defaults(func=cmd_run)

    # Status command
    status_parser = subparsers.add_parser("status", help="Show mirror and queue status")
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.set_defaults(func=cmd_status)

    # Queue commands
    queue_parser = subparsers.add_parser("queue", help="Inspect or add pending actions")
    queue_subparsers = queue_parser.add_subparsers(dest="queue_command", help="Queue commands")

    queue_list = queue_subparsers.add_parser("list", help="List pending actions")
    queue_list.set_defaults(func=cmd_queue_list)

    queue_create = queue_subparsers.add_parser("create-list", help="Queue creation of a list")
    queue_create.add_argument("name", help="Display name of the new list")
    queue_create.set_defaults(func=cmd_queue_create_list)

    queue_delete = queue_subparsers.add_parser("delete-list", help="Queue deletion of a list")
    queue_delete.add_argument("list_id", help="Remote id of the list")
    queue_delete.set_defaults(func=cmd_queue_delete_list)

    queue_move = queue_subparsers.add_parser("move-task", help="Queue a task move")
    queue_move.add_argument("task_id", help="Remote id of the task")
    queue_move.add_argument("--to", required=True, help="Destination list id")
    queue_move.set_defaults(func=cmd_queue_move_task)

    # Board command
    board_parser = subparsers.add_parser("board", help="Show the kanban board")
    board_parser.add_argument(
        "--columns",
        type=str,
        default=None,
        help='Save a new layout first, e.g. "Inbox=Tasks,Done=Done"',
    )
    board_parser.set_defaults(func=cmd_board)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    # Handle queue subcommand requiring its own subcommand
    if args.command == "queue":
        if not args.queue_command:
            queue_parser.print_help()
            return 1

    func = args.func
    try:
        if asyncio.iscoroutinefunction(func):
            return asyncio.run(func(args))
        return func(args)
    except StorageError as e:
        print(f"Storage error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
