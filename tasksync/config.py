"""Configuration loading for tasksync."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .board import DEFAULT_COLUMNS


@dataclass
class StoreConfig:
    db_path: str = "~/.tasksync/tasksync.db"


@dataclass
class RemoteConfig:
    """Configuration for the remote task service."""

    base_url: str = "https://graph.microsoft.com/v1.0"
    access_token: str = ""  # Acquired out of band, usually via TASKSYNC_ACCESS_TOKEN
    timeout: float = 30.0
    max_retries: int = 3
    page_size: int = 100


@dataclass
class SyncConfig:
    interval_minutes: int = 5
    max_concurrent_fetches: int = 8


@dataclass
class BoardConfig:
    columns: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_COLUMNS))


@dataclass
class Config:
    store: StoreConfig = field(default_factory=StoreConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    board: BoardConfig = field(default_factory=BoardConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with TASKSYNC_ prefix."""
    return os.environ.get(f"TASKSYNC_{key}", default)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    if db_path := _get_env("DB_PATH"):
        config.store.db_path = db_path

    # Remote overrides
    if remote_url := _get_env("REMOTE_URL"):
        config.remote.base_url = remote_url
    if token := _get_env("ACCESS_TOKEN"):
        config.remote.access_token = token

    # Sync overrides
    if interval := _get_env("SYNC_INTERVAL"):
        config.sync.interval_minutes = int(interval)
    if fetches := _get_env("MAX_CONCURRENT_FETCHES"):
        config.sync.max_concurrent_fetches = int(fetches)

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None or missing, uses defaults.

    Returns:
        Loaded Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            if "store" in data:
                config.store = StoreConfig(
                    db_path=data["store"].get("db_path", config.store.db_path)
                )

            if "remote" in data:
                remote_data = data["remote"]
                config.remote = RemoteConfig(
                    base_url=remote_data.get("base_url", config.remote.base_url),
                    access_token=remote_data.get(
                        "access_token", config.remote.access_token
                    ),
                    timeout=remote_data.get("timeout", config.remote.timeout),
                    max_retries=remote_data.get(
                        "max_retries", config.remote.max_retries
                    ),
                    page_size=remote_data.get("page_size", config.remote.page_size),
                )

            if "sync" in data:
                sync_data = data["sync"]
                config.sync = SyncConfig(
                    interval_minutes=sync_data.get(
                        "interval_minutes", config.sync.interval_minutes
                    ),
                    max_concurrent_fetches=sync_data.get(
                        "max_concurrent_fetches", config.sync.max_concurrent_fetches
                    ),
                )

            if "board" in data and data["board"].get("columns"):
                config.board = BoardConfig(
                    columns={
                        str(title): str(list_name)
                        for title, list_name in data["board"]["columns"].items()
                    }
                )

    return _apply_env_overrides(config)
