"""Durable local storage for tasksync.

Holds the offline mirror of remote lists and tasks, keyed settings, and the
queue of user actions waiting to be applied to the remote service.
"""

from .local_store import LocalStore

__all__ = ["LocalStore"]
