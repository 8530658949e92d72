"""Error types raised by the store and the remote client."""


class TaskSyncError(Exception):
    """Base class for tasksync errors."""


class StorageError(TaskSyncError):
    """Local database read or write failed."""


class RemoteError(TaskSyncError):
    """Remote service returned a non-success response or was unreachable."""

    category = "other"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        category: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        if category is not None:
            self.category = category


class AuthError(RemoteError):
    """No usable access token, or the remote rejected it."""

    category = "auth"


class RemoteNotFound(RemoteError):
    """Remote resource does not exist (HTTP 404)."""

    category = "not_found"
