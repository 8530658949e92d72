"""Offline sync engine.

Queues user actions while offline, applies them to the remote service in
order once it is reachable, then refreshes the local mirror from a full
remote snapshot.
"""

from .action_queue import ActionQueue, DrainResult
from .orchestrator import SyncOrchestrator, SyncResult, SyncState, SyncStatus

__all__ = [
    "ActionQueue",
    "DrainResult",
    "SyncOrchestrator",
    "SyncResult",
    "SyncState",
    "SyncStatus",
]
