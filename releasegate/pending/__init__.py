"""Pending module.

Deferred candidates, their stores, the queue that rechecks them and the
scheduler that drives the rechecks.
"""

from releasegate.pending.models import (
    ACTIVE_STATES,
    PendingItem,
    PendingState,
    UpsertOutcome,
    pending_key,
)
from releasegate.pending.queue import PendingQueue, RecheckReport, UpsertResult
from releasegate.pending.scheduler import PendingRecheckScheduler
from releasegate.pending.store import InMemoryPendingStore, PendingStore, SQLitePendingStore

__all__ = [
    # Models
    "ACTIVE_STATES",
    "PendingItem",
    "PendingState",
    "UpsertOutcome",
    "pending_key",
    # Stores
    "InMemoryPendingStore",
    "PendingStore",
    "SQLitePendingStore",
    # Queue
    "PendingQueue",
    "PendingRecheckScheduler",
    "RecheckReport",
    "UpsertResult",
]
