"""Pending items: deferred candidates waiting out their delay."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from releasegate.parser.release import ReleaseCandidate


class PendingState(str, Enum):
    """Lifecycle of a pending item.

    PENDING is the only entry state; GRABBED, SUPERSEDED and DISCARDED are
    terminal and never stored.
    """

    PENDING = "pending"
    READY = "ready"
    GRABBED = "grabbed"
    SUPERSEDED = "superseded"
    DISCARDED = "discarded"


ACTIVE_STATES = frozenset({PendingState.PENDING, PendingState.READY})

ALLOWED_TRANSITIONS: dict[PendingState, frozenset[PendingState]] = {
    PendingState.PENDING: frozenset(
        {
            PendingState.PENDING,
            PendingState.READY,
            PendingState.SUPERSEDED,
            PendingState.DISCARDED,
        }
    ),
    PendingState.READY: frozenset(
        {
            PendingState.READY,
            PendingState.PENDING,
            PendingState.GRABBED,
            PendingState.DISCARDED,
        }
    ),
    PendingState.GRABBED: frozenset(),
    PendingState.SUPERSEDED: frozenset(),
    PendingState.DISCARDED: frozenset(),
}


def pending_key(movie_id: int, bundle_identity: str) -> str:
    """Uniqueness key: one pending item per movie and profile context."""
    return f"{movie_id}:{bundle_identity}"


class PendingItem(BaseModel):
    """A deferred candidate with its scheduling state.

    Attributes:
        key: Movie id plus profile bundle identity.
        bundle_snapshot: Profiles as resolved when the item was stored.
        version: Incremented by the store on every write (compare-and-swap).
        grab_attempts: Failed grab handoffs so far.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    movie_id: int
    bundle_identity: str
    candidate: ReleaseCandidate
    bundle_snapshot: dict[str, Any] = Field(default_factory=dict)
    state: PendingState = PendingState.PENDING
    next_check_at: datetime
    inserted_at: datetime
    updated_at: datetime
    version: int = 1
    grab_attempts: int = 0
    last_error: str | None = None

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    def is_due(self, now: datetime) -> bool:
        return self.is_active and self.next_check_at <= now

    def transition(self, state: PendingState, now: datetime, **changes: Any) -> "PendingItem":
        """Return a copy in ``state``.

        Raises:
            ValueError: If the lifecycle does not allow the move.
        """
        if state not in ALLOWED_TRANSITIONS[self.state]:
            raise ValueError(f"Cannot move pending item from {self.state.value} to {state.value}")
        return self.model_copy(update={"state": state, "updated_at": now, **changes})


class UpsertOutcome(str, Enum):
    """What offering a deferred candidate did to the queue."""

    INSERTED = "inserted"
    REPLACED = "replaced"
    KEPT_EXISTING = "kept_existing"
