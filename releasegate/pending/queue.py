"""Pending queue: holds deferred candidates and rechecks them when due.

Mutations of one key are serialized by a per-key lock; the stores add a
version compare-and-swap on top, so a writer that lost a race gets a
QueueStateConflict instead of overwriting newer state.

Usage:
    queue = PendingQueue(store, grabber, library, settings)
    queue.attach_decision_maker(maker)
    report = await queue.run_due_rechecks(datetime.now(UTC))
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

import structlog

from releasegate.config import Settings
from releasegate.decision.models import SearchCriteria, SearchTrigger
from releasegate.decision.upgrade import is_upgradable
from releasegate.errors import ConfigurationError, QueueStateConflict, TransientResourceError
from releasegate.movies import Movie, MovieRepository
from releasegate.parser.release import ReleaseCandidate
from releasegate.pending.models import PendingItem, PendingState, UpsertOutcome, pending_key
from releasegate.pending.store import PendingStore
from releasegate.profiles.repository import ProfileBundle

if TYPE_CHECKING:
    from releasegate.decision.aggregator import DecisionMaker
    from releasegate.grab import Grabber

logger = structlog.get_logger(__name__)

SATISFIED_REASON = "Movie was satisfied by a later grab"


@dataclass(frozen=True)
class UpsertResult:
    """Result of offering a deferred candidate to the queue."""

    outcome: UpsertOutcome
    item: PendingItem
    superseded: PendingItem | None = None


@dataclass
class RecheckReport:
    """Outcome of one recheck run, grouped by what happened to each item."""

    grabbed: list[PendingItem] = field(default_factory=list)
    rescheduled: list[PendingItem] = field(default_factory=list)
    discarded: list[PendingItem] = field(default_factory=list)
    failed: list[PendingItem] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    stopped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "grabbed": len(self.grabbed),
            "rescheduled": len(self.rescheduled),
            "discarded": len(self.discarded),
            "failed": len(self.failed),
            "skipped": len(self.skipped),
            "stopped": self.stopped,
        }


class PendingQueue:
    """Stores deferred candidates and drives their rechecks.

    This class:
    - Keeps at most one active item per movie and profile context
    - Replaces a stored candidate only with a better one
    - Re-evaluates due items through the same decision maker as live ingestion
    - Hands accepted items to the grabber without holding the key lock
    """

    def __init__(
        self,
        store: PendingStore,
        grabber: "Grabber",
        movies: MovieRepository,
        settings: Settings,
    ):
        self._store = store
        self._grabber = grabber
        self._movies = movies
        self._settings = settings
        self._maker: DecisionMaker | None = None
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        # Keys whose READY item is out for a grab handoff, and those a live grab
        # satisfied meanwhile
        self._in_flight: set[str] = set()
        self._satisfied: set[str] = set()
        self._stop_requested = False

    def attach_decision_maker(self, maker: "DecisionMaker") -> None:
        """Wire the decision maker used for rechecks."""
        self._maker = maker

    @asynccontextmanager
    async def _locked(self, key: str) -> AsyncIterator[None]:
        """Hold the key lock; the entry is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                del self._locks[key]

    @property
    def _retry_delay(self) -> timedelta:
        return timedelta(minutes=self._settings.pending_retry_minutes)

    def next_check_at(
        self, candidate: ReleaseCandidate, bundle: ProfileBundle, now: datetime
    ) -> datetime:
        """Publish date plus the protocol delay, or a retry slot if that already passed."""
        delay = 0
        if bundle.delay_profile is not None:
            delay = bundle.delay_profile.get_protocol_delay(candidate.protocol)
        due = candidate.publish_date + timedelta(minutes=delay)
        if due <= now:
            return now + self._retry_delay
        return due

    # =========================================================================
    # Queries
    # =========================================================================

    async def list_pending(self) -> list[PendingItem]:
        """Active items ordered by next check time."""
        return [item for item in await self._store.list_all() if item.is_active]

    async def get(self, movie_id: int, bundle_identity: str) -> PendingItem | None:
        return await self._store.get(pending_key(movie_id, bundle_identity))

    async def competitor_for(
        self, movie_id: int, bundle_identity: str, candidate: ReleaseCandidate
    ) -> ReleaseCandidate | None:
        """Candidate already waiting for the same key, other than ``candidate`` itself."""
        item = await self.get(movie_id, bundle_identity)
        if item is None or not item.is_active:
            return None
        if item.candidate.identity == candidate.identity:
            return None
        return item.candidate

    # =========================================================================
    # Mutations from the live path
    # =========================================================================

    async def upsert(
        self,
        candidate: ReleaseCandidate,
        movie: Movie,
        bundle: ProfileBundle,
        now: datetime,
    ) -> UpsertResult:
        """Insert a deferred candidate or replace the stored one if it is better.

        A READY item is never replaced: it already passed every rule and is
        waiting for its grab retry.

        Raises:
            QueueStateConflict: If the stored item changed under us.
        """
        key = pending_key(movie.id, bundle.identity)

        async with self._locked(key):
            existing = await self._store.get(key)

            if existing is None:
                item = PendingItem(
                    key=key,
                    movie_id=movie.id,
                    bundle_identity=bundle.identity,
                    candidate=candidate,
                    bundle_snapshot=bundle.snapshot(),
                    next_check_at=self.next_check_at(candidate, bundle, now),
                    inserted_at=now,
                    updated_at=now,
                )
                stored = await self._store.insert(item)
                logger.info(
                    "pending_item_inserted",
                    key=key,
                    movie_id=movie.id,
                    title=candidate.title,
                    next_check_at=stored.next_check_at.isoformat(),
                )
                return UpsertResult(UpsertOutcome.INSERTED, stored)

            if existing.state != PendingState.PENDING:
                return UpsertResult(UpsertOutcome.KEPT_EXISTING, existing)

            stored_candidate = existing.candidate
            if stored_candidate.identity == candidate.identity or not is_upgradable(
                bundle.quality_profile,
                stored_candidate.quality,
                stored_candidate.custom_format_score,
                candidate.quality,
                candidate.custom_format_score,
            ):
                logger.debug(
                    "pending_item_kept",
                    key=key,
                    kept=stored_candidate.title,
                    offered=candidate.title,
                )
                return UpsertResult(UpsertOutcome.KEPT_EXISTING, existing)

            replacement = existing.transition(
                PendingState.PENDING,
                now,
                candidate=candidate,
                bundle_snapshot=bundle.snapshot(),
                next_check_at=self.next_check_at(candidate, bundle, now),
                inserted_at=now,
                grab_attempts=0,
                last_error=None,
            )
            stored = await self._store.update(replacement, existing.version)
            superseded = existing.transition(PendingState.SUPERSEDED, now)
            logger.info(
                "pending_item_replaced",
                key=key,
                movie_id=movie.id,
                old_title=stored_candidate.title,
                new_title=candidate.title,
            )
            return UpsertResult(UpsertOutcome.REPLACED, stored, superseded)

    async def hold_for_retry(
        self,
        candidate: ReleaseCandidate,
        movie: Movie,
        bundle: ProfileBundle,
        now: datetime,
        error: str,
    ) -> PendingItem:
        """Keep an accepted candidate whose live grab failed as READY for the driver.

        Raises:
            QueueStateConflict: If the stored item changed under us.
        """
        key = pending_key(movie.id, bundle.identity)
        retry_at = now + self._retry_delay

        async with self._locked(key):
            existing = await self._store.get(key)

            if existing is None:
                item = PendingItem(
                    key=key,
                    movie_id=movie.id,
                    bundle_identity=bundle.identity,
                    candidate=candidate,
                    bundle_snapshot=bundle.snapshot(),
                    next_check_at=retry_at,
                    inserted_at=now,
                    updated_at=now,
                ).transition(PendingState.READY, now, grab_attempts=1, last_error=error)
                stored = await self._store.insert(item)
            else:
                attempts = 1
                if existing.candidate.identity == candidate.identity:
                    attempts = existing.grab_attempts + 1
                item = existing.transition(
                    PendingState.READY,
                    now,
                    candidate=candidate,
                    bundle_snapshot=bundle.snapshot(),
                    next_check_at=retry_at,
                    grab_attempts=attempts,
                    last_error=error,
                )
                stored = await self._store.update(item, existing.version)

        logger.warning(
            "pending_item_held_for_retry",
            key=key,
            title=candidate.title,
            grab_attempts=stored.grab_attempts,
            error=error,
        )
        return stored

    async def supersede(
        self, movie_id: int, bundle_identity: str, now: datetime
    ) -> PendingItem | None:
        """Remove the item of a key after a live grab satisfied its movie.

        A PENDING item is superseded. A READY item waiting for a grab retry is
        discarded. A READY item whose handoff is in flight is left to the
        recheck driver, which discards it instead of retrying if that handoff
        fails.

        Returns:
            The removed item in its terminal state, or None if nothing was removed.
        """
        key = pending_key(movie_id, bundle_identity)

        async with self._locked(key):
            existing = await self._store.get(key)
            if existing is None or not existing.is_active:
                return None
            if key in self._in_flight:
                self._satisfied.add(key)
                logger.info("pending_item_satisfied_during_grab", key=key)
                return None
            await self._store.delete(key, existing.version)

        if existing.state == PendingState.READY:
            logger.info(
                "pending_item_discarded",
                key=key,
                title=existing.candidate.title,
                reason=SATISFIED_REASON,
            )
            return existing.transition(PendingState.DISCARDED, now, last_error=SATISFIED_REASON)

        logger.info("pending_item_superseded", key=key, title=existing.candidate.title)
        return existing.transition(PendingState.SUPERSEDED, now)

    # =========================================================================
    # Recheck driver
    # =========================================================================

    def request_stop(self) -> None:
        """Make a running recheck stop before its next item."""
        self._stop_requested = True

    async def run_due_rechecks(self, now: datetime) -> RecheckReport:
        """Re-evaluate every item whose next check time has passed.

        Args:
            now: Evaluation time used for every item of this run.

        Returns:
            RecheckReport with the items grouped by outcome.

        Raises:
            ConfigurationError: If no decision maker is attached.
        """
        maker = self._maker
        if maker is None:
            raise ConfigurationError("Pending queue has no decision maker attached")

        self._stop_requested = False
        report = RecheckReport()
        due = await self._store.list_due(now)
        logger.info("pending_recheck_started", due=len(due))

        for index, item in enumerate(due):
            if self._stop_requested:
                report.stopped = True
                logger.info("pending_recheck_stopped", remaining=len(due) - index)
                break

            try:
                await self._recheck_item(maker, item.key, now, report)
            except QueueStateConflict as e:
                logger.warning("pending_item_conflict", key=e.key)
                report.skipped.append(e.key)

        logger.info("pending_recheck_finished", **report.to_dict())
        return report

    async def _load_movie(self, movie_id: int) -> Movie | None:
        return await asyncio.wait_for(
            self._movies.get_movie(movie_id),
            timeout=self._settings.profile_lookup_timeout_seconds,
        )

    async def _recheck_item(
        self, maker: "DecisionMaker", key: str, now: datetime, report: RecheckReport
    ) -> None:
        async with self._locked(key):
            item = await self._store.get(key)
            if item is None or not item.is_due(now):
                report.skipped.append(key)
                return

            try:
                movie = await self._load_movie(item.movie_id)
            except (TimeoutError, OSError, TransientResourceError) as e:
                logger.warning("pending_movie_lookup_failed", key=key, error=str(e))
                rescheduled = item.transition(
                    item.state, now, next_check_at=now + self._retry_delay
                )
                report.rescheduled.append(await self._store.update(rescheduled, item.version))
                return

            if movie is None:
                await self._discard(item, now, "Movie no longer exists", report)
                return

            decision, bundle = await maker.decide(
                item.candidate,
                movie,
                SearchCriteria(trigger=SearchTrigger.RECHECK),
                now,
            )

            if decision.is_temporarily_rejected:
                rescheduled = item.transition(
                    PendingState.PENDING,
                    now,
                    next_check_at=self.next_check_at(item.candidate, bundle, now),
                )
                stored = await self._store.update(rescheduled, item.version)
                logger.info(
                    "pending_item_rescheduled",
                    key=key,
                    next_check_at=stored.next_check_at.isoformat(),
                )
                report.rescheduled.append(stored)
                return

            if not decision.accepted:
                await self._discard(item, now, "; ".join(decision.reasons), report)
                return

            # Lease the item past this run so an overlapping run does not grab it too
            ready = await self._store.update(
                item.transition(
                    PendingState.READY, now, next_check_at=now + self._retry_delay
                ),
                item.version,
            )
            logger.info("pending_item_ready", key=key, title=ready.candidate.title)
            self._in_flight.add(key)

        try:
            success, error = await self._hand_off(ready)
            await self._finish_handoff(ready, success, error, now, report)
        finally:
            self._in_flight.discard(key)
            self._satisfied.discard(key)

    async def _finish_handoff(
        self,
        ready: PendingItem,
        success: bool,
        error: str | None,
        now: datetime,
        report: RecheckReport,
    ) -> None:
        key = ready.key

        async with self._locked(key):
            # The lease ends under the key lock
            self._in_flight.discard(key)
            satisfied = key in self._satisfied

            if success:
                try:
                    await self._store.delete(key, ready.version)
                except QueueStateConflict:
                    logger.warning("pending_item_changed_during_grab", key=key)
                grabbed = ready.transition(PendingState.GRABBED, now)
                logger.info("pending_item_grabbed", key=key, title=grabbed.candidate.title)
                report.grabbed.append(grabbed)
                return

            if satisfied:
                await self._discard(ready, now, SATISFIED_REASON, report)
                return

            failed = ready.transition(
                PendingState.READY,
                now,
                grab_attempts=ready.grab_attempts + 1,
                last_error=error,
                next_check_at=now + self._retry_delay,
            )
            stored = await self._store.update(failed, ready.version)
            logger.warning(
                "pending_grab_failed",
                key=key,
                title=stored.candidate.title,
                grab_attempts=stored.grab_attempts,
                error=error,
            )
            report.failed.append(stored)

    async def _hand_off(self, item: PendingItem) -> tuple[bool, str | None]:
        try:
            success = await self._grabber.grab(item.candidate)
        except Exception as e:
            logger.exception("pending_grab_error", key=item.key, error=str(e))
            return False, str(e)

        if not success:
            return False, "Grab handoff was refused"
        return True, None

    async def _discard(
        self, item: PendingItem, now: datetime, reason: str, report: RecheckReport
    ) -> None:
        await self._store.delete(item.key, item.version)
        discarded = item.transition(PendingState.DISCARDED, now, last_error=reason)
        logger.info(
            "pending_item_discarded",
            key=item.key,
            title=item.candidate.title,
            reason=reason,
        )
        report.discarded.append(discarded)
