"""Decision aggregator: builds the evaluation context and routes the result.

``DecisionMaker`` is the single entry point for both live ingestion
(``evaluate``/``process``) and the pending recheck driver (``decide``), so
both paths run exactly the same rules.
"""

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, TypeVar

import structlog

from releasegate.config import Settings
from releasegate.decision.models import Decision, EvaluationContext, SearchCriteria
from releasegate.decision.pipeline import SpecificationPipeline
from releasegate.errors import ConfigurationError, QueueStateConflict, TransientResourceError
from releasegate.movies import ExistingFileLookup, Movie
from releasegate.parser.release import ReleaseCandidate
from releasegate.pending.models import PendingItem, UpsertOutcome
from releasegate.profiles.repository import ProfileBundle, ProfileRepository

if TYPE_CHECKING:
    from releasegate.grab import Grabber
    from releasegate.pending.queue import PendingQueue
    from releasegate.reporting import ReasonSink

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Attempts of the evaluate-and-route cycle before a queue conflict is given up
MAX_CONFLICT_ATTEMPTS = 3


class ProcessOutcome(str, Enum):
    """What live processing did with a candidate."""

    GRABBED = "grabbed"
    GRAB_FAILED = "grab_failed"
    PENDING = "pending"
    DISCARDED = "discarded"
    REJECTED = "rejected"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of ``DecisionMaker.process``.

    Attributes:
        outcome: Route taken for the candidate.
        decision: Full decision (None only for CONFLICT).
        pending_item: Item stored or kept in the queue, if any.
        superseded: Item removed from the queue because of this candidate.
    """

    outcome: ProcessOutcome
    decision: Decision | None = None
    pending_item: PendingItem | None = None
    superseded: PendingItem | None = None


class DecisionMaker:
    """Evaluates candidates for a movie and routes the decisions.

    Routing of ``process``:
    - accepted: grab now, then supersede a waiting item of the same key
    - rejected only temporarily: upsert into the pending queue
    - anything else: hand to the reason sink
    """

    def __init__(
        self,
        pipeline: SpecificationPipeline,
        profiles: ProfileRepository,
        files: ExistingFileLookup,
        settings: Settings,
        pending_queue: "PendingQueue | None" = None,
        grabber: "Grabber | None" = None,
        reason_sink: "ReasonSink | None" = None,
    ):
        """Initialize the decision maker.

        Args:
            pipeline: Ordered rules to run
            profiles: Restriction and delay profile lookups
            files: Existing-file lookup
            settings: Timeouts and environment
            pending_queue: Queue for deferred candidates (optional for evaluate-only use)
            grabber: Grab collaborator used by ``process``
            reason_sink: Receives rejected decisions

        Raises:
            ConfigurationError: In production, if no reason sink is wired.
        """
        if reason_sink is None and settings.is_production:
            raise ConfigurationError("Reason sink is not configured")

        self._pipeline = pipeline
        self._profiles = profiles
        self._files = files
        self._settings = settings
        self._pending_queue = pending_queue
        self._grabber = grabber
        self._reason_sink = reason_sink

        if pending_queue is not None:
            pending_queue.attach_decision_maker(self)

    @property
    def pipeline(self) -> SpecificationPipeline:
        return self._pipeline

    async def _bounded(self, lookup: Awaitable[T], what: str, **context) -> T | None:
        """Await a collaborator lookup; None when it fails or times out."""
        try:
            return await asyncio.wait_for(
                lookup, timeout=self._settings.profile_lookup_timeout_seconds
            )
        except TimeoutError:
            logger.warning(
                "lookup_timeout",
                lookup=what,
                timeout=self._settings.profile_lookup_timeout_seconds,
                **context,
            )
        except (OSError, TransientResourceError) as e:
            logger.warning("lookup_failed", lookup=what, error=str(e), **context)
        return None

    async def resolve_bundle(self, movie: Movie, candidate: ReleaseCandidate) -> ProfileBundle:
        """Resolve the movie's profiles by its tags (and the candidate's indexer)."""
        restrictions = await self._bounded(
            self._profiles.restriction_profiles_for_tags(movie.tags, candidate.indexer_id),
            "restriction_profiles",
            movie_id=movie.id,
        )
        delay_profile = await self._bounded(
            self._profiles.best_delay_profile_for_tags(movie.tags),
            "delay_profile",
            movie_id=movie.id,
        )
        return ProfileBundle(
            quality_profile=movie.quality_profile,
            restriction_profiles=restrictions,
            delay_profile=delay_profile,
        )

    async def build_context(
        self,
        candidate: ReleaseCandidate,
        movie: Movie,
        bundle: ProfileBundle,
        search: SearchCriteria,
        now: datetime,
    ) -> EvaluationContext:
        """Gather existing files and the pending competitor for one evaluation."""
        files = await self._bounded(
            self._files.files_for_movie(movie.id), "existing_files", movie_id=movie.id
        )

        competitor = None
        if self._pending_queue is not None:
            competitor = await self._pending_queue.competitor_for(
                movie.id, bundle.identity, candidate
            )

        return EvaluationContext(
            movie=movie,
            now=now,
            search=search,
            existing_files=tuple(files or ()),
            pending_competitor=competitor,
        )

    async def decide(
        self,
        candidate: ReleaseCandidate,
        movie: Movie,
        search: SearchCriteria | None = None,
        now: datetime | None = None,
    ) -> tuple[Decision, ProfileBundle]:
        """Evaluate a candidate and also return the bundle it was evaluated against."""
        search = search or SearchCriteria()
        now = now or datetime.now(UTC)

        bundle = await self.resolve_bundle(movie, candidate)
        context = await self.build_context(candidate, movie, bundle, search, now)
        decision = await self._pipeline.evaluate(candidate, bundle, context)
        return decision, bundle

    async def evaluate(
        self,
        candidate: ReleaseCandidate,
        movie: Movie,
        search: SearchCriteria | None = None,
        now: datetime | None = None,
    ) -> Decision:
        """Evaluate a candidate for a movie without side effects.

        Args:
            candidate: Parsed release
            movie: Movie the release is offered for
            search: How the release was found (defaults to RSS)
            now: Evaluation time (defaults to UTC now)

        Returns:
            Decision with one or more entries per rule
        """
        decision, _ = await self.decide(candidate, movie, search, now)
        return decision

    async def process(
        self,
        candidate: ReleaseCandidate,
        movie: Movie,
        search: SearchCriteria | None = None,
        now: datetime | None = None,
    ) -> ProcessResult:
        """Evaluate a candidate and act on the decision.

        A queue conflict restarts the whole cycle with fresh context; after
        ``MAX_CONFLICT_ATTEMPTS`` the candidate is dropped for this round.
        """
        now = now or datetime.now(UTC)

        for attempt in range(1, MAX_CONFLICT_ATTEMPTS + 1):
            try:
                return await self._process_once(candidate, movie, search, now)
            except QueueStateConflict as e:
                logger.warning(
                    "decision_conflict_retry",
                    key=e.key,
                    title=candidate.title,
                    attempt=attempt,
                )

        logger.warning(
            "decision_conflict_gave_up",
            title=candidate.title,
            movie_id=movie.id,
            attempts=MAX_CONFLICT_ATTEMPTS,
        )
        return ProcessResult(ProcessOutcome.CONFLICT)

    async def _process_once(
        self,
        candidate: ReleaseCandidate,
        movie: Movie,
        search: SearchCriteria | None,
        now: datetime,
    ) -> ProcessResult:
        decision, bundle = await self.decide(candidate, movie, search, now)
        queue = self._pending_queue

        if decision.accepted:
            return await self._grab(candidate, movie, bundle, decision, now)

        if decision.is_temporarily_rejected and queue is not None:
            upserted = await queue.upsert(candidate, movie, bundle, now)
            if upserted.outcome == UpsertOutcome.KEPT_EXISTING:
                logger.info(
                    "pending_candidate_discarded",
                    title=candidate.title,
                    kept=upserted.item.candidate.title,
                )
                return ProcessResult(ProcessOutcome.DISCARDED, decision, upserted.item)
            return ProcessResult(
                ProcessOutcome.PENDING, decision, upserted.item, upserted.superseded
            )

        await self._report(decision, movie)
        return ProcessResult(ProcessOutcome.REJECTED, decision)

    async def _grab(
        self,
        candidate: ReleaseCandidate,
        movie: Movie,
        bundle: ProfileBundle,
        decision: Decision,
        now: datetime,
    ) -> ProcessResult:
        if self._grabber is None:
            raise ConfigurationError("Grabber is not configured")

        try:
            success = await self._grabber.grab(candidate)
            error = None if success else "Grab handoff was refused"
        except Exception as e:
            logger.exception("grab_error", title=candidate.title, error=str(e))
            success, error = False, str(e)

        queue = self._pending_queue

        if success:
            superseded = None
            if queue is not None:
                try:
                    superseded = await queue.supersede(movie.id, bundle.identity, now)
                except QueueStateConflict as e:
                    # The grab already happened; a retry would grab twice
                    logger.warning("supersede_conflict", key=e.key, title=candidate.title)
            logger.info("release_grabbed", movie_id=movie.id, title=candidate.title)
            return ProcessResult(ProcessOutcome.GRABBED, decision, superseded=superseded)

        if queue is None:
            logger.warning("grab_failed", movie_id=movie.id, title=candidate.title, error=error)
            return ProcessResult(ProcessOutcome.GRAB_FAILED, decision)

        item = await queue.hold_for_retry(candidate, movie, bundle, now, error or "")
        return ProcessResult(ProcessOutcome.GRAB_FAILED, decision, pending_item=item)

    async def _report(self, decision: Decision, movie: Movie) -> None:
        if self._reason_sink is None:
            raise ConfigurationError("Reason sink is not configured")

        try:
            await self._reason_sink.report(decision, movie)
        except Exception as e:
            if not self._settings.is_production:
                raise
            logger.error("reason_sink_failed", title=decision.candidate.title, error=str(e))
