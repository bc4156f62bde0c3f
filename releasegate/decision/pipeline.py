"""Specification pipeline: runs every rule and collects all outcomes."""

from collections.abc import Sequence

import structlog

from releasegate.decision.models import Decision, DecisionEntry, EvaluationContext
from releasegate.decision.specifications import DecisionSpecification
from releasegate.parser.release import ReleaseCandidate
from releasegate.profiles.repository import ProfileBundle

logger = structlog.get_logger(__name__)


class SpecificationPipeline:
    """Runs a fixed, ordered list of rules.

    Rules never short-circuit each other: a rejection early in the list still
    lets the later rules run so callers see every reason.
    """

    def __init__(self, specifications: Sequence[DecisionSpecification]):
        self._specifications = tuple(specifications)

    @property
    def specifications(self) -> tuple[DecisionSpecification, ...]:
        return self._specifications

    async def evaluate(
        self,
        candidate: ReleaseCandidate,
        bundle: ProfileBundle,
        context: EvaluationContext,
    ) -> Decision:
        """Evaluate all rules for one candidate.

        Args:
            candidate: Release being evaluated.
            bundle: Profiles resolved for the movie.
            context: Existing files, pending competitor, clock and search info.

        Returns:
            Decision holding the entries of every rule, in rule order.
        """
        entries: list[DecisionEntry] = []

        for specification in self._specifications:
            try:
                result = await specification.evaluate(candidate, bundle, context)
            except Exception as e:
                logger.exception(
                    "specification_failed",
                    rule=specification.name,
                    title=candidate.title,
                    error=str(e),
                )
                result = [
                    DecisionEntry.reject(specification.name, f"{specification.name} failed: {e}")
                ]

            if not result:
                result = [DecisionEntry.accept(specification.name)]
            entries.extend(result)

        decision = Decision(candidate=candidate, entries=tuple(entries))

        if not decision.accepted:
            logger.debug(
                "release_rejected",
                title=candidate.title,
                movie_id=context.movie.id,
                reasons=decision.reasons,
            )

        return decision
