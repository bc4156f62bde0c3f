"""Decision rules.

Every rule reads the candidate, the resolved profile bundle and the evaluation
context and returns one or more decision entries. Expected conditions (bad
patterns, unknown disk space) become entries; nothing here raises for them.
"""

import asyncio
from abc import ABC, abstractmethod

import structlog

from releasegate.config import Settings
from releasegate.decision.models import (
    DecisionEntry,
    EvaluationContext,
    RejectionType,
)
from releasegate.decision.upgrade import (
    cutoff_not_met,
    is_revision_upgrade,
    is_upgradable,
    is_upgrade_allowed,
)
from releasegate.disk import DiskProvider
from releasegate.errors import TransientResourceError
from releasegate.parser.release import ReleaseCandidate, format_size
from releasegate.profiles.repository import ProfileBundle
from releasegate.profiles.restrictions import RestrictionProfile
from releasegate.profiles.terms import find_malformed, find_match

logger = structlog.get_logger(__name__)


class DecisionSpecification(ABC):
    """A single rule of the decision pipeline."""

    name: str = "specification"

    @abstractmethod
    async def evaluate(
        self,
        candidate: ReleaseCandidate,
        bundle: ProfileBundle,
        context: EvaluationContext,
    ) -> list[DecisionEntry]:
        """Evaluate the rule; must return at least one entry."""
        pass

    def accept(self, reason: str | None = None) -> list[DecisionEntry]:
        return [DecisionEntry.accept(self.name, reason)]

    def reject(
        self, reason: str, rejection_type: RejectionType = RejectionType.PERMANENT
    ) -> list[DecisionEntry]:
        return [DecisionEntry.reject(self.name, reason, rejection_type)]


# =============================================================================
# Quality rules
# =============================================================================


class QualityAllowedSpecification(DecisionSpecification):
    """The candidate's quality must be allowed by the quality profile."""

    name = "quality_allowed"

    async def evaluate(self, candidate, bundle, context):
        profile = bundle.quality_profile
        if profile.is_allowed(candidate.quality.quality):
            return self.accept()
        quality_name = candidate.quality.quality.name
        return self.reject(f"{quality_name} is not wanted in profile {profile.name or profile.id}")


class CustomFormatScoreSpecification(DecisionSpecification):
    """The custom format score must reach the profile minimum."""

    name = "custom_format_score"

    async def evaluate(self, candidate, bundle, context):
        minimum = bundle.quality_profile.minimum_format_score
        if candidate.custom_format_score >= minimum:
            return self.accept()
        return self.reject(
            f"Custom format score {candidate.custom_format_score} is below minimum {minimum}"
        )


class UpgradeDiskSpecification(DecisionSpecification):
    """With files on disk, the candidate must be a wanted upgrade of each of them."""

    name = "upgrade_disk"

    async def evaluate(self, candidate, bundle, context):
        profile = bundle.quality_profile

        for existing in context.existing_files:
            if not cutoff_not_met(
                profile, existing.quality, existing.custom_format_score, candidate.quality
            ):
                return self.reject(f"Existing file meets cutoff: {existing.quality}")

            if not is_upgradable(
                profile,
                existing.quality,
                existing.custom_format_score,
                candidate.quality,
                candidate.custom_format_score,
            ):
                return self.reject(
                    f"Existing file is of equal or better quality: {existing.quality}"
                )

            if not is_upgrade_allowed(profile, existing.quality, candidate.quality):
                return self.reject("Quality profile does not allow upgrades")

        return self.accept()


# =============================================================================
# Restrictions
# =============================================================================


class RestrictionSpecification(DecisionSpecification):
    """Required/ignored terms of every active restriction profile.

    Each profile yields one entry. Within a profile the required terms are
    ORed (one match suffices) and any ignored term rejects.
    """

    name = "restrictions"

    async def evaluate(self, candidate, bundle, context):
        profiles = bundle.restriction_profiles
        if profiles is None:
            return self.accept("Restriction profiles unavailable, check skipped")
        if not profiles:
            return self.accept()

        return [self._check_profile(candidate.title, profile) for profile in profiles]

    def _check_profile(self, title: str, profile: RestrictionProfile) -> DecisionEntry:
        malformed = find_malformed(profile.required) or find_malformed(profile.ignored)
        if malformed is not None:
            logger.warning(
                "restriction_term_invalid",
                profile=profile.display_name,
                term=malformed.term,
                error=str(malformed),
            )
            return DecisionEntry.reject(
                self.name,
                f"Invalid term {malformed.term!r} in restriction profile {profile.display_name}",
            )

        required = [term for term in profile.required if term.strip()]
        if required and find_match(required, title) is None:
            logger.debug("release_missing_required_terms", title=title, required=required)
            return DecisionEntry.reject(
                self.name,
                f"Does not contain one of the required terms: {', '.join(required)}",
            )

        ignored_hit = find_match(profile.ignored, title)
        if ignored_hit is not None:
            logger.debug("release_contains_ignored_term", title=title, term=ignored_hit)
            return DecisionEntry.reject(self.name, f"Contains ignored term: {ignored_hit}")

        return DecisionEntry.accept(self.name)


# =============================================================================
# Free space
# =============================================================================


class FreeSpaceSpecification(DecisionSpecification):
    """Destination must keep the configured margin free after the download.

    Disk problems never block a release: unknown space, timeouts and I/O
    errors all accept.
    """

    name = "free_space"

    def __init__(self, disk: DiskProvider, settings: Settings):
        self._disk = disk
        self._settings = settings

    async def evaluate(self, candidate, bundle, context):
        if self._settings.skip_free_space_check:
            logger.debug("free_space_check_skipped")
            return self.accept()

        if candidate.is_existing_file:
            logger.debug("free_space_check_skipped_existing_file", title=candidate.title)
            return self.accept()

        movie_path = context.movie.path
        if not movie_path:
            logger.debug("free_space_check_no_movie_path", movie_id=context.movie.id)
            return self.accept()

        parent = self._disk.parent_path(movie_path)
        try:
            free_space = await asyncio.wait_for(
                asyncio.to_thread(self._disk.available_space, parent),
                timeout=self._settings.disk_check_timeout_seconds,
            )
        except FileNotFoundError as e:
            logger.error("free_space_path_not_found", path=parent, error=str(e))
            return self.accept()
        except TimeoutError:
            logger.warning(
                "free_space_check_timeout",
                path=parent,
                timeout=self._settings.disk_check_timeout_seconds,
            )
            return self.accept()
        except (OSError, TransientResourceError) as e:
            logger.error("free_space_check_failed", path=parent, error=str(e))
            return self.accept()

        if free_space is None:
            logger.debug("free_space_unknown", path=parent)
            return self.accept()

        required = candidate.size + self._settings.minimum_free_space_bytes
        if free_space < required:
            logger.warning(
                "not_enough_free_space",
                path=parent,
                free_space=free_space,
                required=required,
                title=candidate.title,
            )
            return self.reject(
                f"Not enough free space: {format_size(free_space)} available, "
                f"{format_size(required)} required"
            )

        return self.accept()


# =============================================================================
# Delay
# =============================================================================


class DelaySpecification(DecisionSpecification):
    """Waits out the delay profile unless a bypass applies.

    Checked in order: user-invoked search, zero delay, revision upgrade of an
    existing file, highest allowed quality bypass, custom format score bypass,
    then the release age. Young releases are rejected temporarily, or
    permanently when an equal or better release is already pending.
    """

    name = "delay"

    async def evaluate(self, candidate, bundle, context):
        if context.search.user_invoked:
            return self.accept("User invoked search, delay skipped")

        delay_profile = bundle.delay_profile
        if delay_profile is None:
            return self.accept()

        delay = delay_profile.get_protocol_delay(candidate.protocol)
        if delay == 0:
            return self.accept()

        profile = bundle.quality_profile

        for existing in context.existing_files:
            if (
                is_revision_upgrade(existing.quality, candidate.quality)
                and is_upgradable(
                    profile,
                    existing.quality,
                    existing.custom_format_score,
                    candidate.quality,
                    candidate.custom_format_score,
                )
                and is_upgrade_allowed(profile, existing.quality, candidate.quality)
            ):
                return self.accept("Better revision of existing quality, delay skipped")

        if delay_profile.bypass_if_highest_quality:
            best = profile.last_allowed_quality()
            if (
                best is not None
                and profile.index_of(candidate.quality.quality) >= 0
                and profile.compare(candidate.quality.quality, best) >= 0
            ):
                return self.accept("Highest allowed quality, delay skipped")

        if (
            delay_profile.bypass_if_above_custom_format_score
            and candidate.custom_format_score >= delay_profile.minimum_custom_format_score
        ):
            return self.accept("Custom format score above minimum, delay skipped")

        age_minutes = candidate.age_minutes(context.now)
        if age_minutes >= delay:
            return self.accept()

        competitor = context.pending_competitor
        if competitor is not None and not is_upgradable(
            profile,
            competitor.quality,
            competitor.custom_format_score,
            candidate.quality,
            candidate.custom_format_score,
        ):
            return self.reject(
                f"Release of equal or better quality is already pending: {competitor.title}"
            )

        return self.reject(
            f"Release is younger than configured delay ({int(age_minutes)} < {delay} minutes)",
            RejectionType.TEMPORARY,
        )


def default_specifications(disk: DiskProvider, settings: Settings) -> list[DecisionSpecification]:
    """The fixed, ordered rule list of the pipeline."""
    return [
        QualityAllowedSpecification(),
        CustomFormatScoreSpecification(),
        UpgradeDiskSpecification(),
        RestrictionSpecification(),
        FreeSpaceSpecification(disk, settings),
        DelaySpecification(),
    ]
