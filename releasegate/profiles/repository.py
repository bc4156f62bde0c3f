"""Profile repositories and the per-movie profile bundle.

The engine only reads profiles. Real deployments back the repository with
their own storage; ``InMemoryProfileRepository`` serves tests and embedding.
"""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from releasegate.profiles.delay import DelayProfile, best_delay_profile
from releasegate.profiles.quality import QualityProfile
from releasegate.profiles.restrictions import RestrictionProfile


class ProfileBundle(BaseModel):
    """Profiles resolved for one movie at evaluation time.

    ``restriction_profiles`` is None when the lookup failed; the restriction
    rule then fails open. ``delay_profile`` is None when no profile applies or
    the lookup failed, which means no delay.
    """

    model_config = ConfigDict(frozen=True)

    quality_profile: QualityProfile
    restriction_profiles: list[RestrictionProfile] | None = Field(default_factory=list)
    delay_profile: DelayProfile | None = None

    @property
    def identity(self) -> str:
        """Key part identifying the profile context of a pending item."""
        delay_id = self.delay_profile.id if self.delay_profile else 0
        return f"q{self.quality_profile.id}:d{delay_id}"

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe copy stored with pending items."""
        return self.model_dump(mode="json")


class ProfileRepository(ABC):
    """Read-only access to restriction and delay profiles."""

    @abstractmethod
    async def restriction_profiles_for_tags(
        self, tags: frozenset[int], indexer_id: int = 0
    ) -> list[RestrictionProfile]:
        """Enabled restriction profiles applying to the tags, in configured order."""
        pass

    @abstractmethod
    async def best_delay_profile_for_tags(self, tags: frozenset[int]) -> DelayProfile | None:
        """The most tag-specific delay profile."""
        pass


class InMemoryProfileRepository(ProfileRepository):
    """Profile repository holding profiles in lists."""

    def __init__(
        self,
        restriction_profiles: list[RestrictionProfile] | None = None,
        delay_profiles: list[DelayProfile] | None = None,
    ):
        self.restriction_profiles = list(restriction_profiles or [])
        self.delay_profiles = list(delay_profiles or [])

    async def restriction_profiles_for_tags(
        self, tags: frozenset[int], indexer_id: int = 0
    ) -> list[RestrictionProfile]:
        return [p for p in self.restriction_profiles if p.applies_to(tags, indexer_id)]

    async def best_delay_profile_for_tags(self, tags: frozenset[int]) -> DelayProfile | None:
        return best_delay_profile(self.delay_profiles, tags)
