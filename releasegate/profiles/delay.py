"""Delay profiles and protocol-specific delays."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DownloadProtocol(str, Enum):
    """How a release is downloaded."""

    USENET = "usenet"
    TORRENT = "torrent"
    UNKNOWN = "unknown"


class DelayProfile(BaseModel):
    """How long to wait for a better release before grabbing.

    Attributes:
        usenet_delay: Minutes to wait for usenet releases.
        torrent_delay: Minutes to wait for torrent releases.
        bypass_if_highest_quality: Skip the delay for the best allowed quality.
        bypass_if_above_custom_format_score: Skip the delay for high scoring releases.
        minimum_custom_format_score: Score required for the custom format bypass.
        order: Tie-break between equally specific profiles (lower wins).
        tags: Movie tags the profile applies to (empty = default profile).
    """

    model_config = ConfigDict(frozen=True)

    id: int
    order: int = 0
    preferred_protocol: DownloadProtocol = DownloadProtocol.USENET
    usenet_delay: int = Field(default=0, ge=0)
    torrent_delay: int = Field(default=0, ge=0)
    bypass_if_highest_quality: bool = False
    bypass_if_above_custom_format_score: bool = False
    minimum_custom_format_score: int = 0
    tags: frozenset[int] = Field(default_factory=frozenset)

    def get_protocol_delay(self, protocol: DownloadProtocol) -> int:
        """Delay in minutes for a download protocol."""
        if protocol == DownloadProtocol.USENET:
            return self.usenet_delay
        if protocol == DownloadProtocol.TORRENT:
            return self.torrent_delay
        return 0


def best_delay_profile(
    profiles: list[DelayProfile], tags: frozenset[int] | set[int]
) -> DelayProfile | None:
    """Pick the most tag-specific profile for a movie.

    The profile sharing the most tags with the movie wins, then the lowest
    ``order``. Tagless profiles are the fallback for movies no tagged profile
    matches.
    """
    movie_tags = set(tags)

    tagged = [p for p in profiles if p.tags and p.tags & movie_tags]
    if tagged:
        return min(tagged, key=lambda p: (-len(p.tags & movie_tags), p.order, p.id))

    defaults = [p for p in profiles if not p.tags]
    if defaults:
        return min(defaults, key=lambda p: (p.order, p.id))

    return None
