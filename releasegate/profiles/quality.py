"""Quality definitions, revisions and quality profiles.

A quality profile lists qualities from worst to best; that order is the only
ranking used when releases are compared. Within one quality the revision
breaks ties: a REAL release beats any number of PROPERs, then the higher
version wins.
"""

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Quality Definitions
# =============================================================================


class Quality(BaseModel):
    """A single source/resolution combination."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    source: str = "unknown"
    resolution: int = 0

    def __str__(self) -> str:
        return self.name


UNKNOWN = Quality(id=0, name="Unknown")
SDTV = Quality(id=1, name="SDTV", source="tv", resolution=480)
DVD = Quality(id=2, name="DVD", source="dvd", resolution=480)
WEBDL480P = Quality(id=8, name="WEBDL-480p", source="webdl", resolution=480)
WEBRIP480P = Quality(id=12, name="WEBRip-480p", source="webrip", resolution=480)
BLURAY480P = Quality(id=20, name="Bluray-480p", source="bluray", resolution=480)
HDTV720P = Quality(id=4, name="HDTV-720p", source="tv", resolution=720)
WEBDL720P = Quality(id=5, name="WEBDL-720p", source="webdl", resolution=720)
WEBRIP720P = Quality(id=14, name="WEBRip-720p", source="webrip", resolution=720)
BLURAY720P = Quality(id=6, name="Bluray-720p", source="bluray", resolution=720)
HDTV1080P = Quality(id=9, name="HDTV-1080p", source="tv", resolution=1080)
WEBDL1080P = Quality(id=3, name="WEBDL-1080p", source="webdl", resolution=1080)
WEBRIP1080P = Quality(id=15, name="WEBRip-1080p", source="webrip", resolution=1080)
BLURAY1080P = Quality(id=7, name="Bluray-1080p", source="bluray", resolution=1080)
REMUX1080P = Quality(id=30, name="Remux-1080p", source="remux", resolution=1080)
HDTV2160P = Quality(id=16, name="HDTV-2160p", source="tv", resolution=2160)
WEBDL2160P = Quality(id=18, name="WEBDL-2160p", source="webdl", resolution=2160)
WEBRIP2160P = Quality(id=17, name="WEBRip-2160p", source="webrip", resolution=2160)
BLURAY2160P = Quality(id=19, name="Bluray-2160p", source="bluray", resolution=2160)
REMUX2160P = Quality(id=31, name="Remux-2160p", source="remux", resolution=2160)

# Default ordering, worst to best
ALL_QUALITIES: list[Quality] = [
    UNKNOWN,
    SDTV,
    DVD,
    WEBDL480P,
    WEBRIP480P,
    BLURAY480P,
    HDTV720P,
    WEBDL720P,
    WEBRIP720P,
    BLURAY720P,
    HDTV1080P,
    WEBDL1080P,
    WEBRIP1080P,
    BLURAY1080P,
    REMUX1080P,
    HDTV2160P,
    WEBDL2160P,
    WEBRIP2160P,
    BLURAY2160P,
    REMUX2160P,
]

QUALITIES_BY_ID: dict[int, Quality] = {q.id: q for q in ALL_QUALITIES}


def quality_by_id(quality_id: int) -> Quality:
    """Look up a known quality, falling back to Unknown."""
    return QUALITIES_BY_ID.get(quality_id, UNKNOWN)


# =============================================================================
# Revisions
# =============================================================================


class Revision(BaseModel):
    """Release revision (PROPER/REPACK bump the version, REAL bumps real)."""

    model_config = ConfigDict(frozen=True)

    version: int = Field(default=1, ge=1)
    real: int = Field(default=0, ge=0)
    is_repack: bool = False

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.real, self.version)

    def compare(self, other: "Revision") -> int:
        """Return 1, 0 or -1 like a classic comparator."""
        if self.sort_key > other.sort_key:
            return 1
        if self.sort_key < other.sort_key:
            return -1
        return 0


class QualityModel(BaseModel):
    """Parsed quality of a release or file."""

    model_config = ConfigDict(frozen=True)

    quality: Quality = UNKNOWN
    revision: Revision = Field(default_factory=Revision)

    def __str__(self) -> str:
        suffix = ""
        if self.revision.real:
            suffix += " REAL"
        if self.revision.version > 1:
            suffix += " Proper" if not self.revision.is_repack else " Repack"
        return f"{self.quality.name}{suffix}"


# =============================================================================
# Quality Profile
# =============================================================================


class QualityProfileItem(BaseModel):
    """One position in a quality profile."""

    model_config = ConfigDict(frozen=True)

    quality: Quality
    allowed: bool = True


class QualityProfile(BaseModel):
    """Ordered allowed qualities with a cutoff and custom format weights.

    Attributes:
        items: Qualities ordered worst to best.
        cutoff: Quality id at which no further quality upgrades are wanted.
        upgrade_allowed: Whether existing files may be replaced by better qualities.
        format_items: Custom format name to score weight.
        minimum_format_score: Releases scoring below this are rejected.
        cutoff_format_score: Score an existing file needs to count as "cutoff met".
    """

    model_config = ConfigDict(frozen=True)

    id: int
    name: str = ""
    items: list[QualityProfileItem] = Field(default_factory=list)
    cutoff: int = 0
    upgrade_allowed: bool = True
    format_items: dict[str, int] = Field(default_factory=dict)
    minimum_format_score: int = 0
    cutoff_format_score: int = 0

    def index_of(self, quality: Quality) -> int:
        """Position of a quality in the profile, -1 when not listed."""
        for index, item in enumerate(self.items):
            if item.quality.id == quality.id:
                return index
        return -1

    def is_allowed(self, quality: Quality) -> bool:
        return any(item.allowed and item.quality.id == quality.id for item in self.items)

    def last_allowed_quality(self) -> Quality | None:
        """Best quality the profile still accepts."""
        for item in reversed(self.items):
            if item.allowed:
                return item.quality
        return None

    @property
    def cutoff_quality(self) -> Quality:
        return quality_by_id(self.cutoff)

    def compare(self, left: Quality, right: Quality) -> int:
        """Compare two qualities by profile position."""
        left_index = self.index_of(left)
        right_index = self.index_of(right)
        if left_index > right_index:
            return 1
        if left_index < right_index:
            return -1
        return 0

    def compare_models(self, left: QualityModel, right: QualityModel) -> int:
        """Compare qualities first, then revisions."""
        result = self.compare(left.quality, right.quality)
        if result != 0:
            return result
        return left.revision.compare(right.revision)

    def format_score(self, format_names: list[str] | tuple[str, ...]) -> int:
        """Sum of weights for the matched custom formats."""
        return sum(self.format_items.get(name, 0) for name in format_names)


def build_quality_profile(
    profile_id: int,
    qualities: list[Quality],
    cutoff: Quality,
    **kwargs: object,
) -> QualityProfile:
    """Create a profile allowing exactly ``qualities`` in the given order."""
    return QualityProfile(
        id=profile_id,
        items=[QualityProfileItem(quality=q) for q in qualities],
        cutoff=cutoff.id,
        **kwargs,
    )
