"""Release candidates as seen by the decision engine."""

import re
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field, field_validator

from releasegate.parser.quality_parser import parse_quality
from releasegate.profiles.custom_formats import CustomFormatScorer
from releasegate.profiles.delay import DownloadProtocol
from releasegate.profiles.quality import QualityModel, QualityProfile

SIZE_MULTIPLIERS = {
    "B": 1,
    "KB": 1024,
    "KIB": 1024,
    "MB": 1024**2,
    "MIB": 1024**2,
    "GB": 1024**3,
    "GIB": 1024**3,
    "TB": 1024**4,
    "TIB": 1024**4,
}


class ReleaseCandidate(BaseModel):
    """A single release offer, immutable once parsed.

    Attributes:
        source: Indexer or feed name the release came from.
        title: Release name.
        quality: Parsed quality and revision.
        publish_date: When the indexer published the release (UTC).
        protocol: Usenet or torrent.
        size: Size in bytes.
        custom_formats: Names of matched custom formats.
        custom_format_score: Sum of the matched formats' weights.
        is_existing_file: The release refers to a file already on disk.
    """

    model_config = ConfigDict(frozen=True)

    source: str
    title: str
    quality: QualityModel = Field(default_factory=QualityModel)
    publish_date: datetime
    protocol: DownloadProtocol = DownloadProtocol.USENET
    size: int = Field(default=0, ge=0)
    indexer_id: int = 0
    download_url: str = ""
    custom_formats: tuple[str, ...] = ()
    custom_format_score: int = 0
    is_existing_file: bool = False

    @field_validator("publish_date")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)

    @property
    def identity(self) -> tuple[str, str]:
        return (self.source, self.title)

    def age(self, now: datetime) -> timedelta:
        return now - self.publish_date

    def age_minutes(self, now: datetime) -> float:
        return self.age(now).total_seconds() / 60

    def to_display_string(self) -> str:
        """Format candidate for logs and reports."""
        return f"{self.title} [{self.quality}] | {format_size(self.size)} | {self.source}"


# =============================================================================
# Helper Functions
# =============================================================================


def parse_size(size_str: str) -> int:
    """Parse a human-readable size ("4.37 GiB") into bytes; 0 if unparseable."""
    match = re.match(
        r"([\d.,]+)\s*(GB|MB|KB|TB|GiB|MiB|KiB|TiB|B)?", size_str.strip(), re.IGNORECASE
    )
    if not match:
        return 0

    try:
        # Handle both comma and dot as decimal separator
        number = float(match.group(1).replace(",", "."))
        unit = (match.group(2) or "MB").upper()
        return int(number * SIZE_MULTIPLIERS.get(unit, 1024**2))
    except ValueError:
        return 0


def format_size(size_bytes: int | None) -> str:
    """Format bytes for humans ("4.4 GB")."""
    if size_bytes is None:
        return "unknown"
    value = float(size_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if abs(value) < 1024:
            return f"{value:.1f} {unit}" if unit != "B" else f"{int(value)} B"
        value /= 1024
    return f"{value:.1f} TB"


def parse_release(
    title: str,
    source: str,
    publish_date: datetime,
    protocol: DownloadProtocol = DownloadProtocol.USENET,
    size: int | str = 0,
    quality_profile: QualityProfile | None = None,
    scorer: CustomFormatScorer | None = None,
    **extra: object,
) -> ReleaseCandidate:
    """Build a candidate from indexer data, parsing quality and scoring formats.

    Args:
        title: Release name.
        source: Indexer/feed name.
        publish_date: Publish timestamp.
        protocol: Download protocol.
        size: Bytes, or a human-readable size string.
        quality_profile: Profile whose weights score the matched formats.
        scorer: Custom format scorer; without it the release has no formats.
        **extra: Other ReleaseCandidate fields (indexer_id, download_url, ...).
    """
    size_bytes = parse_size(size) if isinstance(size, str) else size

    formats: list[str] = []
    score = 0
    if scorer is not None:
        formats = scorer.matched_formats(title)
        if quality_profile is not None:
            score = quality_profile.format_score(formats)

    return ReleaseCandidate(
        source=source,
        title=title,
        quality=parse_quality(title),
        publish_date=publish_date,
        protocol=protocol,
        size=size_bytes,
        custom_formats=tuple(formats),
        custom_format_score=score,
        **extra,
    )
