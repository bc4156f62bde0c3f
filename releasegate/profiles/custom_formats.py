"""Custom format matching and scoring.

Formats are matched against the release title; the quality profile assigns
each format a weight and the release score is the sum over matched formats.
"""

import structlog
from pydantic import BaseModel, ConfigDict, Field

from releasegate.errors import MalformedUserPattern
from releasegate.profiles.quality import QualityProfile
from releasegate.profiles.terms import find_match

logger = structlog.get_logger(__name__)


class CustomFormat(BaseModel):
    """Named title pattern set (OR semantics over terms)."""

    model_config = ConfigDict(frozen=True)

    name: str
    terms: list[str] = Field(default_factory=list)
    negate: bool = False

    def matches(self, title: str) -> bool:
        """Check the format against a title; broken patterns never match."""
        try:
            hit = find_match(self.terms, title) is not None
        except MalformedUserPattern as e:
            logger.warning("custom_format_pattern_invalid", format=self.name, error=str(e))
            return False
        return hit != self.negate


class CustomFormatScorer:
    """Computes matched formats and scores for release titles."""

    def __init__(self, formats: list[CustomFormat] | None = None):
        self._formats = list(formats or [])

    @property
    def formats(self) -> list[CustomFormat]:
        return list(self._formats)

    def matched_formats(self, title: str) -> list[str]:
        """Names of all formats matching ``title``, in configuration order."""
        return [f.name for f in self._formats if f.matches(title)]

    def score(self, title: str, profile: QualityProfile) -> tuple[list[str], int]:
        """Return (matched format names, total score) for a title under a profile."""
        matched = self.matched_formats(title)
        return matched, profile.format_score(matched)
