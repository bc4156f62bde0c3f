"""Profiles module.

Quality profiles, restriction profiles, delay profiles, custom formats and the
repository contract that resolves them per movie.
"""

from releasegate.profiles.custom_formats import CustomFormat, CustomFormatScorer
from releasegate.profiles.delay import DelayProfile, DownloadProtocol, best_delay_profile
from releasegate.profiles.quality import (
    ALL_QUALITIES,
    Quality,
    QualityModel,
    QualityProfile,
    QualityProfileItem,
    Revision,
    build_quality_profile,
    quality_by_id,
)
from releasegate.profiles.repository import (
    InMemoryProfileRepository,
    ProfileBundle,
    ProfileRepository,
)
from releasegate.profiles.restrictions import RestrictionProfile

__all__ = [
    # Qualities
    "ALL_QUALITIES",
    "Quality",
    "QualityModel",
    "QualityProfile",
    "QualityProfileItem",
    "Revision",
    "build_quality_profile",
    "quality_by_id",
    # Profiles
    "CustomFormat",
    "CustomFormatScorer",
    "DelayProfile",
    "DownloadProtocol",
    "RestrictionProfile",
    "best_delay_profile",
    # Repository
    "InMemoryProfileRepository",
    "ProfileBundle",
    "ProfileRepository",
]
