"""Parser module.

Turns indexer data (titles, sizes, dates) into immutable release candidates.
"""

from releasegate.parser.quality_parser import parse_quality, parse_revision
from releasegate.parser.release import (
    ReleaseCandidate,
    format_size,
    parse_release,
    parse_size,
)
from releasegate.profiles.delay import DownloadProtocol

__all__ = [
    "DownloadProtocol",
    "ReleaseCandidate",
    "format_size",
    "parse_quality",
    "parse_release",
    "parse_revision",
    "parse_size",
]
