"""Quality detection from release titles.

Detects source and resolution separately and maps the pair onto a known
quality, then reads the revision markers (PROPER/REPACK/vN/REAL).
"""

import re

from releasegate.profiles import quality as q
from releasegate.profiles.quality import Quality, QualityModel, Revision

# =============================================================================
# Patterns
# =============================================================================

# Word boundaries keep tokens like "DVDRip" from matching "DV"
RESOLUTION_PATTERNS: list[tuple[int, re.Pattern[str]]] = [
    (2160, re.compile(r"\b(?:2160p|4K|UHD)\b", re.IGNORECASE)),
    (1080, re.compile(r"\b1080[pi]\b", re.IGNORECASE)),
    (720, re.compile(r"\b720[pi]\b", re.IGNORECASE)),
    (480, re.compile(r"\b(?:480[pi]|576[pi])\b", re.IGNORECASE)),
]

SOURCE_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("remux", re.compile(r"\b(?:BD)?Remux\b", re.IGNORECASE)),
    ("bluray", re.compile(r"\b(?:Blu-?Ray|BDRip|BRRip)\b", re.IGNORECASE)),
    ("webrip", re.compile(r"\bWEB-?Rip\b", re.IGNORECASE)),
    ("webdl", re.compile(r"\b(?:WEB-?DL|WEB)\b", re.IGNORECASE)),
    ("tv", re.compile(r"\b(?:HDTV|PDTV)\b", re.IGNORECASE)),
    ("dvd", re.compile(r"\b(?:DVD-?Rip|DVD)\b", re.IGNORECASE)),
    ("sdtv", re.compile(r"\b(?:SDTV|TVRip)\b", re.IGNORECASE)),
]

PROPER_PATTERN = re.compile(r"\bPROPER\b", re.IGNORECASE)
REPACK_PATTERN = re.compile(r"\b(?:REPACK|RERIP)\b", re.IGNORECASE)
VERSION_PATTERN = re.compile(r"\bv(?P<version>[1-9])\b", re.IGNORECASE)
# Scene convention: only the upper-case token marks a REAL release
REAL_PATTERN = re.compile(r"\bREAL\b")

SOURCE_QUALITIES: dict[str, dict[int, Quality]] = {
    "remux": {2160: q.REMUX2160P, 1080: q.REMUX1080P},
    "bluray": {2160: q.BLURAY2160P, 1080: q.BLURAY1080P, 720: q.BLURAY720P, 480: q.BLURAY480P},
    "webrip": {2160: q.WEBRIP2160P, 1080: q.WEBRIP1080P, 720: q.WEBRIP720P, 480: q.WEBRIP480P},
    "webdl": {2160: q.WEBDL2160P, 1080: q.WEBDL1080P, 720: q.WEBDL720P, 480: q.WEBDL480P},
    "tv": {2160: q.HDTV2160P, 1080: q.HDTV1080P, 720: q.HDTV720P, 480: q.SDTV},
}

RESOLUTION_ONLY: dict[int, Quality] = {
    2160: q.HDTV2160P,
    1080: q.HDTV1080P,
    720: q.HDTV720P,
    480: q.SDTV,
}


def detect_resolution(title: str) -> int:
    """Return 2160/1080/720/480, or 0 when the title names no resolution."""
    for resolution, pattern in RESOLUTION_PATTERNS:
        if pattern.search(title):
            return resolution
    return 0


def detect_source(title: str) -> str | None:
    """Return the release source key, or None when the title names none."""
    for source, pattern in SOURCE_PATTERNS:
        if pattern.search(title):
            return source
    return None


def parse_revision(title: str) -> Revision:
    """Read PROPER/REPACK/vN/REAL markers."""
    version = 1
    is_repack = False

    if PROPER_PATTERN.search(title):
        version = 2
    if REPACK_PATTERN.search(title):
        version = 2
        is_repack = True

    version_match = VERSION_PATTERN.search(title)
    if version_match:
        version = max(version, int(version_match.group("version")))

    real = len(REAL_PATTERN.findall(title))
    return Revision(version=version, real=real, is_repack=is_repack)


def parse_quality(title: str) -> QualityModel:
    """Detect the quality and revision of a release title.

    Args:
        title: Release name, e.g. "Movie.2021.1080p.BluRay.x264-GROUP".

    Returns:
        Parsed quality model (Unknown quality when nothing is recognised).
    """
    resolution = detect_resolution(title)
    source = detect_source(title)

    if source == "dvd":
        quality = q.DVD
    elif source == "sdtv":
        quality = q.SDTV
    elif source is not None:
        by_resolution = SOURCE_QUALITIES[source]
        quality = by_resolution.get(resolution) or by_resolution[min(by_resolution)]
    else:
        quality = RESOLUTION_ONLY.get(resolution, q.UNKNOWN)

    return QualityModel(quality=quality, revision=parse_revision(title))
