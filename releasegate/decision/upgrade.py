"""Quality and upgrade comparisons against existing files and pending releases."""

from releasegate.profiles.quality import QualityModel, QualityProfile


def is_revision_upgrade(current: QualityModel, new: QualityModel) -> bool:
    """Same quality with a better revision (PROPER/REPACK/REAL)."""
    return (
        current.quality.id == new.quality.id
        and new.revision.compare(current.revision) > 0
    )


def is_upgradable(
    profile: QualityProfile,
    current: QualityModel,
    current_score: int,
    new: QualityModel,
    new_score: int,
) -> bool:
    """Whether ``new`` beats ``current`` by quality, then revision, then score."""
    result = profile.compare_models(new, current)
    if result != 0:
        return result > 0
    return new_score > current_score


def is_upgrade_allowed(profile: QualityProfile, current: QualityModel, new: QualityModel) -> bool:
    """Profiles with upgrades disabled still take revisions of the held quality."""
    if profile.upgrade_allowed:
        return True
    return profile.compare(new.quality, current.quality) <= 0


def cutoff_not_met(
    profile: QualityProfile,
    current: QualityModel,
    current_score: int = 0,
    new: QualityModel | None = None,
) -> bool:
    """Whether the held file still leaves room for an upgrade.

    A revision upgrade of the held quality is always wanted, even at cutoff.
    """
    cutoff_index = profile.index_of(profile.cutoff_quality)
    if profile.index_of(current.quality) < cutoff_index:
        return True
    if current_score < profile.cutoff_format_score:
        return True
    return new is not None and is_revision_upgrade(current, new)
