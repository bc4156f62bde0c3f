"""Shared fixtures: a fixed clock, settings, profiles, a movie and candidate builders."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from releasegate.config import Settings
from releasegate.decision.aggregator import DecisionMaker
from releasegate.decision.models import EvaluationContext, SearchCriteria
from releasegate.decision.pipeline import SpecificationPipeline
from releasegate.decision.specifications import default_specifications
from releasegate.disk import DiskProvider
from releasegate.movies import InMemoryMovieLibrary, Movie, MovieFile
from releasegate.parser.quality_parser import parse_quality
from releasegate.parser.release import ReleaseCandidate
from releasegate.pending.queue import PendingQueue
from releasegate.pending.store import InMemoryPendingStore
from releasegate.profiles import quality as q
from releasegate.profiles.delay import DelayProfile, DownloadProtocol
from releasegate.profiles.quality import (
    QualityModel,
    QualityProfile,
    Revision,
    build_quality_profile,
)
from releasegate.profiles.repository import InMemoryProfileRepository, ProfileBundle

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)

GB = 1024**3


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture
def now() -> datetime:
    """Fixed evaluation time."""
    return NOW


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Development settings isolated from the environment."""
    return Settings(
        _env_file=None,
        environment="development",
        pending_db_path=str(tmp_path / "pending.db"),
        minimum_free_space_mb=100,
        pending_retry_minutes=5,
    )


# =============================================================================
# Profiles and movies
# =============================================================================


@pytest.fixture
def quality_profile() -> QualityProfile:
    """HD profile: SDTV up to Bluray-1080p, cutoff at Bluray-1080p."""
    return build_quality_profile(
        1,
        [q.SDTV, q.HDTV720P, q.WEBDL720P, q.BLURAY720P, q.WEBDL1080P, q.BLURAY1080P],
        cutoff=q.BLURAY1080P,
        name="HD",
        format_items={"x264": 10, "HDR": 50},
    )


@pytest.fixture
def movie(quality_profile: QualityProfile) -> Movie:
    """A wanted movie tagged 1."""
    return Movie(
        id=1,
        title="The Movie",
        year=2021,
        path="/movies/The Movie (2021)",
        tags=frozenset({1}),
        quality_profile=quality_profile,
    )


@pytest.fixture
def delay_profile() -> DelayProfile:
    """One hour usenet delay, no bypasses."""
    return DelayProfile(id=1, usenet_delay=60, torrent_delay=120)


@pytest.fixture
def bundle(quality_profile: QualityProfile) -> ProfileBundle:
    """Bundle without restrictions or delay."""
    return ProfileBundle(quality_profile=quality_profile)


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def make_candidate():
    """Build a candidate whose quality is parsed from the title."""

    def _make(
        title: str = "The.Movie.2021.720p.BluRay.x264-GROUP",
        age: timedelta = timedelta(hours=10),
        protocol: DownloadProtocol = DownloadProtocol.USENET,
        size: int = 4 * GB,
        score: int = 0,
        source: str = "indexer",
        **kwargs,
    ) -> ReleaseCandidate:
        return ReleaseCandidate(
            source=source,
            title=title,
            quality=parse_quality(title),
            publish_date=NOW - age,
            protocol=protocol,
            size=size,
            custom_format_score=score,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_context(movie: Movie):
    """Build an evaluation context at the fixed clock."""

    def _make(
        user_invoked: bool = False,
        existing_files: tuple[MovieFile, ...] = (),
        pending_competitor: ReleaseCandidate | None = None,
        target: Movie | None = None,
    ) -> EvaluationContext:
        return EvaluationContext(
            movie=target or movie,
            now=NOW,
            search=SearchCriteria(user_invoked=user_invoked),
            existing_files=existing_files,
            pending_competitor=pending_competitor,
        )

    return _make


@pytest.fixture
def make_file():
    """Build an existing file of a quality for movie 1."""

    def _make(quality: q.Quality, score: int = 0, **revision) -> MovieFile:
        return MovieFile(
            movie_id=1,
            quality=QualityModel(quality=quality, revision=Revision(**revision)),
            custom_format_score=score,
        )

    return _make


# =============================================================================
# Engine collaborators
# =============================================================================


@pytest.fixture
def disk() -> MagicMock:
    """Disk provider with 100 GB free everywhere."""
    disk = MagicMock(spec=DiskProvider)
    disk.available_space.return_value = 100 * GB
    disk.parent_path.return_value = "/movies"
    return disk


@pytest.fixture
def library(movie: Movie) -> InMemoryMovieLibrary:
    return InMemoryMovieLibrary([movie])


@pytest.fixture
def profiles(delay_profile: DelayProfile) -> InMemoryProfileRepository:
    """One hour usenet delay for every movie."""
    return InMemoryProfileRepository(delay_profiles=[delay_profile])


@pytest.fixture
def grabber() -> AsyncMock:
    """Grabber accepting every handoff."""
    grabber = AsyncMock()
    grabber.grab.return_value = True
    return grabber


@pytest.fixture
def sink() -> AsyncMock:
    sink = AsyncMock()
    sink.report.return_value = True
    return sink


@pytest.fixture
def store() -> InMemoryPendingStore:
    return InMemoryPendingStore()


@pytest.fixture
def queue(store, grabber, library, settings) -> PendingQueue:
    return PendingQueue(store, grabber, library, settings)


@pytest.fixture
def make_maker(disk, settings, profiles, library, queue, grabber, sink):
    """Build a decision maker, overriding collaborators as needed."""

    def _make(**overrides) -> DecisionMaker:
        kwargs = {
            "pipeline": SpecificationPipeline(default_specifications(disk, settings)),
            "profiles": profiles,
            "files": library,
            "settings": settings,
            "pending_queue": queue,
            "grabber": grabber,
            "reason_sink": sink,
        }
        kwargs.update(overrides)
        return DecisionMaker(**kwargs)

    return _make


@pytest.fixture
def maker(make_maker) -> DecisionMaker:
    """Decision maker wired to the queue (and attached to it)."""
    return make_maker()
