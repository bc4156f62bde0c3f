"""Movies, their existing files and the lookups the engine reads them through."""

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict, Field

from releasegate.profiles.quality import QualityModel, QualityProfile


class Movie(BaseModel):
    """A wanted movie with its tags and quality profile."""

    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    year: int | None = None
    path: str | None = None
    tags: frozenset[int] = Field(default_factory=frozenset)
    quality_profile: QualityProfile


class MovieFile(BaseModel):
    """A file already held for a movie."""

    model_config = ConfigDict(frozen=True)

    movie_id: int
    quality: QualityModel
    custom_format_score: int = 0
    path: str | None = None
    size: int = 0


class MovieRepository(ABC):
    """Resolves movies by id (used when pending items are rechecked)."""

    @abstractmethod
    async def get_movie(self, movie_id: int) -> Movie | None:
        pass


class ExistingFileLookup(ABC):
    """Returns the files currently held for a movie."""

    @abstractmethod
    async def files_for_movie(self, movie_id: int) -> list[MovieFile]:
        pass


class InMemoryMovieLibrary(MovieRepository, ExistingFileLookup):
    """Movies and files kept in dictionaries."""

    def __init__(self, movies: list[Movie] | None = None):
        self._movies: dict[int, Movie] = {m.id: m for m in movies or []}
        self._files: dict[int, list[MovieFile]] = {}

    def add_movie(self, movie: Movie) -> None:
        self._movies[movie.id] = movie

    def remove_movie(self, movie_id: int) -> None:
        self._movies.pop(movie_id, None)
        self._files.pop(movie_id, None)

    def set_files(self, movie_id: int, files: list[MovieFile]) -> None:
        self._files[movie_id] = list(files)

    async def get_movie(self, movie_id: int) -> Movie | None:
        return self._movies.get(movie_id)

    async def files_for_movie(self, movie_id: int) -> list[MovieFile]:
        return list(self._files.get(movie_id, []))
