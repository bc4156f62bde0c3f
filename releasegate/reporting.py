"""Reason sink: best-effort reporting of rejected decisions.

Each rejected title is reported at most once until ``clear_cache()`` is
called. The seen-title cache belongs to the service instance.

Usage:
    async with ReportingService(settings) as reporter:
        await reporter.report(decision, movie)
"""

from typing import Any, Protocol

import httpx
import structlog

from releasegate.config import Settings
from releasegate.decision.models import Decision
from releasegate.movies import Movie

logger = structlog.get_logger(__name__)

REPORTING_TIMEOUT_SECONDS = 10.0


class ReasonSink(Protocol):
    """Receives rejected decisions. Must not raise in normal operation."""

    async def report(self, decision: Decision, movie: Movie) -> bool: ...


class ReportingService:
    """Reports rejected decisions to the log and, optionally, an HTTP endpoint.

    Failures are logged and swallowed unless ``raise_errors`` is set
    (development mode by default), where they propagate for visibility.
    """

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient | None = None,
        raise_errors: bool | None = None,
    ):
        """Initialize the reporting service.

        Args:
            settings: Reporting endpoint, timeouts and environment
            client: HTTP client to post with (created on demand otherwise)
            raise_errors: Re-raise reporting failures (defaults to development mode)
        """
        self._url = settings.reporting_url.get_secret_value() if settings.reporting_url else None
        self._timeout = REPORTING_TIMEOUT_SECONDS
        self._client = client
        self._owns_client = client is None
        self._raise_errors = settings.is_development if raise_errors is None else raise_errors
        self._seen_titles: set[str] = set()

    async def __aenter__(self) -> "ReportingService":
        return self

    async def __aexit__(self, _exc_type, _exc_val, _exc_tb) -> None:
        await self.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this service created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def has_reported(self, title: str) -> bool:
        return title.lower() in self._seen_titles

    def clear_cache(self) -> None:
        """Forget every reported title."""
        count = len(self._seen_titles)
        self._seen_titles.clear()
        logger.debug("reporting_cache_cleared", titles=count)

    async def report(self, decision: Decision, movie: Movie) -> bool:
        """Report a rejected decision once per title.

        Returns:
            True if the decision was reported, False if it was a repeat or failed
        """
        title = decision.candidate.title
        if self.has_reported(title):
            logger.debug("rejection_already_reported", title=title)
            return False
        self._seen_titles.add(title.lower())

        logger.info(
            "release_rejection_reported",
            movie_id=movie.id,
            title=title,
            reasons=decision.reasons,
        )

        if not self._url:
            return True

        payload: dict[str, Any] = {
            "movie_id": movie.id,
            "movie_title": movie.title,
            **decision.to_dict(),
        }
        try:
            response = await self.client.post(self._url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("reporting_http_error", status=e.response.status_code, error=str(e))
            if self._raise_errors:
                raise
            return False
        except httpx.RequestError as e:
            logger.error("reporting_request_error", error=str(e))
            if self._raise_errors:
                raise
            return False

        return True
