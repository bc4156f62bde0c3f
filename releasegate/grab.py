"""Grab trigger: hands an accepted release to the download side.

Usage:
    async with WebhookGrabber("https://downloader.local/grab") as grabber:
        ok = await grabber.grab(candidate)
"""

from typing import Protocol

import httpx
import structlog

from releasegate.parser.release import ReleaseCandidate

logger = structlog.get_logger(__name__)


class Grabber(Protocol):
    """Grab collaborator. Returns True once the handoff succeeded."""

    async def grab(self, candidate: ReleaseCandidate) -> bool: ...


class WebhookGrabber:
    """Posts the candidate as JSON to a webhook; any 2xx response is a successful handoff."""

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._url = url
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "WebhookGrabber":
        return self

    async def __aexit__(self, _exc_type, _exc_val, _exc_tb) -> None:
        await self.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def grab(self, candidate: ReleaseCandidate) -> bool:
        logger.info("grab_requested", title=candidate.title, source=candidate.source)

        try:
            response = await self.client.post(self._url, json=candidate.model_dump(mode="json"))
        except httpx.HTTPError as e:
            logger.error("grab_request_error", title=candidate.title, error=str(e))
            return False

        if not response.is_success:
            logger.error(
                "grab_http_error",
                title=candidate.title,
                status=response.status_code,
            )
            return False

        logger.info("grab_handed_off", title=candidate.title, status=response.status_code)
        return True
