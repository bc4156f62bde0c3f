"""Engine wiring: one object owning the decision maker, queue and scheduler.

Usage:
    engine = build_engine(profiles=profiles, movies=library)
    async with engine:
        result = await engine.process(candidate, movie)
"""

from collections.abc import Sequence
from datetime import UTC, datetime

import structlog

from releasegate.config import Settings
from releasegate.config import settings as default_settings
from releasegate.decision.aggregator import DecisionMaker, ProcessResult
from releasegate.decision.models import Decision, SearchCriteria
from releasegate.decision.pipeline import SpecificationPipeline
from releasegate.decision.specifications import DecisionSpecification, default_specifications
from releasegate.disk import DiskProvider
from releasegate.errors import ConfigurationError
from releasegate.grab import Grabber, WebhookGrabber
from releasegate.movies import ExistingFileLookup, Movie, MovieRepository
from releasegate.parser.release import ReleaseCandidate
from releasegate.pending.models import PendingItem
from releasegate.pending.queue import PendingQueue, RecheckReport
from releasegate.pending.scheduler import PendingRecheckScheduler
from releasegate.pending.store import PendingStore, SQLitePendingStore
from releasegate.profiles.repository import ProfileRepository
from releasegate.reporting import ReasonSink, ReportingService

logger = structlog.get_logger(__name__)


class ReleaseEngine:
    """Decision engine with its pending queue and recheck scheduler.

    ``start()`` opens the store and starts the scheduler; ``close()`` stops
    both and closes the HTTP collaborators the engine created itself.
    """

    def __init__(
        self,
        settings: Settings,
        maker: DecisionMaker,
        queue: PendingQueue,
        store: PendingStore,
        scheduler: PendingRecheckScheduler,
        owned: Sequence[object] = (),
    ):
        self.settings = settings
        self.maker = maker
        self.queue = queue
        self.store = store
        self.scheduler = scheduler
        self._owned = tuple(owned)
        self._connected = False

    async def __aenter__(self) -> "ReleaseEngine":
        await self.connect()
        return self

    async def __aexit__(self, _exc_type, _exc_val, _exc_tb) -> None:
        await self.close()

    async def connect(self) -> None:
        """Open the pending store without starting the scheduler."""
        if not self._connected:
            await self.store.connect()
            self._connected = True

    async def start(self) -> None:
        """Open the store and start periodic rechecks."""
        await self.connect()
        self.scheduler.start()
        logger.info("release_engine_started", environment=self.settings.environment)

    def stop(self) -> None:
        """Stop periodic rechecks; a running recheck ends after its current item."""
        self.scheduler.stop()

    async def close(self) -> None:
        """Stop the scheduler and release every resource the engine owns."""
        self.stop()
        if self._connected:
            await self.store.close()
            self._connected = False
        for resource in self._owned:
            aclose = getattr(resource, "aclose", None)
            if aclose is not None:
                await aclose()
        logger.info("release_engine_closed")

    async def evaluate(
        self,
        candidate: ReleaseCandidate,
        movie: Movie,
        search: SearchCriteria | None = None,
        now: datetime | None = None,
    ) -> Decision:
        return await self.maker.evaluate(candidate, movie, search, now)

    async def process(
        self,
        candidate: ReleaseCandidate,
        movie: Movie,
        search: SearchCriteria | None = None,
        now: datetime | None = None,
    ) -> ProcessResult:
        return await self.maker.process(candidate, movie, search, now)

    async def run_due_rechecks(self, now: datetime | None = None) -> RecheckReport:
        return await self.queue.run_due_rechecks(now or datetime.now(UTC))

    async def list_pending(self) -> list[PendingItem]:
        return await self.queue.list_pending()


def build_engine(
    profiles: ProfileRepository,
    movies: MovieRepository,
    files: ExistingFileLookup | None = None,
    settings: Settings | None = None,
    store: PendingStore | None = None,
    grabber: Grabber | None = None,
    reason_sink: ReasonSink | None = None,
    disk: DiskProvider | None = None,
    specifications: Sequence[DecisionSpecification] | None = None,
) -> ReleaseEngine:
    """Wire the engine from its collaborators.

    Collaborators left out are built from settings: the webhook grabber from
    ``grab_webhook_url``, the reporting service, the SQLite pending store at
    ``pending_db_path`` and the local disk provider.

    Args:
        profiles: Restriction and delay profile repository
        movies: Movie repository (also the existing-file lookup if ``files`` is None)
        files: Existing-file lookup
        settings: Settings (defaults to the module-level settings)
        store: Pending store
        grabber: Grab collaborator
        reason_sink: Reason sink for rejected decisions
        disk: Disk provider for the free space rule
        specifications: Rule list replacing the default one

    Raises:
        ConfigurationError: If no grabber is given and no webhook is configured,
            or if ``movies`` cannot serve existing files and ``files`` is None.
    """
    settings = settings or default_settings
    owned: list[object] = []

    if files is None:
        if not isinstance(movies, ExistingFileLookup):
            raise ConfigurationError("Existing-file lookup is not configured")
        files = movies

    if grabber is None:
        if settings.grab_webhook_url is None:
            raise ConfigurationError("Grabber is not configured: set GRAB_WEBHOOK_URL")
        webhook = WebhookGrabber(
            settings.grab_webhook_url.get_secret_value(),
            timeout=settings.grab_timeout_seconds,
        )
        owned.append(webhook)
        grabber = webhook

    if reason_sink is None:
        reporter = ReportingService(settings)
        owned.append(reporter)
        reason_sink = reporter

    store = store or SQLitePendingStore(settings.pending_db_path)
    disk = disk or DiskProvider()

    pipeline = SpecificationPipeline(
        specifications if specifications is not None else default_specifications(disk, settings)
    )
    queue = PendingQueue(store, grabber, movies, settings)
    maker = DecisionMaker(
        pipeline,
        profiles,
        files,
        settings,
        pending_queue=queue,
        grabber=grabber,
        reason_sink=reason_sink,
    )
    scheduler = PendingRecheckScheduler(queue, settings)

    logger.debug(
        "release_engine_built",
        rules=[spec.name for spec in pipeline.specifications],
        store=type(store).__name__,
    )
    return ReleaseEngine(settings, maker, queue, store, scheduler, owned)
