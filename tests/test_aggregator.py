"""Tests for the decision maker (context building and live routing).

Tests cover:
- Side-effect free evaluation
- Grab, defer, replace, reject routing of process()
- Failed grab handoffs kept for retry
- Bounded lookups failing open
- Reason sink wiring and failures
- Conflict retries
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from releasegate.decision.aggregator import ProcessOutcome
from releasegate.decision.models import SearchCriteria
from releasegate.errors import ConfigurationError, QueueStateConflict, TransientResourceError
from releasegate.pending.models import PendingState
from releasegate.profiles import quality as q
from releasegate.profiles.repository import InMemoryProfileRepository, ProfileRepository
from releasegate.profiles.restrictions import RestrictionProfile

YOUNG = timedelta(minutes=10)

# =============================================================================
# Evaluate Tests
# =============================================================================


class TestEvaluate:
    """Tests for DecisionMaker.evaluate."""

    @pytest.mark.asyncio
    async def test_no_side_effects(self, maker, movie, store, grabber, sink, make_candidate, now):
        """Evaluation never grabs, queues or reports."""
        decision = await maker.evaluate(make_candidate(age=YOUNG), movie, now=now)

        assert decision.is_temporarily_rejected
        grabber.grab.assert_not_called()
        sink.report.assert_not_called()
        assert await store.list_all() == []

    @pytest.mark.asyncio
    async def test_existing_files_are_read(
        self, maker, movie, library, make_candidate, make_file, now
    ):
        """Files held for the movie feed the upgrade rule."""
        library.set_files(movie.id, [make_file(q.BLURAY720P)])

        decision = await maker.evaluate(make_candidate(), movie, now=now)

        assert [e.rule for e in decision.rejections] == ["upgrade_disk"]

    @pytest.mark.asyncio
    async def test_restriction_lookup_failure_fails_open(
        self, make_maker, movie, make_candidate, now
    ):
        """A failing restriction lookup skips the restriction rule."""
        profiles = MagicMock(spec=ProfileRepository)
        profiles.restriction_profiles_for_tags = AsyncMock(
            side_effect=TransientResourceError("database locked")
        )
        profiles.best_delay_profile_for_tags = AsyncMock(return_value=None)

        decision = await make_maker(profiles=profiles).evaluate(make_candidate(), movie, now=now)

        assert decision.accepted

    @pytest.mark.asyncio
    async def test_delay_lookup_timeout_means_no_delay(
        self, make_maker, settings, movie, make_candidate, now
    ):
        """A hanging delay profile lookup is abandoned and the release is not delayed."""

        async def hang(_tags):
            await asyncio.sleep(1)

        profiles = MagicMock(spec=ProfileRepository)
        profiles.restriction_profiles_for_tags = AsyncMock(return_value=[])
        profiles.best_delay_profile_for_tags = hang
        fast = settings.model_copy(update={"profile_lookup_timeout_seconds": 0.05})

        decision = await make_maker(profiles=profiles, settings=fast).evaluate(
            make_candidate(age=YOUNG), movie, now=now
        )

        assert decision.accepted

    @pytest.mark.asyncio
    async def test_restrictions_resolved_by_tags(self, make_maker, movie, make_candidate, now):
        """Only profiles sharing the movie's tags are applied."""
        profiles = InMemoryProfileRepository(
            restriction_profiles=[
                RestrictionProfile(id=1, tags=frozenset({1}), ignored=["x264"]),
                RestrictionProfile(id=2, tags=frozenset({2}), ignored=["BluRay"]),
            ]
        )

        decision = await make_maker(profiles=profiles).evaluate(make_candidate(), movie, now=now)

        assert decision.reasons == ["Contains ignored term: x264"]


# =============================================================================
# Process Tests
# =============================================================================


class TestProcess:
    """Tests for DecisionMaker.process routing."""

    @pytest.mark.asyncio
    async def test_accepted_is_grabbed(self, maker, movie, grabber, make_candidate, now):
        """Accepted releases are handed to the grabber."""
        candidate = make_candidate()

        result = await maker.process(candidate, movie, now=now)

        assert result.outcome == ProcessOutcome.GRABBED
        grabber.grab.assert_awaited_once_with(candidate)

    @pytest.mark.asyncio
    async def test_user_search_grabs_young_release(
        self, maker, movie, grabber, make_candidate, now
    ):
        """Manual searches ignore the delay."""
        result = await maker.process(
            make_candidate(age=YOUNG), movie, SearchCriteria(user_invoked=True), now
        )

        assert result.outcome == ProcessOutcome.GRABBED

    @pytest.mark.asyncio
    async def test_young_release_is_queued(self, maker, movie, store, make_candidate, now):
        """A release rejected only by the delay waits in the queue."""
        candidate = make_candidate(age=YOUNG)

        result = await maker.process(candidate, movie, now=now)

        assert result.outcome == ProcessOutcome.PENDING
        items = await store.list_all()
        assert len(items) == 1
        assert items[0].candidate == candidate
        assert items[0].state == PendingState.PENDING
        assert items[0].next_check_at == candidate.publish_date + timedelta(minutes=60)

    @pytest.mark.asyncio
    async def test_better_release_replaces_pending(
        self, maker, movie, store, make_candidate, now
    ):
        """A better young release replaces the waiting one."""
        first = make_candidate(title="The.Movie.2021.720p.HDTV.x264-A", age=YOUNG)
        better = make_candidate(title="The.Movie.2021.720p.BluRay.x264-B", age=YOUNG)

        await maker.process(first, movie, now=now)
        result = await maker.process(better, movie, now=now)

        assert result.outcome == ProcessOutcome.PENDING
        assert result.superseded.candidate == first
        assert result.superseded.state == PendingState.SUPERSEDED
        items = await store.list_all()
        assert [i.candidate for i in items] == [better]

    @pytest.mark.asyncio
    async def test_worse_release_is_rejected(
        self, maker, movie, store, sink, make_candidate, now
    ):
        """A release no better than the waiting one is rejected and reported."""
        first = make_candidate(title="The.Movie.2021.720p.BluRay.x264-A", age=YOUNG)
        worse = make_candidate(title="The.Movie.2021.720p.HDTV.x264-B", age=YOUNG)

        await maker.process(first, movie, now=now)
        result = await maker.process(worse, movie, now=now)

        assert result.outcome == ProcessOutcome.REJECTED
        assert "already pending" in result.decision.reasons[0]
        sink.report.assert_awaited_once()
        assert [i.candidate for i in await store.list_all()] == [first]

    @pytest.mark.asyncio
    async def test_rejected_is_reported(self, maker, movie, sink, grabber, make_candidate, now):
        """Permanently rejected releases go to the reason sink."""
        result = await maker.process(
            make_candidate(title="Movie.2021.2160p.BluRay.x264"), movie, now=now
        )

        assert result.outcome == ProcessOutcome.REJECTED
        sink.report.assert_awaited_once_with(result.decision, movie)
        grabber.grab.assert_not_called()

    @pytest.mark.asyncio
    async def test_grab_supersedes_pending(self, maker, movie, store, make_candidate, now):
        """Grabbing a release removes the item waiting for the same movie."""
        waiting = make_candidate(title="The.Movie.2021.720p.HDTV.x264-A", age=YOUNG)
        await maker.process(waiting, movie, now=now)

        result = await maker.process(make_candidate(), movie, now=now)

        assert result.outcome == ProcessOutcome.GRABBED
        assert result.superseded.candidate == waiting
        assert await store.list_all() == []

    @pytest.mark.asyncio
    async def test_failed_grab_is_kept_ready(
        self, maker, movie, store, grabber, make_candidate, now
    ):
        """A refused handoff leaves a READY item for the recheck driver."""
        grabber.grab.return_value = False
        candidate = make_candidate()

        result = await maker.process(candidate, movie, now=now)

        assert result.outcome == ProcessOutcome.GRAB_FAILED
        item = result.pending_item
        assert item.state == PendingState.READY
        assert item.candidate == candidate
        assert item.grab_attempts == 1
        assert item.next_check_at == now + timedelta(minutes=5)
        assert await store.get(item.key) == item

    @pytest.mark.asyncio
    async def test_live_grab_drops_failed_earlier_grab(
        self, maker, queue, movie, store, grabber, make_candidate, now
    ):
        """A failed grab held READY is not retried after a better release was grabbed."""
        grabber.grab.side_effect = [False, True]
        first = make_candidate(title="The.Movie.2021.720p.BluRay.x264-AAA")
        second = make_candidate(title="The.Movie.2021.1080p.BluRay.x264-BBB")

        failed = await maker.process(first, movie, now=now)
        grabbed = await maker.process(second, movie, now=now)
        report = await queue.run_due_rechecks(now + timedelta(hours=1))

        assert failed.outcome == ProcessOutcome.GRAB_FAILED
        assert grabbed.outcome == ProcessOutcome.GRABBED
        assert grabbed.superseded.candidate == first
        assert grabbed.superseded.state == PendingState.DISCARDED
        assert report.grabbed == []
        assert [c.args[0] for c in grabber.grab.await_args_list] == [first, second]
        assert await store.list_all() == []

    @pytest.mark.asyncio
    async def test_grab_exception_is_a_failure(
        self, maker, movie, grabber, make_candidate, now
    ):
        """A raising grabber counts as a failed handoff."""
        grabber.grab.side_effect = RuntimeError("connection reset")

        result = await maker.process(make_candidate(), movie, now=now)

        assert result.outcome == ProcessOutcome.GRAB_FAILED
        assert result.pending_item.last_error == "connection reset"

    @pytest.mark.asyncio
    async def test_conflict_retries_then_gives_up(
        self, maker, movie, queue, make_candidate, now
    ):
        """Queue conflicts rerun the cycle up to three times."""
        queue.upsert = AsyncMock(side_effect=QueueStateConflict("1:q1:d1"))

        result = await maker.process(make_candidate(age=YOUNG), movie, now=now)

        assert result.outcome == ProcessOutcome.CONFLICT
        assert queue.upsert.await_count == 3

    @pytest.mark.asyncio
    async def test_conflict_then_success(self, maker, movie, queue, make_candidate, now):
        """A conflict followed by a clean attempt succeeds."""
        real_upsert = queue.upsert
        calls = []

        async def flaky(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                raise QueueStateConflict("1:q1:d1")
            return await real_upsert(*args, **kwargs)

        queue.upsert = AsyncMock(side_effect=flaky)

        result = await maker.process(make_candidate(age=YOUNG), movie, now=now)

        assert result.outcome == ProcessOutcome.PENDING
        assert queue.upsert.await_count == 2


# =============================================================================
# Reason Sink Wiring Tests
# =============================================================================


class TestReasonSinkWiring:
    """Tests for ConfigurationError and sink failures."""

    def test_missing_sink_fails_at_construction_in_production(self, make_maker, settings):
        """Production refuses to start without a reason sink."""
        production = settings.model_copy(update={"environment": "production"})

        with pytest.raises(ConfigurationError):
            make_maker(settings=production, reason_sink=None)

    @pytest.mark.asyncio
    async def test_missing_sink_surfaces_on_use_in_development(
        self, make_maker, movie, make_candidate, now
    ):
        """Development builds, then raises when a rejection needs reporting."""
        maker = make_maker(reason_sink=None)

        with pytest.raises(ConfigurationError):
            await maker.process(make_candidate(title="Movie.2021.2160p.BluRay"), movie, now=now)

    @pytest.mark.asyncio
    async def test_sink_failure_swallowed_in_production(
        self, make_maker, settings, sink, movie, make_candidate, now
    ):
        """Production logs sink failures and carries on."""
        sink.report.side_effect = RuntimeError("sink down")
        production = settings.model_copy(update={"environment": "production"})

        result = await make_maker(settings=production).process(
            make_candidate(title="Movie.2021.2160p.BluRay"), movie, now=now
        )

        assert result.outcome == ProcessOutcome.REJECTED

    @pytest.mark.asyncio
    async def test_sink_failure_raised_in_development(
        self, maker, sink, movie, make_candidate, now
    ):
        """Development re-raises sink failures for visibility."""
        sink.report.side_effect = RuntimeError("sink down")

        with pytest.raises(RuntimeError, match="sink down"):
            await maker.process(make_candidate(title="Movie.2021.2160p.BluRay"), movie, now=now)

    @pytest.mark.asyncio
    async def test_missing_grabber(self, make_maker, movie, make_candidate, now):
        """Accepted releases need a grabber."""
        with pytest.raises(ConfigurationError):
            await make_maker(grabber=None).process(make_candidate(), movie, now=now)
