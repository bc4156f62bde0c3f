"""Tests for term matching and the restriction rule.

Tests cover:
- Literal and /regex/ term matching
- Required terms (OR) and ignored terms (any match rejects)
- Several profiles ANDed together
- Malformed patterns and unavailable profiles
- Tag and indexer scoping
"""

import pytest

from releasegate.decision.specifications import RestrictionSpecification
from releasegate.errors import MalformedUserPattern
from releasegate.profiles.repository import InMemoryProfileRepository, ProfileBundle
from releasegate.profiles.restrictions import RestrictionProfile
from releasegate.profiles.terms import compile_term, find_malformed, find_match, is_match

TITLE = "Movie.2021.720p.HDTV.x264-www.Speed.cd"

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def spec() -> RestrictionSpecification:
    return RestrictionSpecification()


@pytest.fixture
def with_restrictions(quality_profile):
    """Build a bundle holding the given restriction profiles."""

    def _make(*profiles: RestrictionProfile) -> ProfileBundle:
        return ProfileBundle(quality_profile=quality_profile, restriction_profiles=list(profiles))

    return _make


# =============================================================================
# Term Matching Tests
# =============================================================================


class TestTermMatching:
    """Tests for literal and regex term matching."""

    def test_literal_is_case_insensitive(self):
        """Literal terms match regardless of case."""
        assert is_match("X264", TITLE)
        assert is_match("speed.CD", TITLE)

    def test_literal_is_substring(self):
        """Literal terms match anywhere in the title."""
        assert is_match("720p.HD", TITLE)
        assert not is_match("1080p", TITLE)

    def test_regex_is_case_sensitive(self):
        """/WEB/ matches upper-case WEB only."""
        assert is_match("/WEB/", "Movie.2021.1080p.WEB.h264")
        assert not is_match("/WEB/", "Movie.2021.1080p.web.h264")

    def test_regex_with_mixed_case_pattern(self):
        """Regex terms are applied as given, with no implicit folding."""
        assert not is_match("/WEb/", "Movie.2021.1080p.WEB.h264")

    def test_regex_inline_flag(self):
        """Patterns can opt into case-insensitivity themselves."""
        assert is_match("/(?i)web/", "Movie.2021.1080p.WEB.h264")

    def test_blank_term_never_matches(self):
        """Whitespace-only terms are ignored."""
        assert not is_match("   ", TITLE)

    def test_find_match_returns_first_hit(self):
        """OR semantics: the first matching term is returned."""
        assert find_match(["NOTTHERE", "x264", "HDTV"], TITLE) == "x264"
        assert find_match(["NOTTHERE"], TITLE) is None

    def test_compile_literal_returns_none(self):
        """Literal terms have no compiled pattern."""
        assert compile_term("x264") is None

    def test_malformed_regex_raises(self):
        """Invalid regex terms raise MalformedUserPattern with the term."""
        with pytest.raises(MalformedUserPattern) as exc_info:
            compile_term("/[unclosed/")
        assert exc_info.value.term == "/[unclosed/"

    def test_find_malformed(self):
        """The first broken regex term is reported."""
        error = find_malformed(["x264", "/(bad/"])
        assert error is not None
        assert error.term == "/(bad/"
        assert find_malformed(["x264", "/good/"]) is None


# =============================================================================
# Restriction Rule Tests
# =============================================================================


class TestRestrictionSpecification:
    """Tests for RestrictionSpecification."""

    @pytest.mark.asyncio
    async def test_required_or_semantics(
        self, spec, with_restrictions, make_candidate, make_context
    ):
        """Matching one of several required terms is enough."""
        bundle = with_restrictions(RestrictionProfile(id=1, required=["x264", "NOTTHERE"]))

        entries = await spec.evaluate(make_candidate(title=TITLE), bundle, make_context())

        assert [e.accepted for e in entries] == [True]

    @pytest.mark.asyncio
    async def test_required_none_matching(
        self, spec, with_restrictions, make_candidate, make_context
    ):
        """Matching no required term rejects and lists the terms."""
        bundle = with_restrictions(RestrictionProfile(id=1, required=["NOTTHERE", "ALSONOT"]))

        entries = await spec.evaluate(make_candidate(title=TITLE), bundle, make_context())

        assert not entries[0].accepted
        assert "NOTTHERE, ALSONOT" in entries[0].reason

    @pytest.mark.asyncio
    async def test_ignored_beats_required(
        self, spec, with_restrictions, make_candidate, make_context
    ):
        """An ignored term rejects even when a required term matches."""
        bundle = with_restrictions(
            RestrictionProfile(id=1, required=["x264"], ignored=["www.Speed.cd"])
        )

        entries = await spec.evaluate(make_candidate(title=TITLE), bundle, make_context())

        assert not entries[0].accepted
        assert entries[0].reason == "Contains ignored term: www.Speed.cd"

    @pytest.mark.asyncio
    async def test_empty_lists_accept(self, spec, with_restrictions, make_candidate, make_context):
        """Empty required and ignored lists are vacuously satisfied."""
        bundle = with_restrictions(RestrictionProfile(id=1))

        entries = await spec.evaluate(make_candidate(title=TITLE), bundle, make_context())

        assert entries[0].accepted

    @pytest.mark.asyncio
    async def test_profiles_are_anded(self, spec, with_restrictions, make_candidate, make_context):
        """One failing profile rejects; every profile yields its own entry."""
        bundle = with_restrictions(
            RestrictionProfile(id=1, required=["x264"]),
            RestrictionProfile(id=2, name="No HDTV", ignored=["HDTV"]),
        )

        entries = await spec.evaluate(make_candidate(title=TITLE), bundle, make_context())

        assert [e.accepted for e in entries] == [True, False]

    @pytest.mark.asyncio
    async def test_regex_required_term(
        self, spec, with_restrictions, make_candidate, make_context
    ):
        """Regex required terms are matched case-sensitively."""
        bundle = with_restrictions(RestrictionProfile(id=1, required=["/WEB/"]))

        upper = await spec.evaluate(
            make_candidate(title="Movie.2021.1080p.WEB.h264"), bundle, make_context()
        )
        lower = await spec.evaluate(
            make_candidate(title="Movie.2021.1080p.web.h264"), bundle, make_context()
        )

        assert upper[0].accepted
        assert not lower[0].accepted

    @pytest.mark.asyncio
    async def test_malformed_term_rejects_profile_only(
        self, spec, with_restrictions, make_candidate, make_context
    ):
        """A broken pattern rejects its own profile and names the term."""
        bundle = with_restrictions(
            RestrictionProfile(id=1, name="Broken", required=["/(x264/"]),
            RestrictionProfile(id=2, required=["x264"]),
        )

        entries = await spec.evaluate(make_candidate(title=TITLE), bundle, make_context())

        assert not entries[0].accepted
        assert "'/(x264/'" in entries[0].reason
        assert "Broken" in entries[0].reason
        assert entries[1].accepted

    @pytest.mark.asyncio
    async def test_unavailable_profiles_fail_open(
        self, spec, quality_profile, make_candidate, make_context
    ):
        """A failed profile lookup (None) accepts."""
        bundle = ProfileBundle(quality_profile=quality_profile, restriction_profiles=None)

        entries = await spec.evaluate(make_candidate(title=TITLE), bundle, make_context())

        assert entries[0].accepted
        assert "unavailable" in entries[0].reason


# =============================================================================
# Scoping Tests
# =============================================================================


class TestRestrictionScoping:
    """Tests for tag and indexer scoping of restriction profiles."""

    def test_tagless_profile_applies_everywhere(self):
        """Profiles without tags apply to every movie."""
        assert RestrictionProfile(id=1).applies_to(frozenset())
        assert RestrictionProfile(id=1).applies_to(frozenset({3}))

    def test_tagged_profile_needs_shared_tag(self):
        """Tagged profiles apply only to movies sharing a tag."""
        profile = RestrictionProfile(id=1, tags=frozenset({1, 2}))
        assert profile.applies_to(frozenset({2}))
        assert not profile.applies_to(frozenset({3}))

    def test_disabled_profile_never_applies(self):
        """Disabled profiles are skipped."""
        assert not RestrictionProfile(id=1, enabled=False).applies_to(frozenset())

    def test_indexer_scope(self):
        """Indexer-scoped profiles skip other indexers."""
        profile = RestrictionProfile(id=1, indexer_id=5)
        assert profile.applies_to(frozenset(), indexer_id=5)
        assert not profile.applies_to(frozenset(), indexer_id=6)

    @pytest.mark.asyncio
    async def test_repository_filters_and_keeps_order(self):
        """The repository returns applicable profiles in configured order."""
        repo = InMemoryProfileRepository(
            restriction_profiles=[
                RestrictionProfile(id=3, tags=frozenset({1})),
                RestrictionProfile(id=1),
                RestrictionProfile(id=2, tags=frozenset({9})),
            ]
        )

        profiles = await repo.restriction_profiles_for_tags(frozenset({1}))

        assert [p.id for p in profiles] == [3, 1]
