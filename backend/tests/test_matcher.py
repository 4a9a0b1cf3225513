"""
Tests for the fuzzy matcher against in-memory watchlist snapshots.
"""
import pytest

from curation.matcher import Candidate, FuzzyMatcher
from curation.models import (
    EntityType,
    ExtractedEntity,
    MatchType,
    WatchlistEntity,
    WatchlistEntityType,
)
from curation.normalizer import NameNormalizer
from curation.watchlist import WatchlistSnapshot

_normalizer = NameNormalizer()


def official(entity_id, full_name, aliases=(), tier=1, entity_type=WatchlistEntityType.PERSON):
    return WatchlistEntity(
        id=entity_id,
        external_id=f"ext-{entity_id}",
        full_name=full_name,
        normalized_name=_normalizer.normalize(full_name),
        aliases=tuple(aliases),
        normalized_aliases=tuple(_normalizer.normalize(a) for a in aliases),
        tier=tier,
        entity_type=entity_type,
    )


MADURO = official("maduro", "Nicolás Maduro Moros", ["Nicolas Maduro", "Maduro Moros"])
CABELLO = official("cabello", "Diosdado Cabello Rondón", ["Diosdado Cabello"])
PDVSA = official(
    "pdvsa", "Petróleos de Venezuela, S.A.", ["PDVSA"], entity_type=WatchlistEntityType.ORGANIZATION
)


@pytest.fixture
def snapshot():
    return WatchlistSnapshot(version=3, entities=(CABELLO, MADURO, PDVSA))


@pytest.fixture
def matcher():
    return FuzzyMatcher()


class TestMatchTypes:
    """Exact, alias and fuzzy scoring."""

    def test_exact(self, matcher, snapshot):
        result = matcher.match_name("nicolas maduro moros", snapshot, EntityType.PERSON)
        assert result.match_type is MatchType.EXACT
        assert result.score == 100.0
        assert result.watchlist_entity is MADURO
        assert result.matched_on == "nicolas maduro moros"
        assert result.watchlist_version == 3

    def test_alias(self, matcher, snapshot):
        result = matcher.match_name("nicolas maduro", snapshot, EntityType.PERSON)
        assert result.match_type is MatchType.ALIAS
        assert result.score == 95.0
        assert result.matched_on == "nicolas maduro"

    def test_fuzzy(self, matcher, snapshot):
        result = matcher.match_name("nicolas madura", snapshot, EntityType.PERSON)
        assert result.match_type is MatchType.FUZZY
        assert result.score == pytest.approx(92.857, abs=0.01)
        assert result.watchlist_entity is MADURO
        assert result.matched_on == "nicolas maduro"

    def test_nickname_variant(self, matcher, snapshot):
        result = matcher.match_name("nico maduro", snapshot, EntityType.PERSON)
        assert result.watchlist_entity is MADURO
        assert result.match_type is MatchType.FUZZY
        assert result.score == 100.0
        assert result.matched_on == "nicolas maduro"

    def test_organization_alias(self, matcher, snapshot):
        result = matcher.match_name("pdvsa", snapshot, EntityType.ORG)
        assert result.match_type is MatchType.ALIAS
        assert result.watchlist_entity is PDVSA

    def test_confidence_level(self, matcher, snapshot):
        assert matcher.match_name("nicolas maduro", snapshot).confidence_level == 5
        assert matcher.match_name("nicolas madura", snapshot).confidence_level == 4


class TestNoMatch:
    """Floor and entity type filtering."""

    def test_unrelated_name(self, matcher, snapshot):
        result = matcher.match_name("juan perez", snapshot, EntityType.PERSON)
        assert result.match_type is MatchType.NONE
        assert result.score == 0.0
        assert result.watchlist_entity is None
        assert not result.is_match
        assert result.confidence_level == 1

    def test_location_never_matches(self, matcher, snapshot):
        result = matcher.match_name("nicolas maduro moros", snapshot, EntityType.LOCATION)
        assert result.match_type is MatchType.NONE

    def test_org_does_not_match_person(self, matcher, snapshot):
        result = matcher.match_name("nicolas maduro moros", snapshot, EntityType.ORG)
        assert result.match_type is MatchType.NONE

    def test_person_does_not_match_org(self, matcher, snapshot):
        result = matcher.match_name("pdvsa", snapshot, EntityType.PERSON)
        assert result.match_type is MatchType.NONE

    def test_floor(self, snapshot):
        result = FuzzyMatcher(floor=95.0).match_name("nicolas madura", snapshot)
        assert result.match_type is MatchType.NONE

    def test_empty_snapshot(self, matcher):
        result = matcher.match_name("nicolas maduro", WatchlistSnapshot(version=0))
        assert result.match_type is MatchType.NONE
        assert result.watchlist_version == 0


class TestTieBreaks:
    """Equal scores resolve deterministically."""

    def test_lower_tier_wins(self, matcher):
        tier2 = official("a-tier2", "Juan Pérez", tier=2)
        tier1 = official("z-tier1", "Juan Pérez", tier=1)
        snapshot = WatchlistSnapshot(version=1, entities=(tier2, tier1))
        assert matcher.match_name("juan perez", snapshot).watchlist_entity is tier1

    def test_smallest_id_wins(self, matcher):
        first = official("id-a", "Juan Pérez")
        second = official("id-b", "Juan Pérez")
        for entities in ((first, second), (second, first)):
            snapshot = WatchlistSnapshot(version=1, entities=entities)
            assert matcher.match_name("juan perez", snapshot).watchlist_entity is first

    def test_match_type_precedence(self):
        alias = Candidate(95.0, MatchType.ALIAS, official("z", "Ana Díaz"), "ana diaz")
        fuzzy = Candidate(95.0, MatchType.FUZZY, official("a", "Ana Díaz"), "ana diaz")
        assert alias.sort_key() < fuzzy.sort_key()

    def test_higher_score_beats_precedence(self):
        fuzzy = Candidate(97.0, MatchType.FUZZY, official("a", "Ana Díaz"), "ana diaz")
        alias = Candidate(95.0, MatchType.ALIAS, official("b", "Ana Díaz"), "ana diaz")
        assert fuzzy.sort_key() < alias.sort_key()


class TestMatchEntity:
    """Matching extracted entities."""

    def test_match_keeps_entity(self, matcher, snapshot):
        entity = ExtractedEntity(
            raw_text="Nicolás Maduro",
            entity_type=EntityType.PERSON,
            article_context="El presidente Nicolás Maduro habló hoy.",
            normalized_text="nicolas maduro",
        )
        result = matcher.match(entity, snapshot)
        assert result.entity is entity
        assert result.match_type is MatchType.ALIAS

    def test_pure(self, matcher, snapshot):
        first = matcher.match_name("nicolas madura", snapshot)
        second = matcher.match_name("nicolas madura", snapshot)
        assert first == second

    def test_explain(self, matcher):
        breakdown = matcher.explain("nicolas madura", MADURO)
        assert set(breakdown) == {"nicolas maduro moros", "nicolas maduro", "maduro moros"}
        assert breakdown["nicolas maduro"]["weighted_ratio"] == pytest.approx(92.86, abs=0.01)
