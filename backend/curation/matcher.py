"""
Fuzzy Matcher: best watchlist candidate for an extracted entity.

Scoring (0-100):
- exact: normalized name equals the watchlist normalized name → 100
- alias: normalized name equals a normalized alias → 95
- fuzzy: RapidFuzz WRatio against every name and alias, including
  nickname variants of the query; the maximum wins

Ties are broken by match type (exact > alias > fuzzy), then by the lower
tier number, then by the lexicographically smallest id. Scores below the
floor yield no match.
"""
from __future__ import annotations

from typing import Iterable, NamedTuple, Optional

import structlog

from .config import ROUTING_THRESHOLDS
from .models import (
    COMPARABLE_TYPES,
    EntityType,
    ExtractedEntity,
    MatchResult,
    MatchType,
    WatchlistEntity,
)
from .normalizer import NameNormalizer
from .similarity import SimilarityMetrics
from .watchlist import WatchlistSnapshot

logger = structlog.get_logger("memoria.curation.matcher")

EXACT_SCORE = 100.0
ALIAS_SCORE = 95.0


class Candidate(NamedTuple):
    """Best score of one watchlist entity for a query name."""
    score: float
    match_type: MatchType
    watchlist_entity: Optional[WatchlistEntity]
    matched_on: Optional[str]

    def sort_key(self) -> tuple:
        entity = self.watchlist_entity
        return (
            -self.score,
            self.match_type.precedence,
            entity.tier if entity else 0,
            entity.id if entity else "",
        )


NO_CANDIDATE = Candidate(0.0, MatchType.NONE, None, None)


class FuzzyMatcher:
    """
    Matches normalized names against a watchlist snapshot.

    Stateless apart from its configuration; safe to share across threads.

    Example, with "Nicolás Maduro Moros" listed under the single alias
    "Nico Maduro":
        >>> matcher = FuzzyMatcher()
        >>> result = matcher.match_name("nicolas maduro", store.snapshot())
        >>> result.match_type, result.score, result.matched_on
        (<MatchType.FUZZY: 'fuzzy'>, 95.0, 'nicolas maduro moros')
    """

    def __init__(
        self,
        floor: float = ROUTING_THRESHOLDS['floor'],
        normalizer: NameNormalizer | None = None,
        metrics: SimilarityMetrics | None = None,
    ):
        self.floor = floor
        self.normalizer = normalizer or NameNormalizer()
        self.metrics = metrics or SimilarityMetrics()

    def _score_entity(self, queries: list[str], entity: WatchlistEntity) -> Candidate:
        name = queries[0]
        if name == entity.normalized_name:
            return Candidate(EXACT_SCORE, MatchType.EXACT, entity, entity.normalized_name)

        if name in entity.normalized_aliases:
            return Candidate(ALIAS_SCORE, MatchType.ALIAS, entity, name)

        best = NO_CANDIDATE
        targets = (entity.normalized_name, *entity.normalized_aliases)
        for query in queries:
            for target in targets:
                # Cutoff is the running best, so anything lower returns 0
                score = self.metrics.weighted_ratio(query, target, score_cutoff=best.score)
                if score > best.score:
                    best = Candidate(score, MatchType.FUZZY, entity, target)
        return best

    def _eligible(
        self, snapshot: Iterable[WatchlistEntity], entity_type: EntityType | str | None
    ) -> Iterable[WatchlistEntity]:
        if entity_type is None:
            return snapshot
        comparable = COMPARABLE_TYPES.get(EntityType(entity_type))
        if comparable is None:
            return ()
        return (e for e in snapshot if e.entity_type == comparable)

    def best_candidate(
        self,
        normalized_name: str,
        snapshot: Iterable[WatchlistEntity],
        entity_type: EntityType | str | None = None,
    ) -> Candidate:
        """Best candidate over the snapshot, before applying the floor."""
        queries = [normalized_name, *self.normalizer.nickname_variants(normalized_name)]
        best = NO_CANDIDATE
        for entity in self._eligible(snapshot, entity_type):
            candidate = self._score_entity(queries, entity)
            if candidate.watchlist_entity is None:
                continue
            if best.watchlist_entity is None or candidate.sort_key() < best.sort_key():
                best = candidate
        return best

    def match_name(
        self,
        normalized_name: str,
        snapshot: WatchlistSnapshot,
        entity_type: EntityType | str | None = None,
        entity: ExtractedEntity | None = None,
    ) -> MatchResult:
        """
        Match one normalized name.

        Pure: the result depends only on the name, the snapshot and the
        configured floor.
        """
        if entity is None:
            entity = ExtractedEntity(
                raw_text=normalized_name,
                entity_type=entity_type or EntityType.PERSON,
                normalized_text=normalized_name,
            )

        best = self.best_candidate(normalized_name, snapshot, entity_type)
        if best.watchlist_entity is None or best.score < self.floor:
            logger.debug(
                "tier1_no_match",
                name=normalized_name,
                best_score=round(best.score, 2),
            )
            return MatchResult(
                entity=entity,
                watchlist_entity=None,
                score=0.0,
                match_type=MatchType.NONE,
                watchlist_version=snapshot.version,
            )

        logger.info(
            "tier1_match",
            name=normalized_name,
            matched_on=best.matched_on,
            watchlist_id=best.watchlist_entity.id,
            score=round(best.score, 2),
            match_type=best.match_type.value,
        )
        return MatchResult(
            entity=entity,
            watchlist_entity=best.watchlist_entity,
            score=best.score,
            match_type=best.match_type,
            matched_on=best.matched_on,
            watchlist_version=snapshot.version,
        )

    def match(self, entity: ExtractedEntity, snapshot: WatchlistSnapshot) -> MatchResult:
        """Match an extracted entity whose normalized_text is already set."""
        return self.match_name(
            entity.normalized_text, snapshot, entity_type=entity.entity_type, entity=entity
        )

    def explain(self, normalized_name: str, watchlist_entity: WatchlistEntity) -> dict:
        """Metric breakdown against every name of one watchlist entity."""
        return {
            target: self.metrics.breakdown(normalized_name, target)
            for target in (watchlist_entity.normalized_name, *watchlist_entity.normalized_aliases)
        }
