"""Data model for the curation pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .config import get_confidence_level
from .errors import InvalidInputError


class EntityType(str, Enum):
    """NER entity types supplied by the extraction pipeline."""
    PERSON = "PERSON"
    ORG = "ORG"
    LOCATION = "LOCATION"


class WatchlistEntityType(str, Enum):
    PERSON = "PERSON"
    ORGANIZATION = "ORGANIZATION"


# Which watchlist entries an extracted entity may be compared with
COMPARABLE_TYPES = {
    EntityType.PERSON: WatchlistEntityType.PERSON,
    EntityType.ORG: WatchlistEntityType.ORGANIZATION,
}


class MatchType(str, Enum):
    EXACT = "exact"
    ALIAS = "alias"
    FUZZY = "fuzzy"
    NONE = "none"

    @property
    def precedence(self) -> int:
        """Lower wins on equal scores."""
        return _MATCH_PRECEDENCE[self]


_MATCH_PRECEDENCE = {
    MatchType.EXACT: 0,
    MatchType.ALIAS: 1,
    MatchType.FUZZY: 2,
    MatchType.NONE: 3,
}


class Routing(str, Enum):
    """Action tier produced by the confidence classifier."""
    AUTO_APPROVE = "auto-approve"
    LLM_REVIEW = "llm-review"
    HUMAN_REVIEW = "human-review"
    PASSTHROUGH = "passthrough"


class ReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    FLAGGED = "flagged"
    INVESTIGATING = "investigating"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not ReviewStatus.PENDING


class Decision(str, Enum):
    """Adjudication outcome, from a curator or a human reviewer."""
    APPROVE = "approve"
    FLAG = "flag"
    INVESTIGATE = "investigate"
    REJECT = "reject"

    @property
    def target_status(self) -> ReviewStatus:
        return _DECISION_STATUS[self]


_DECISION_STATUS = {
    Decision.APPROVE: ReviewStatus.APPROVED,
    Decision.FLAG: ReviewStatus.FLAGGED,
    Decision.INVESTIGATE: ReviewStatus.INVESTIGATING,
    Decision.REJECT: ReviewStatus.REJECTED,
}


@dataclass(frozen=True)
class WatchlistEntity:
    """A sanctioned or regime-connected entity from an authoritative list."""
    id: str
    external_id: str
    full_name: str
    normalized_name: str
    aliases: tuple[str, ...] = ()
    normalized_aliases: tuple[str, ...] = ()
    sanctions_programs: frozenset[str] = frozenset()
    tier: int = 1
    source: str = "OFAC"
    confidence_level: int = 5
    entity_type: WatchlistEntityType = WatchlistEntityType.PERSON
    nationality: Optional[str] = None
    date_of_birth: Optional[str] = None
    notes: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "full_name": self.full_name,
            "normalized_name": self.normalized_name,
            "aliases": list(self.aliases),
            "normalized_aliases": list(self.normalized_aliases),
            "sanctions_programs": sorted(self.sanctions_programs),
            "tier": self.tier,
            "source": self.source,
            "confidence_level": self.confidence_level,
            "entity_type": self.entity_type.value,
            "nationality": self.nationality,
            "date_of_birth": self.date_of_birth,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WatchlistEntity":
        return cls(
            id=data["id"],
            external_id=data["external_id"],
            full_name=data["full_name"],
            normalized_name=data["normalized_name"],
            aliases=tuple(data.get("aliases") or ()),
            normalized_aliases=tuple(data.get("normalized_aliases") or ()),
            sanctions_programs=frozenset(data.get("sanctions_programs") or ()),
            tier=data.get("tier", 1),
            source=data.get("source", "OFAC"),
            confidence_level=data.get("confidence_level", 5),
            entity_type=WatchlistEntityType(data.get("entity_type", "PERSON")),
            nationality=data.get("nationality"),
            date_of_birth=data.get("date_of_birth"),
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class ExtractedEntity:
    """An entity mention produced by document extraction. Read-only input."""
    raw_text: str
    entity_type: EntityType
    article_context: str = ""
    source_confidence: int = 3
    normalized_text: str = ""
    language: str = "es"

    def __post_init__(self):
        if not isinstance(self.entity_type, EntityType):
            try:
                object.__setattr__(self, "entity_type", EntityType(str(self.entity_type).upper()))
            except ValueError:
                raise InvalidInputError(f"Unknown entity type: {self.entity_type!r}")
        if not 1 <= int(self.source_confidence) <= 5:
            raise InvalidInputError(
                "source_confidence must be an integer between 1 and 5",
                {"source_confidence": self.source_confidence},
            )

    def to_dict(self) -> dict:
        return {
            "raw_text": self.raw_text,
            "normalized_text": self.normalized_text,
            "type": self.entity_type.value,
            "article_context": self.article_context,
            "source_confidence": self.source_confidence,
            "language": self.language,
        }


@dataclass(frozen=True)
class MatchResult:
    """Best watchlist candidate for an extracted entity."""
    entity: ExtractedEntity
    watchlist_entity: Optional[WatchlistEntity]
    score: float
    match_type: MatchType
    matched_on: Optional[str] = None
    watchlist_version: int = 0

    def same_candidate(self, other: "MatchResult") -> bool:
        """Same entity, score and match type; the watchlist version may differ."""
        return (
            self.match_type is other.match_type
            and self.score == other.score
            and self.matched_on == other.matched_on
            and self.watchlist_entity == other.watchlist_entity
        )

    @property
    def is_match(self) -> bool:
        return self.match_type is not MatchType.NONE

    @property
    def confidence_level(self) -> int:
        return get_confidence_level(self.score) if self.is_match else 1

    def to_dict(self) -> dict:
        return {
            "watchlist_entity": self.watchlist_entity.to_dict() if self.watchlist_entity else None,
            "score": round(self.score, 3),
            "match_type": self.match_type.value,
            "matched_on": self.matched_on,
            "confidence_level": self.confidence_level,
            "watchlist_version": self.watchlist_version,
        }


@dataclass(frozen=True)
class CuratorVerdict:
    """Structured answer of a curator (LLM or rule based)."""
    recommendation: Decision
    confidence: float
    explanation: str
    suggested_category: Optional[str] = None
    issues: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "recommendation": self.recommendation.value,
            "confidence": self.confidence,
            "explanation": self.explanation,
            "suggested_category": self.suggested_category,
            "issues": list(self.issues),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CuratorVerdict":
        return cls(
            recommendation=Decision(data["recommendation"]),
            confidence=float(data.get("confidence") or 0.0),
            explanation=data.get("explanation") or "",
            suggested_category=data.get("suggested_category"),
            issues=tuple(data.get("issues") or ()),
        )


@dataclass(frozen=True)
class Verdict:
    """A resolution request for a review item."""
    decision: Decision
    reviewer: str
    notes: Optional[str] = None


@dataclass
class ReviewItem:
    """A match awaiting (or having received) adjudication."""
    id: str
    entity: ExtractedEntity
    match: MatchResult
    routing: Routing
    status: ReviewStatus = ReviewStatus.PENDING
    curator_verdict: Optional[CuratorVerdict] = None
    curator_attempts: int = 0
    issues: list[str] = field(default_factory=list)
    resolved_by: Optional[str] = None
    resolved_at: Optional[str] = None
    notes: Optional[str] = None
    version: int = 1
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "entity": self.entity.to_dict(),
            "match": self.match.to_dict(),
            "routing": self.routing.value,
            "status": self.status.value,
            "curator_verdict": self.curator_verdict.to_dict() if self.curator_verdict else None,
            "curator_attempts": self.curator_attempts,
            "issues": list(self.issues),
            "resolved_by": self.resolved_by,
            "resolved_at": self.resolved_at,
            "notes": self.notes,
            "version": self.version,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class AuditEvent:
    """One row of the append-only audit trail."""
    id: int
    item_id: Optional[str]
    event: str
    from_status: Optional[str]
    to_status: Optional[str]
    actor: str
    detail: dict
    created_at: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "event": self.event,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor": self.actor,
            "detail": self.detail,
            "created_at": self.created_at,
        }
