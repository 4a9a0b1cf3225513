"""Pydantic models for ingestion and review queue endpoints."""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional

from curation.models import Decision, EntityType, ExtractedEntity
from .common import PaginationMeta
from .tier1 import WatchlistEntityResponse


class ExtractedEntityRequest(BaseModel):
    """An entity produced by the NER pipeline."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    raw_text: str = Field(..., min_length=1, max_length=300, alias="rawText")
    entity_type: EntityType = Field(..., alias="type")
    article_context: str = Field("", max_length=20000, alias="articleContext")
    source_confidence: int = Field(3, ge=1, le=5, alias="sourceConfidence")
    language: str = Field("es", max_length=8)

    def to_entity(self) -> ExtractedEntity:
        return ExtractedEntity(
            raw_text=self.raw_text,
            entity_type=self.entity_type,
            article_context=self.article_context,
            source_confidence=self.source_confidence,
            language=self.language,
        )


class BatchRequest(BaseModel):
    entities: List[ExtractedEntityRequest] = Field(..., min_length=1, max_length=500)


class ExtractedEntityResponse(BaseModel):
    raw_text: str
    normalized_text: str
    type: str
    article_context: str
    source_confidence: int
    language: str


class MatchResultResponse(BaseModel):
    watchlist_entity: Optional[WatchlistEntityResponse] = None
    score: float
    match_type: str
    matched_on: Optional[str] = None
    confidence_level: int
    watchlist_version: int


class CuratorVerdictResponse(BaseModel):
    recommendation: str
    confidence: float
    explanation: str
    suggested_category: Optional[str] = None
    issues: List[str] = Field(default_factory=list)


class ReviewItemResponse(BaseModel):
    id: str
    entity: ExtractedEntityResponse
    match: MatchResultResponse
    routing: str
    status: str
    curator_verdict: Optional[CuratorVerdictResponse] = None
    curator_attempts: int
    issues: List[str] = Field(default_factory=list)
    resolved_by: Optional[str] = None
    resolved_at: Optional[str] = None
    notes: Optional[str] = None
    version: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class OutcomeResponse(BaseModel):
    """Result of running one entity through the pipeline."""

    entity: ExtractedEntityResponse
    match: MatchResultResponse
    routing: str = Field(..., description="auto-approve, llm-review, human-review or passthrough")
    status: Optional[str] = None
    confidence_level: int
    review_item: Optional[ReviewItemResponse] = None
    audit_event_id: Optional[int] = None


class BatchOutcome(OutcomeResponse):
    index: int


class BatchError(BaseModel):
    index: int
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class BatchResponse(BaseModel):
    processed: int
    summary: Dict[str, int]
    results: List[BatchOutcome]
    errors: List[BatchError]


class ReviewListResponse(BaseModel):
    data: List[ReviewItemResponse]
    pagination: PaginationMeta


class ResolveRequest(BaseModel):
    decision: Decision
    reviewer: str = Field(..., min_length=1, max_length=100)
    notes: Optional[str] = Field(None, max_length=5000)
    expected_version: Optional[int] = Field(None, ge=1, description="Reject if the item changed since this version")


class AuditEventResponse(BaseModel):
    id: int
    item_id: Optional[str] = None
    event: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    actor: str
    detail: Dict[str, Any] = Field(default_factory=dict)
    created_at: str


class AuditTrailResponse(BaseModel):
    item_id: str
    events: List[AuditEventResponse]


class IssueCount(BaseModel):
    issue: str
    count: int


class QueueStatsResponse(BaseModel):
    total: int
    by_status: Dict[str, int]
    pending_by_routing: Dict[str, int]
    auto_approved: int
    top_issues: List[IssueCount]


class CuratorStatusResponse(BaseModel):
    provider: str
    enabled: bool
    model: str
    reviews_processed: int
    failures: int
    unparseable: int
    in_flight: int
    pending_llm_review: int
    max_attempts: int
    min_approve_confidence: float


class CuratorRetryResponse(BaseModel):
    scheduled: int
    routed_to_human: int
    in_flight: int
