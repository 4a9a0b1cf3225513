"""
API router for the review queue.

Pending matches are listed oldest first. Resolving an item is final: a
second resolution returns 409 with the current state of the item.
"""

from itertools import islice
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from curation.models import EntityType, Routing, Verdict
from curation.pipeline import CurationPipeline
from curation.review_queue import ReviewFilter

from ..dependencies import get_pipeline
from ..models.common import ErrorResponse, PaginationMeta
from ..models.review import (
    AuditTrailResponse,
    QueueStatsResponse,
    ResolveRequest,
    ReviewItemResponse,
    ReviewListResponse,
)

router = APIRouter(
    prefix="/review-queue",
    tags=["review-queue"],
    responses={404: {"model": ErrorResponse}},
)


# =============================================================================
# LISTING
# =============================================================================

@router.get("", response_model=ReviewListResponse)
def list_pending(
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(50, ge=1, le=200, description="Items per page"),
    routing: Optional[Routing] = Query(None, description="llm-review or human-review"),
    entity_type: Optional[EntityType] = Query(None, description="PERSON, ORG or LOCATION"),
    min_score: Optional[float] = Query(None, ge=0, le=100, description="Minimum match score"),
    issue: Optional[str] = Query(None, max_length=100, description="Substring of an issue"),
    pipeline: CurationPipeline = Depends(get_pipeline),
):
    """Pending review items in FIFO order."""
    review_filter = ReviewFilter(
        routing=routing,
        entity_type=entity_type,
        min_score=min_score,
        issue=issue,
    )
    view = pipeline.queue.list_pending(review_filter, page_size=per_page)
    offset = (page - 1) * per_page
    items = list(islice(view, offset, offset + per_page))

    return ReviewListResponse(
        data=[ReviewItemResponse(**item.to_dict()) for item in items],
        pagination=PaginationMeta.create(page=page, per_page=per_page, total=view.count()),
    )


@router.get("/stats", response_model=QueueStatsResponse)
def queue_stats(pipeline: CurationPipeline = Depends(get_pipeline)):
    """Counts by status and routing, plus the most common issues."""
    return pipeline.queue.stats()


# =============================================================================
# ITEMS
# =============================================================================

@router.get("/{item_id}", response_model=ReviewItemResponse)
def get_item(
    item_id: str = Path(..., description="Review item id"),
    pipeline: CurationPipeline = Depends(get_pipeline),
):
    return pipeline.queue.get(item_id).to_dict()


@router.get("/{item_id}/audit", response_model=AuditTrailResponse)
def get_audit_trail(
    item_id: str = Path(..., description="Review item id"),
    pipeline: CurationPipeline = Depends(get_pipeline),
):
    """Every recorded change of the item, oldest first."""
    events = pipeline.queue.audit_trail(item_id)
    return AuditTrailResponse(item_id=item_id, events=[e.to_dict() for e in events])


@router.post(
    "/{item_id}/resolve",
    response_model=ReviewItemResponse,
    responses={409: {"model": ErrorResponse}},
)
def resolve_item(
    body: ResolveRequest,
    item_id: str = Path(..., description="Review item id"),
    pipeline: CurationPipeline = Depends(get_pipeline),
):
    """
    Apply a reviewer decision.

    409 ALREADY_RESOLVED if the item is already terminal, 409 STALE_VERSION
    if `expected_version` no longer matches.
    """
    item = pipeline.queue.resolve(
        item_id,
        Verdict(decision=body.decision, reviewer=body.reviewer, notes=body.notes),
        expected_version=body.expected_version,
    )
    return item.to_dict()
