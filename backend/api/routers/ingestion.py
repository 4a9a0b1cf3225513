"""
API router for entity ingestion.

Extracted entities from the NER pipeline enter here and are matched,
classified, and queued for review. Curator status and retries live here
too since the curator only ever sees ingested items.
"""

from fastapi import APIRouter, Depends, Response

from curation.pipeline import CurationPipeline

from ..dependencies import get_pipeline
from ..models.review import (
    BatchRequest,
    BatchResponse,
    CuratorRetryResponse,
    CuratorStatusResponse,
    ExtractedEntityRequest,
    OutcomeResponse,
)

router = APIRouter(prefix="/ingestion", tags=["ingestion"])


# =============================================================================
# ENTITIES
# =============================================================================

@router.post("/entities", response_model=OutcomeResponse)
def ingest_entity(
    body: ExtractedEntityRequest,
    response: Response,
    pipeline: CurationPipeline = Depends(get_pipeline),
):
    """
    Run one extracted entity through the curation pipeline.

    Returns 201 when a review item was created, 200 otherwise
    (auto-approved or passthrough). A second submission of the same
    entity for the same article while the first is pending returns 409.
    """
    outcome = pipeline.process(body.to_entity())
    response.status_code = 201 if outcome.enqueued else 200
    return outcome.to_dict()


@router.post("/entities/batch", response_model=BatchResponse)
def ingest_batch(body: BatchRequest, pipeline: CurationPipeline = Depends(get_pipeline)):
    """Process entities independently; per-entity failures are listed in `errors`."""
    return pipeline.process_batch(e.to_entity() for e in body.entities)


# =============================================================================
# CURATOR
# =============================================================================

@router.get("/curator/status", response_model=CuratorStatusResponse)
def curator_status(pipeline: CurationPipeline = Depends(get_pipeline)):
    return pipeline.curator_status()


@router.post("/curator/retry", response_model=CuratorRetryResponse)
def retry_curation(pipeline: CurationPipeline = Depends(get_pipeline)):
    """Re-run the curator on pending llm-review items."""
    return pipeline.retry_pending_curation()
