"""
API router for the Tier-1 watchlist.

Imports sanctions-list records (OFAC seed list, SDN files, or arbitrary
records), lists officials, and runs ad-hoc matches against the current
watchlist snapshot.
"""

from typing import Optional

import httpx
import structlog
from fastapi import APIRouter, Depends, HTTPException, Path, Query

from curation.models import WatchlistEntityType
from curation.ofac import fetch_sdn_records
from curation.pipeline import CurationPipeline
from curation.seed_data import seed_records

from ..cache import TIER1_STATS_CACHE, app_cache
from ..dependencies import get_pipeline
from ..models.tier1 import (
    ImportRequest,
    ImportResponse,
    MatchRequest,
    MatchResponse,
    OfficialListResponse,
    Tier1StatsResponse,
    WatchlistEntityResponse,
)

logger = structlog.get_logger("memoria.api.tier1")

router = APIRouter(prefix="/tier1", tags=["tier1"])


def _import_response(pipeline: CurationPipeline, records, message: str) -> ImportResponse:
    report = pipeline.import_watchlist(records)
    return ImportResponse(
        message=message,
        **report.to_dict(),
        watchlist_version=pipeline.watchlist.version,
    )


@router.post("/import", response_model=ImportResponse)
def import_records(body: ImportRequest, pipeline: CurationPipeline = Depends(get_pipeline)):
    """
    Upsert watchlist records keyed by (externalId, source).

    Invalid records are reported in `errors` and skipped; the rest are imported.
    """
    return _import_response(pipeline, body.records, "Import complete")


@router.post("/import/ofac", response_model=ImportResponse)
def import_ofac(
    download: bool = Query(False, description="Download the live SDN list instead of the bundled seed list"),
    pipeline: CurationPipeline = Depends(get_pipeline),
):
    """Import Venezuela-related OFAC designations."""
    if download:
        try:
            records = fetch_sdn_records()
        except httpx.HTTPError as e:
            logger.error("ofac_download_failed", error=str(e))
            raise HTTPException(status_code=502, detail="OFAC SDN download failed")
    else:
        records = seed_records()

    logger.info("ofac_import_started", records=len(records), download=download)
    return _import_response(pipeline, records, "OFAC import complete")


@router.get("/officials", response_model=OfficialListResponse)
def list_officials(
    entity_type: Optional[WatchlistEntityType] = Query(None, description="PERSON or ORGANIZATION"),
    source: Optional[str] = Query(None, max_length=50, description="Source list, e.g. OFAC"),
    pipeline: CurationPipeline = Depends(get_pipeline),
):
    """All Tier-1 entities ordered by name."""
    entities = pipeline.watchlist.list_entities(entity_type=entity_type, source=source)
    return OfficialListResponse(
        total=len(entities),
        data=[WatchlistEntityResponse(**e.to_dict()) for e in entities],
    )


@router.get("/officials/{entity_id}", response_model=WatchlistEntityResponse)
def get_official(
    entity_id: str = Path(..., description="Watchlist entity id"),
    pipeline: CurationPipeline = Depends(get_pipeline),
):
    return WatchlistEntityResponse(**pipeline.watchlist.get(entity_id).to_dict())


@router.get("/stats", response_model=Tier1StatsResponse)
def get_stats(pipeline: CurationPipeline = Depends(get_pipeline)):
    """Counts by source, tier and entity type."""
    key = f"{pipeline.db.path}:v{pipeline.watchlist.version}"
    cached = app_cache.get(TIER1_STATS_CACHE, key)
    if cached is not None:
        return cached

    result = Tier1StatsResponse(**pipeline.watchlist.stats())
    app_cache.set(TIER1_STATS_CACHE, key, result, maxsize=16, ttl=300)
    return result


@router.post("/match", response_model=MatchResponse)
def match_name(body: MatchRequest, pipeline: CurationPipeline = Depends(get_pipeline)):
    """
    Match one name against the watchlist.

    Read-only: nothing is enqueued or audited.
    """
    normalized = pipeline.normalizer.normalize(body.name, body.language)
    result = pipeline.matcher.match_name(normalized, pipeline.watchlist.snapshot(), body.entity_type)
    routing = pipeline.classifier.classify(result).routing

    breakdown = None
    if body.explain and result.watchlist_entity is not None:
        breakdown = pipeline.matcher.explain(normalized, result.watchlist_entity)

    return MatchResponse(
        name=body.name,
        normalized_name=normalized,
        match_type=result.match_type.value,
        score=round(result.score, 3),
        confidence_level=result.confidence_level,
        routing=routing.value,
        matched_on=result.matched_on,
        watchlist_entity=(
            WatchlistEntityResponse(**result.watchlist_entity.to_dict())
            if result.watchlist_entity else None
        ),
        watchlist_version=result.watchlist_version,
        breakdown=breakdown,
    )
