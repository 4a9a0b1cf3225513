"""Pydantic models for the Tier-1 watchlist endpoints."""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional

from curation.models import EntityType


class WatchlistEntityResponse(BaseModel):
    """A Tier-1 official or organization."""

    id: str = Field(..., description="Internal id (uuid)")
    external_id: str = Field(..., description="Id in the source list (e.g. OFAC uid)")
    full_name: str
    normalized_name: str
    aliases: List[str] = Field(default_factory=list)
    normalized_aliases: List[str] = Field(default_factory=list)
    sanctions_programs: List[str] = Field(default_factory=list)
    tier: int = Field(..., description="1 = highest priority")
    source: str = Field(..., description="Source list, e.g. OFAC")
    confidence_level: int = Field(..., ge=1, le=5)
    entity_type: str = Field(..., description="PERSON or ORGANIZATION")
    nationality: Optional[str] = None
    date_of_birth: Optional[str] = None
    notes: Optional[str] = None


class OfficialListResponse(BaseModel):
    total: int
    data: List[WatchlistEntityResponse]


class ImportRequest(BaseModel):
    """Watchlist records; each one is validated on its own."""

    records: List[Dict[str, Any]] = Field(..., max_length=10000)


class ImportErrorItem(BaseModel):
    index: int
    external_id: Optional[Any] = None
    reason: str


class ImportResponse(BaseModel):
    message: str
    imported: int
    updated: int
    skipped: int
    errors: List[ImportErrorItem] = Field(default_factory=list)
    watchlist_version: int


class Tier1StatsResponse(BaseModel):
    total: int
    version: int = Field(..., description="Watchlist version, bumped on every changing import")
    by_source: Dict[str, int]
    by_tier: Dict[str, int]
    by_entity_type: Dict[str, int]


class MatchRequest(BaseModel):
    """Ad-hoc match of one name against the watchlist (no queue side effects)."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=300)
    entity_type: Optional[EntityType] = Field(None, alias="type")
    language: str = Field("es", max_length=8)
    explain: bool = Field(False, description="Include per-metric similarity breakdown")


class MatchResponse(BaseModel):
    name: str
    normalized_name: str
    match_type: str
    score: float
    confidence_level: int
    routing: str
    matched_on: Optional[str] = None
    watchlist_entity: Optional[WatchlistEntityResponse] = None
    watchlist_version: int
    breakdown: Optional[Dict[str, Dict[str, float]]] = None
