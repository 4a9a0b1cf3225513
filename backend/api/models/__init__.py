# Pydantic models for API request/response
from .common import PaginationMeta, ErrorResponse
from .tier1 import (
    WatchlistEntityResponse,
    OfficialListResponse,
    ImportRequest,
    ImportResponse,
    Tier1StatsResponse,
    MatchRequest,
    MatchResponse,
)
from .review import (
    ExtractedEntityRequest,
    BatchRequest,
    BatchResponse,
    OutcomeResponse,
    ReviewItemResponse,
    ReviewListResponse,
    ResolveRequest,
    AuditTrailResponse,
    QueueStatsResponse,
    CuratorStatusResponse,
    CuratorRetryResponse,
)

__all__ = [
    "PaginationMeta",
    "ErrorResponse",
    "WatchlistEntityResponse",
    "OfficialListResponse",
    "ImportRequest",
    "ImportResponse",
    "Tier1StatsResponse",
    "MatchRequest",
    "MatchResponse",
    "ExtractedEntityRequest",
    "BatchRequest",
    "BatchResponse",
    "OutcomeResponse",
    "ReviewItemResponse",
    "ReviewListResponse",
    "ResolveRequest",
    "AuditTrailResponse",
    "QueueStatsResponse",
    "CuratorStatusResponse",
    "CuratorRetryResponse",
]
