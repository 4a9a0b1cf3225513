"""
Curation core for La Memoria de Venezuela.

Matches entities extracted from news articles against the Tier-1 watchlist
(sanctioned and regime-connected officials) and routes every match to
auto-approval, LLM review or human review.

Components:
- normalizer: Spanish/English name normalization
- similarity: RapidFuzz string metrics
- watchlist: Tier-1 store with copy-on-write snapshots
- matcher: exact / alias / fuzzy matching
- classifier: score → routing tier
- review_queue: durable queue with state machine and audit trail
- curator: LLM curator adapter (Together.AI, rule based)
- pipeline: orchestration
"""

__version__ = "1.0.0"

from .classifier import Classification, ConfidenceClassifier
from .config import CurationSettings, CuratorSettings, RoutingThresholds
from .curator import Curator, RuleBasedCurator, TogetherCurator, build_curator
from .db import Database
from .matcher import FuzzyMatcher
from .migrations import apply_migrations
from .normalizer import NameNormalizer, normalize_name
from .pipeline import CurationPipeline, PipelineOutcome
from .review_queue import ReviewFilter, ReviewQueue
from .similarity import SimilarityMetrics
from .watchlist import WatchlistRecord, WatchlistStore

__all__ = [
    "Classification",
    "ConfidenceClassifier",
    "CurationSettings",
    "CuratorSettings",
    "RoutingThresholds",
    "Curator",
    "RuleBasedCurator",
    "TogetherCurator",
    "build_curator",
    "Database",
    "FuzzyMatcher",
    "apply_migrations",
    "NameNormalizer",
    "normalize_name",
    "CurationPipeline",
    "PipelineOutcome",
    "ReviewFilter",
    "ReviewQueue",
    "SimilarityMetrics",
    "WatchlistRecord",
    "WatchlistStore",
]
