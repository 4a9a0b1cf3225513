"""
Confidence Classifier: maps a match score to an action tier.

    score >= auto_approve            → auto-approve  (approved, audit only)
    llm_review <= score < auto       → llm-review    (pending)
    floor <= score < llm_review      → human-review  (pending)
    no match                         → passthrough   (not enqueued)
"""
from typing import NamedTuple, Optional

from .config import RoutingThresholds, get_confidence_level
from .models import MatchResult, ReviewStatus, Routing


class Classification(NamedTuple):
    routing: Routing
    status: Optional[ReviewStatus]
    confidence_level: int

    @property
    def enqueue(self) -> bool:
        return self.routing in (Routing.LLM_REVIEW, Routing.HUMAN_REVIEW)


class ConfidenceClassifier:
    """Pure function of (match, source confidence) and the thresholds."""

    def __init__(self, thresholds: RoutingThresholds | None = None):
        self.thresholds = thresholds or RoutingThresholds()

    def routing_for_score(self, score: float) -> Routing:
        t = self.thresholds
        if score >= t.auto_approve:
            return Routing.AUTO_APPROVE
        if score >= t.llm_review:
            return Routing.LLM_REVIEW
        if score >= t.floor:
            return Routing.HUMAN_REVIEW
        return Routing.PASSTHROUGH

    def classify(self, match: MatchResult, source_confidence: int = 3) -> Classification:
        # source_confidence is carried for auditing; routing is by score alone
        if not match.is_match:
            return Classification(Routing.PASSTHROUGH, None, 1)

        routing = self.routing_for_score(match.score)
        if routing is Routing.AUTO_APPROVE:
            status = ReviewStatus.APPROVED
        elif routing is Routing.PASSTHROUGH:
            status = None
        else:
            status = ReviewStatus.PENDING
        return Classification(routing, status, get_confidence_level(match.score))
