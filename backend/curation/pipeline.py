"""
Curation pipeline: Normalizer → Matcher → Classifier → Review Queue → Curator.

Each extracted entity is an independent unit of work. Curator calls run on a
thread pool and never hold a database transaction; their verdicts are
applied only if the item is still pending at the version the call started
from.
"""
from __future__ import annotations

import dataclasses
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

import structlog

from .classifier import ConfidenceClassifier
from .config import CurationSettings
from .curator import Curator, CuratorRequest, build_curator, decide
from .db import Database
from .errors import CurationError, CuratorError, StaleVersionError
from .matcher import FuzzyMatcher
from .models import (
    ExtractedEntity,
    MatchResult,
    ReviewItem,
    ReviewStatus,
    Routing,
)
from .normalizer import NameNormalizer
from .review_queue import ReviewFilter, ReviewQueue
from .watchlist import ImportReport, WatchlistRecord, WatchlistStore

logger = structlog.get_logger("memoria.curation.pipeline")

CURATOR_DISABLED_ISSUE = "LLM curator disabled: requires human review"


@dataclass
class PipelineOutcome:
    """What happened to one extracted entity."""
    entity: ExtractedEntity
    match: MatchResult
    routing: Routing
    status: Optional[ReviewStatus]
    confidence_level: int = 1
    item: Optional[ReviewItem] = None
    audit_event_id: Optional[int] = None
    issues: list[str] = field(default_factory=list)

    @property
    def enqueued(self) -> bool:
        return self.item is not None

    def to_dict(self) -> dict:
        return {
            "entity": self.entity.to_dict(),
            "match": self.match.to_dict(),
            "routing": self.routing.value,
            "status": self.status.value if self.status else None,
            "confidence_level": self.confidence_level,
            "review_item": self.item.to_dict() if self.item else None,
            "audit_event_id": self.audit_event_id,
        }


class CurationPipeline:
    """
    Wires the curation components together over one database.

    Args:
        db: sqlite database (migrations already applied)
        settings: thresholds and curator settings
        curator: curator strategy; built from settings when omitted
        background: run curator calls on a thread pool (False runs them inline)
        sleep: backoff sleeper between curator attempts
    """

    def __init__(
        self,
        db: Database,
        settings: CurationSettings | None = None,
        curator: Curator | None = None,
        background: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.db = db
        self.settings = settings or CurationSettings()
        self.normalizer = NameNormalizer()
        self.watchlist = WatchlistStore(db, self.normalizer)
        self.matcher = FuzzyMatcher(floor=self.settings.thresholds.floor, normalizer=self.normalizer)
        self.classifier = ConfidenceClassifier(self.settings.thresholds)
        self.queue = ReviewQueue(db)
        self.curator = curator or build_curator(self.settings.curator)
        self._sleep = sleep
        self._executor: Optional[ThreadPoolExecutor] = None
        if background:
            self._executor = ThreadPoolExecutor(
                max_workers=self.settings.curator.workers,
                thread_name_prefix="curator",
            )
        self._futures: dict[Future, str] = {}
        self._in_flight: set[str] = set()
        self._futures_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Watchlist
    # ------------------------------------------------------------------

    def import_watchlist(self, records: Iterable[dict | WatchlistRecord]) -> ImportReport:
        """Upsert watchlist records and rematch stale pending items."""
        report = self.watchlist.import_records(records)
        if report.imported or report.updated:
            self.refresh_stale_matches()
        return report

    def refresh_stale_matches(self) -> dict:
        snapshot = self.watchlist.snapshot()
        return self.queue.rematch_pending(
            lambda entity: self.matcher.match(entity, snapshot),
            snapshot.version,
        )

    # ------------------------------------------------------------------
    # Entity processing
    # ------------------------------------------------------------------

    def prepare(self, entity: ExtractedEntity) -> ExtractedEntity:
        """Fill in the normalized text. Raises InvalidInputError on empty names."""
        normalized = self.normalizer.normalize(entity.raw_text, entity.language)
        return dataclasses.replace(entity, normalized_text=normalized)

    def match(self, entity: ExtractedEntity) -> MatchResult:
        entity = self.prepare(entity)
        return self.matcher.match(entity, self.watchlist.snapshot())

    def process(self, entity: ExtractedEntity) -> PipelineOutcome:
        """
        Run one extracted entity through the pipeline.

        Raises:
            InvalidInputError: the name normalizes to nothing
            DuplicateReviewError: an open item exists for this entity and article
        """
        entity = self.prepare(entity)
        match = self.matcher.match(entity, self.watchlist.snapshot())
        classification = self.classifier.classify(match, entity.source_confidence)
        routing = classification.routing

        outcome = PipelineOutcome(
            entity=entity,
            match=match,
            routing=routing,
            status=classification.status,
            confidence_level=classification.confidence_level,
        )

        if routing is Routing.PASSTHROUGH:
            logger.debug("entity_passthrough", entity=entity.normalized_text)
            return outcome

        if routing is Routing.AUTO_APPROVE:
            event = self.queue.record_auto_approval(entity, match)
            outcome.audit_event_id = event.id
            return outcome

        issues = []
        if routing is Routing.LLM_REVIEW and not self.curator.enabled:
            routing = Routing.HUMAN_REVIEW
            issues.append(CURATOR_DISABLED_ISSUE)

        item = self.queue.enqueue(ReviewItem(
            id=str(uuid.uuid4()),
            entity=entity,
            match=match,
            routing=routing,
            issues=issues,
        ))
        outcome.routing = routing
        outcome.issues = issues

        if routing is Routing.LLM_REVIEW:
            curated = self.schedule_curation(item)
            if curated is not None:
                item = curated

        outcome.item = item
        outcome.status = item.status
        return outcome

    def process_batch(self, entities: Iterable[ExtractedEntity]) -> dict:
        """Process entities independently; one failure does not stop the batch."""
        results = []
        errors = []
        summary = {routing.value: 0 for routing in Routing}
        for index, entity in enumerate(entities):
            try:
                outcome = self.process(entity)
            except CurationError as e:
                errors.append({
                    "index": index,
                    "code": e.error_code,
                    "message": e.message,
                    "details": e.details,
                })
                continue
            summary[outcome.routing.value] += 1
            results.append({"index": index, **outcome.to_dict()})

        logger.info("batch_processed", processed=len(results), errors=len(errors), **{
            k.replace("-", "_"): v for k, v in summary.items()
        })
        return {
            "processed": len(results),
            "summary": summary,
            "results": results,
            "errors": errors,
        }

    # ------------------------------------------------------------------
    # Curator
    # ------------------------------------------------------------------

    def schedule_curation(self, item: ReviewItem) -> Optional[ReviewItem]:
        """
        Start a curator review for a pending item.

        Inline mode returns the updated item; background mode returns None.
        Items with a review already running are left alone.
        """
        with self._futures_lock:
            if item.id in self._in_flight:
                logger.info("curator_already_running", item_id=item.id)
                return None
            self._in_flight.add(item.id)

        if self._executor is None:
            try:
                return self._curate(item.id) or self.queue.get(item.id)
            finally:
                with self._futures_lock:
                    self._in_flight.discard(item.id)

        future = self._executor.submit(self._curate, item.id)
        with self._futures_lock:
            self._futures[future] = item.id
        future.add_done_callback(self._curation_done)
        return None

    def is_curating(self, item_id: str) -> bool:
        with self._futures_lock:
            return item_id in self._in_flight

    def _curation_done(self, future: Future) -> None:
        with self._futures_lock:
            item_id = self._futures.pop(future, None)
            self._in_flight.discard(item_id)
        error = future.exception()
        if error is not None:
            logger.error("curator_task_failed", item_id=item_id, error=str(error), error_type=type(error).__name__)

    def _curate(self, item_id: str) -> Optional[ReviewItem]:
        """Review loop for one item; returns the item after any change it made."""
        settings = self.settings.curator
        item = self.queue.get(item_id)
        if item.status.is_terminal or item.routing is not Routing.LLM_REVIEW:
            logger.info("curator_skipped", item_id=item_id, status=item.status.value, routing=item.routing.value)
            return None

        if item.curator_attempts >= settings.max_attempts:
            return self.queue.route_to_human(item_id, f"Curator failed after {item.curator_attempts} attempts")

        actor = f"llm-curator:{self.curator.provider}"
        request = CuratorRequest.from_item(item)
        while True:
            try:
                verdict = self.curator.review(request)
            except CuratorError as e:
                failed = self.queue.record_curator_failure(item_id, e.message)
                if failed is None:
                    logger.info("curator_failure_ignored", item_id=item_id, reason="item left llm-review")
                    return None
                item = failed
                attempts = failed.curator_attempts
                logger.warning(
                    "curator_attempt_failed",
                    item_id=item_id,
                    attempt=attempts,
                    max_attempts=settings.max_attempts,
                    error_code=e.error_code,
                    error=e.message,
                )
                if attempts >= settings.max_attempts:
                    return self.queue.route_to_human(
                        item_id, f"Curator failed after {attempts} attempts: {e.error_code}"
                    )
                self._sleep(settings.retry_backoff_seconds * 2 ** (attempts - 1))
                request = CuratorRequest.from_item(item)
                continue

            decision = decide(verdict, settings.min_approve_confidence)
            if decision is not verdict.recommendation:
                logger.info(
                    "curator_approval_downgraded",
                    item_id=item_id,
                    confidence=verdict.confidence,
                    min_confidence=settings.min_approve_confidence,
                )

            # The item can change under us (e.g. a watchlist import rematched
            # it). Same candidate: the verdict still holds. New candidate:
            # review again.
            while True:
                try:
                    return self.queue.apply_curator_verdict(item_id, verdict, decision, item.version, actor=actor)
                except StaleVersionError:
                    current = self.queue.get(item_id)
                if not current.match.same_candidate(item.match):
                    break
                item = current

            logger.info(
                "curator_rereview",
                item_id=item_id,
                previous_score=item.match.score,
                score=current.match.score,
            )
            item = current
            request = CuratorRequest.from_item(item)

    def retry_pending_curation(self) -> dict:
        """
        Re-run the curator for pending llm-review items (e.g. after an
        outage). With the curator disabled they move to human review.
        """
        scheduled = routed = in_flight = 0
        for item in self.queue.list_pending(ReviewFilter(routing=Routing.LLM_REVIEW)):
            if self.is_curating(item.id):
                in_flight += 1
                continue
            if not self.curator.enabled:
                if self.queue.route_to_human(item.id, CURATOR_DISABLED_ISSUE, expected_version=item.version):
                    routed += 1
                continue
            self.schedule_curation(item)
            scheduled += 1
        logger.info("curator_retry_scheduled", scheduled=scheduled, routed_to_human=routed, in_flight=in_flight)
        return {"scheduled": scheduled, "routed_to_human": routed, "in_flight": in_flight}

    def curator_status(self) -> dict:
        with self._futures_lock:
            in_flight = len(self._in_flight)
        return {
            **self.curator.status(),
            "in_flight": in_flight,
            "pending_llm_review": self.queue.count_pending(ReviewFilter(routing=Routing.LLM_REVIEW)),
            "max_attempts": self.settings.curator.max_attempts,
            "min_approve_confidence": self.settings.curator.min_approve_confidence,
        }

    def wait_for_curation(self, timeout: float | None = None) -> None:
        """Block until in-flight curator reviews finish."""
        with self._futures_lock:
            futures = list(self._futures)
        if futures:
            wait(futures, timeout=timeout)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
        self.curator.close()
