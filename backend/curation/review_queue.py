"""
Review Queue: durable holding area for matches awaiting adjudication.

Status model (explicit state machine):

    pending → approved | flagged | investigating | rejected

Every terminal state is final through this interface. Each item carries a
`version` that is bumped on every write; writers state the version they read
and lose if it moved (optimistic single-writer per item). Every change is
recorded in the append-only review_audit table.
"""
from __future__ import annotations

import hashlib
import json
import sqlite3
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

import structlog

from .db import Database, utcnow
from .errors import (
    AlreadyResolvedError,
    DuplicateReviewError,
    InvalidInputError,
    NotFoundError,
    StaleVersionError,
)
from .models import (
    AuditEvent,
    CuratorVerdict,
    Decision,
    EntityType,
    ExtractedEntity,
    MatchResult,
    MatchType,
    ReviewItem,
    ReviewStatus,
    Routing,
    Verdict,
    WatchlistEntity,
)

logger = structlog.get_logger("memoria.curation.review_queue")

ALLOWED_TRANSITIONS: dict[ReviewStatus, frozenset[ReviewStatus]] = {
    ReviewStatus.PENDING: frozenset({
        ReviewStatus.APPROVED,
        ReviewStatus.FLAGGED,
        ReviewStatus.INVESTIGATING,
        ReviewStatus.REJECTED,
    }),
    ReviewStatus.APPROVED: frozenset(),
    ReviewStatus.FLAGGED: frozenset(),
    ReviewStatus.INVESTIGATING: frozenset(),
    ReviewStatus.REJECTED: frozenset(),
}

QUEUED_ROUTINGS = (Routing.LLM_REVIEW, Routing.HUMAN_REVIEW)
DEFAULT_PAGE_SIZE = 100
TOP_ISSUES_LIMIT = 5
NO_LONGER_MATCHES = "Rematch: watchlist entry no longer matches"


def dedup_key(entity: ExtractedEntity) -> str:
    """Identity of an extracted entity within one article."""
    context = hashlib.sha256(entity.article_context.strip().encode("utf-8")).hexdigest()[:16]
    return f"{entity.entity_type.value}:{entity.normalized_text}:{context}"


def check_transition(current: ReviewStatus, target: ReviewStatus, item: ReviewItem | None = None) -> None:
    """Raise unless current → target is an allowed transition."""
    if current.is_terminal:
        raise AlreadyResolvedError(f"Review item is already {current.value}", item)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidInputError(f"Cannot move review item from {current.value} to {target.value}")


def _dumps(value) -> str:
    return json.dumps(value, ensure_ascii=False)


@dataclass(frozen=True)
class ReviewFilter:
    """Optional filters for pending items."""
    routing: Optional[Routing] = None
    entity_type: Optional[EntityType] = None
    min_score: Optional[float] = None
    issue: Optional[str] = None

    def where(self) -> tuple[str, list]:
        clauses = ["status = 'pending'"]
        params: list = []
        if self.routing is not None:
            clauses.append("routing = ?")
            params.append(Routing(self.routing).value)
        if self.entity_type is not None:
            clauses.append("entity_type = ?")
            params.append(EntityType(self.entity_type).value)
        if self.min_score is not None:
            clauses.append("match_score >= ?")
            params.append(self.min_score)
        if self.issue:
            escaped = self.issue.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            clauses.append("issues LIKE ? ESCAPE '\\'")
            params.append(f"%{escaped}%")
        return " AND ".join(clauses), params


def _row_to_item(row: sqlite3.Row) -> ReviewItem:
    entity = ExtractedEntity(
        raw_text=row["raw_text"],
        entity_type=EntityType(row["entity_type"]),
        article_context=row["article_context"],
        source_confidence=row["source_confidence"],
        normalized_text=row["normalized_text"],
        language=row["language"],
    )
    matched = None
    if row["matched_entity"]:
        matched = WatchlistEntity.from_dict(json.loads(row["matched_entity"]))
    match = MatchResult(
        entity=entity,
        watchlist_entity=matched,
        score=row["match_score"],
        match_type=MatchType(row["match_type"]),
        matched_on=row["matched_on"],
        watchlist_version=row["watchlist_version"],
    )
    verdict = None
    if row["curator_verdict"]:
        verdict = CuratorVerdict.from_dict(json.loads(row["curator_verdict"]))
    return ReviewItem(
        id=row["id"],
        entity=entity,
        match=match,
        routing=Routing(row["routing"]),
        status=ReviewStatus(row["status"]),
        curator_verdict=verdict,
        curator_attempts=row["curator_attempts"],
        issues=json.loads(row["issues"]),
        resolved_by=row["resolved_by"],
        resolved_at=row["resolved_at"],
        notes=row["notes"],
        version=row["version"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_event(row: sqlite3.Row) -> AuditEvent:
    return AuditEvent(
        id=row["id"],
        item_id=row["item_id"],
        event=row["event"],
        from_status=row["from_status"],
        to_status=row["to_status"],
        actor=row["actor"],
        detail=json.loads(row["detail"]),
        created_at=row["created_at"],
    )


def _match_columns(match: MatchResult) -> dict:
    matched = match.watchlist_entity
    return {
        "matched_entity_id": matched.id if matched else None,
        "matched_entity": _dumps(matched.to_dict()) if matched else None,
        "match_score": match.score,
        "match_type": match.match_type.value,
        "matched_on": match.matched_on,
        "watchlist_version": match.watchlist_version,
    }


class PendingView:
    """
    Lazy, restartable sequence of pending items in FIFO order.

    Items are read in keyset pages; every call to iter() starts a new scan
    from the oldest pending item, so the view can be consumed many times.
    """

    def __init__(self, queue: "ReviewQueue", review_filter: ReviewFilter, page_size: int):
        self._queue = queue
        self._filter = review_filter
        self._page_size = page_size

    def __iter__(self) -> Iterator[ReviewItem]:
        after_seq = 0
        while True:
            page = self._queue._pending_page(after_seq, self._filter, self._page_size)
            for _, item in page:
                yield item
            if len(page) < self._page_size:
                return
            after_seq = page[-1][0]

    def count(self) -> int:
        return self._queue.count_pending(self._filter)


class ReviewQueue:
    """sqlite-backed review queue with audit trail."""

    def __init__(self, db: Database):
        self.db = db

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fetch(self, conn: sqlite3.Connection, item_id: str) -> ReviewItem:
        row = conn.execute("SELECT * FROM review_items WHERE id = ?", (item_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Review item {item_id} not found", {"id": item_id})
        return _row_to_item(row)

    def _audit(
        self,
        conn: sqlite3.Connection,
        item_id: Optional[str],
        event: str,
        from_status: Optional[ReviewStatus],
        to_status: Optional[ReviewStatus],
        actor: str,
        detail: dict | None = None,
    ) -> int:
        cursor = conn.execute(
            """
            INSERT INTO review_audit (item_id, event, from_status, to_status, actor, detail, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                item_id,
                event,
                from_status.value if from_status else None,
                to_status.value if to_status else None,
                actor,
                _dumps(detail or {}),
                utcnow(),
            ),
        )
        return cursor.lastrowid

    def _update(self, conn: sqlite3.Connection, item: ReviewItem, changes: dict) -> bool:
        """Apply changes if the item is still pending at the version read."""
        assignments = ", ".join(f"{column} = ?" for column in changes)
        cursor = conn.execute(
            f"""
            UPDATE review_items
            SET {assignments}, version = version + 1, updated_at = ?
            WHERE id = ? AND status = 'pending' AND version = ?
            """,
            (*changes.values(), utcnow(), item.id, item.version),
        )
        return cursor.rowcount == 1

    def _pending_page(
        self, after_seq: int, review_filter: ReviewFilter, limit: int
    ) -> list[tuple[int, ReviewItem]]:
        where, params = review_filter.where()
        with self.db.connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM review_items WHERE {where} AND seq > ? ORDER BY seq LIMIT ?",
                (*params, after_seq, limit),
            ).fetchall()
        return [(row["seq"], _row_to_item(row)) for row in rows]

    # ------------------------------------------------------------------
    # Queue operations
    # ------------------------------------------------------------------

    def enqueue(self, item: ReviewItem, actor: str = "pipeline") -> ReviewItem:
        """
        Persist a new pending item.

        Raises:
            DuplicateReviewError: an open item exists for the same entity and article
            InvalidInputError: routing is not a review routing
        """
        if item.routing not in QUEUED_ROUTINGS:
            raise InvalidInputError(f"Items routed to {item.routing.value} are not enqueued")
        if item.status is not ReviewStatus.PENDING:
            raise InvalidInputError("Only pending items can be enqueued")

        key = dedup_key(item.entity)
        now = utcnow()
        entity = item.entity
        columns = {
            "id": item.id,
            "dedup_key": key,
            "raw_text": entity.raw_text,
            "normalized_text": entity.normalized_text,
            "entity_type": entity.entity_type.value,
            "article_context": entity.article_context,
            "source_confidence": entity.source_confidence,
            "language": entity.language,
            **_match_columns(item.match),
            "routing": item.routing.value,
            "status": ReviewStatus.PENDING.value,
            "issues": _dumps(list(item.issues)),
            "created_at": now,
            "updated_at": now,
        }

        try:
            with self.db.transaction() as conn:
                conn.execute(
                    f"INSERT INTO review_items ({', '.join(columns)}) "
                    f"VALUES ({', '.join('?' * len(columns))})",
                    tuple(columns.values()),
                )
                self._audit(
                    conn, item.id, "enqueued", None, ReviewStatus.PENDING, actor,
                    {"routing": item.routing.value, "score": item.match.score},
                )
        except sqlite3.IntegrityError as e:
            if "dedup_key" not in str(e):
                raise
            existing = self.find_open(item.entity)
            raise DuplicateReviewError(
                f"An open review item already exists for '{entity.raw_text}' in this article",
                existing_id=existing.id if existing else None,
            )

        logger.info(
            "review_enqueued",
            item_id=item.id,
            routing=item.routing.value,
            score=round(item.match.score, 2),
            entity=entity.normalized_text,
        )
        return self.get(item.id)

    def find_open(self, entity: ExtractedEntity) -> Optional[ReviewItem]:
        """The pending item for this entity and article, if any."""
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM review_items WHERE dedup_key = ? AND status = 'pending'",
                (dedup_key(entity),),
            ).fetchone()
        return _row_to_item(row) if row else None

    def get(self, item_id: str) -> ReviewItem:
        with self.db.connection() as conn:
            return self._fetch(conn, item_id)

    def list_pending(
        self, review_filter: ReviewFilter | None = None, page_size: int = DEFAULT_PAGE_SIZE
    ) -> PendingView:
        """Pending items, oldest first."""
        if page_size < 1:
            raise InvalidInputError("page_size must be positive")
        return PendingView(self, review_filter or ReviewFilter(), page_size)

    def count_pending(self, review_filter: ReviewFilter | None = None) -> int:
        where, params = (review_filter or ReviewFilter()).where()
        with self.db.connection() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM review_items WHERE {where}", params).fetchone()[0]

    def resolve(self, item_id: str, verdict: Verdict, expected_version: int | None = None) -> ReviewItem:
        """
        Apply a reviewer's decision.

        Raises:
            NotFoundError: unknown id
            AlreadyResolvedError: item already terminal (current state attached)
            StaleVersionError: item changed since expected_version was read
        """
        if not verdict.reviewer or not verdict.reviewer.strip():
            raise InvalidInputError("Reviewer is required")

        target = Decision(verdict.decision).target_status
        with self.db.transaction() as conn:
            item = self._fetch(conn, item_id)
            check_transition(item.status, target, item)
            if expected_version is not None and expected_version != item.version:
                raise StaleVersionError(
                    f"Review item {item_id} is at version {item.version}",
                    {"id": item_id, "version": item.version, "expected_version": expected_version},
                )
            now = utcnow()
            self._update(conn, item, {
                "status": target.value,
                "resolved_by": verdict.reviewer.strip(),
                "resolved_at": now,
                "notes": verdict.notes,
            })
            self._audit(
                conn, item_id, "resolved", item.status, target, verdict.reviewer.strip(),
                {"decision": Decision(verdict.decision).value, "notes": verdict.notes},
            )

        logger.info("review_resolved", item_id=item_id, status=target.value, reviewer=verdict.reviewer)
        return self.get(item_id)

    # ------------------------------------------------------------------
    # Curator integration
    # ------------------------------------------------------------------

    def apply_curator_verdict(
        self,
        item_id: str,
        verdict: CuratorVerdict,
        decision: Decision,
        expected_version: int,
        actor: str = "llm-curator",
    ) -> Optional[ReviewItem]:
        """
        Finalize an item with a curator verdict.

        Returns None, and records the discard, when the item left llm-review
        (e.g. a human resolved it meanwhile).

        Raises:
            StaleVersionError: still awaiting the curator but changed since
                expected_version; the caller re-reads it and decides again
        """
        target = decision.target_status
        with self.db.transaction() as conn:
            item = self._fetch(conn, item_id)
            if item.status.is_terminal or item.routing is not Routing.LLM_REVIEW:
                self._audit(
                    conn, item_id, "curator_verdict_discarded", item.status, item.status, actor,
                    {
                        "verdict": verdict.to_dict(),
                        "expected_version": expected_version,
                        "current_version": item.version,
                    },
                )
                applied = False
            elif item.version != expected_version:
                raise StaleVersionError(
                    f"Review item {item_id} is at version {item.version}",
                    {"id": item_id, "version": item.version, "expected_version": expected_version},
                )
            else:
                issues = list(item.issues)
                issues.extend(i for i in verdict.issues if i not in issues)
                if decision is Decision.INVESTIGATE:
                    issues.append(f"LLM Alert: {verdict.explanation}")
                applied = self._update(conn, item, {
                    "status": target.value,
                    "curator_verdict": _dumps(verdict.to_dict()),
                    "curator_attempts": item.curator_attempts + 1,
                    "issues": _dumps(issues),
                    "resolved_by": actor,
                    "resolved_at": utcnow(),
                    "notes": verdict.explanation,
                })
                self._audit(
                    conn, item_id, "curator_verdict", item.status, target, actor,
                    {"verdict": verdict.to_dict(), "decision": decision.value},
                )

        if not applied:
            logger.warning(
                "curator_verdict_discarded",
                item_id=item_id,
                status=item.status.value,
                expected_version=expected_version,
                current_version=item.version,
            )
            return None

        logger.info(
            "curator_verdict_applied",
            item_id=item_id,
            status=target.value,
            confidence=verdict.confidence,
        )
        return self.get(item_id)

    def record_curator_failure(
        self, item_id: str, error: str, actor: str = "llm-curator"
    ) -> Optional[ReviewItem]:
        """Count a failed curator attempt. None if the item left llm-review."""
        with self.db.transaction() as conn:
            item = self._fetch(conn, item_id)
            if item.status.is_terminal or item.routing is not Routing.LLM_REVIEW:
                return None
            self._update(conn, item, {"curator_attempts": item.curator_attempts + 1})
            self._audit(
                conn, item_id, "curator_failed", item.status, item.status, actor,
                {"error": error, "attempt": item.curator_attempts + 1},
            )
        return self.get(item_id)

    def route_to_human(
        self,
        item_id: str,
        reason: str,
        expected_version: int | None = None,
        actor: str = "pipeline",
    ) -> Optional[ReviewItem]:
        """Move a pending item to human review. None if it is no longer pending."""
        with self.db.transaction() as conn:
            item = self._fetch(conn, item_id)
            if item.status.is_terminal:
                return None
            if expected_version is not None and item.version != expected_version:
                return None
            issues = list(item.issues)
            if reason not in issues:
                issues.append(reason)
            self._update(conn, item, {
                "routing": Routing.HUMAN_REVIEW.value,
                "issues": _dumps(issues),
            })
            self._audit(
                conn, item_id, "routed_to_human", item.status, item.status, actor,
                {"reason": reason, "previous_routing": item.routing.value},
            )

        logger.info("review_routed_to_human", item_id=item_id, reason=reason)
        return self.get(item_id)

    def record_auto_approval(
        self, entity: ExtractedEntity, match: MatchResult, actor: str = "tier1-auto-match"
    ) -> AuditEvent:
        """Audit entry for a match approved without a queue item."""
        matched = match.watchlist_entity
        notes = None
        if matched is not None:
            notes = (
                f"Auto-approved via Tier 1 match: {matched.full_name} "
                f"({match.score:.1f}% {match.match_type.value})"
            )
        with self.db.transaction() as conn:
            event_id = self._audit(
                conn, None, "auto_approved", None, ReviewStatus.APPROVED, actor,
                {"entity": entity.to_dict(), "match": match.to_dict(), "notes": notes},
            )
            row = conn.execute("SELECT * FROM review_audit WHERE id = ?", (event_id,)).fetchone()

        logger.info(
            "review_auto_approved",
            entity=entity.normalized_text,
            watchlist_id=matched.id if matched else None,
            score=round(match.score, 2),
        )
        return _row_to_event(row)

    # ------------------------------------------------------------------
    # Watchlist changes
    # ------------------------------------------------------------------

    def rematch_pending(
        self, rematch: Callable[[ExtractedEntity], MatchResult], watchlist_version: int
    ) -> dict:
        """
        Recompute the stored match of every pending item older than the
        given watchlist version. Terminal items keep their historical match.
        Items whose best candidate is unchanged are left untouched, so a
        curator review in flight for them still applies.
        """
        checked = updated = unchanged = skipped = 0
        for item in self.list_pending():
            if item.match.watchlist_version >= watchlist_version:
                continue
            checked += 1
            new_match = rematch(item.entity)
            if new_match.same_candidate(item.match):
                unchanged += 1
                continue
            changes = _match_columns(new_match)
            if not new_match.is_match and NO_LONGER_MATCHES not in item.issues:
                changes["issues"] = _dumps([*item.issues, NO_LONGER_MATCHES])

            with self.db.transaction() as conn:
                if not self._update(conn, item, changes):
                    skipped += 1
                    continue
                self._audit(
                    conn, item.id, "rematched", item.status, item.status, "system:rematch",
                    {
                        "previous_score": item.match.score,
                        "score": new_match.score,
                        "match_type": new_match.match_type.value,
                        "watchlist_version": watchlist_version,
                    },
                )
            updated += 1

        if checked:
            logger.info(
                "review_rematch_complete",
                checked=checked,
                updated=updated,
                unchanged=unchanged,
                skipped=skipped,
                watchlist_version=watchlist_version,
            )
        return {"checked": checked, "updated": updated, "unchanged": unchanged, "skipped": skipped}

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def audit_trail(self, item_id: str) -> list[AuditEvent]:
        with self.db.connection() as conn:
            self._fetch(conn, item_id)
            rows = conn.execute(
                "SELECT * FROM review_audit WHERE item_id = ? ORDER BY id", (item_id,)
            ).fetchall()
        return [_row_to_event(row) for row in rows]

    def stats(self) -> dict:
        """Counts by status and routing, auto-approvals and the most common issues."""
        with self.db.connection() as conn:
            by_status = {status.value: 0 for status in ReviewStatus}
            for row in conn.execute("SELECT status, COUNT(*) AS n FROM review_items GROUP BY status"):
                by_status[row["status"]] = row["n"]

            pending_by_routing = {routing.value: 0 for routing in QUEUED_ROUTINGS}
            for row in conn.execute(
                "SELECT routing, COUNT(*) AS n FROM review_items WHERE status = 'pending' GROUP BY routing"
            ):
                pending_by_routing[row["routing"]] = row["n"]

            auto_approved = conn.execute(
                "SELECT COUNT(*) FROM review_audit WHERE event = 'auto_approved'"
            ).fetchone()[0]

            # Group issues by their prefix ("LLM Alert: ..." → "LLM Alert")
            issue_counts: Counter = Counter()
            for row in conn.execute("SELECT issues FROM review_items WHERE issues != '[]'"):
                for issue in json.loads(row["issues"]):
                    issue_counts[issue.split(":")[0].strip()] += 1

        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "pending_by_routing": pending_by_routing,
            "auto_approved": auto_approved,
            "top_issues": [
                {"issue": issue, "count": count}
                for issue, count in issue_counts.most_common(TOP_ISSUES_LIMIT)
            ],
        }
