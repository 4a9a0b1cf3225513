"""
Watchlist Store: Tier-1 entities from sanctions and designation lists.

Entities are persisted in sqlite and served to the matcher from an
immutable in-memory snapshot. Imports write under a lock, commit, then swap
the snapshot reference, so readers never wait on an import.
"""
from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .db import Database, utcnow
from .errors import InvalidInputError, NotFoundError
from .models import WatchlistEntity, WatchlistEntityType
from .normalizer import NameNormalizer

logger = structlog.get_logger("memoria.curation.watchlist")


class WatchlistRecord(BaseModel):
    """One record from an import source (OFAC-style feed)."""
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    external_id: str = Field(..., min_length=1, alias="externalId")
    full_name: str = Field(..., min_length=1, max_length=200, alias="fullName")
    aliases: list[str] = Field(default_factory=list)
    sanctions_programs: list[str] = Field(default_factory=list, alias="sanctionsPrograms")
    source: str = Field(..., min_length=1, max_length=50)
    tier: int = Field(1, ge=1, le=5)
    entity_type: WatchlistEntityType = Field(WatchlistEntityType.PERSON, alias="entityType")
    confidence_level: int = Field(5, ge=1, le=5, alias="confidenceLevel")
    nationality: Optional[str] = Field(None, max_length=2)
    date_of_birth: Optional[str] = Field(None, alias="dateOfBirth")
    notes: Optional[str] = None

    @field_validator("aliases", "sanctions_programs")
    @classmethod
    def _strip_blank(cls, values: list[str]) -> list[str]:
        cleaned = [v.strip() for v in values if v and v.strip()]
        return list(dict.fromkeys(cleaned))


@dataclass
class ImportReport:
    """Per-import counts; errors are reported per record."""
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[dict] = field(default_factory=list)

    def error(self, index: int, external_id: Any, reason: str) -> None:
        self.skipped += 1
        self.errors.append({"index": index, "external_id": external_id, "reason": reason})

    def to_dict(self) -> dict:
        return {
            "imported": self.imported,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
        }


@dataclass(frozen=True)
class WatchlistSnapshot:
    """Immutable view of the watchlist at one version."""
    version: int
    entities: tuple[WatchlistEntity, ...] = ()

    def __len__(self) -> int:
        return len(self.entities)

    def __iter__(self) -> Iterator[WatchlistEntity]:
        return iter(self.entities)

    def get(self, entity_id: str) -> Optional[WatchlistEntity]:
        for entity in self.entities:
            if entity.id == entity_id:
                return entity
        return None


def _row_to_entity(row: sqlite3.Row) -> WatchlistEntity:
    return WatchlistEntity(
        id=row["id"],
        external_id=row["external_id"],
        full_name=row["full_name"],
        normalized_name=row["normalized_name"],
        aliases=tuple(json.loads(row["aliases"])),
        normalized_aliases=tuple(json.loads(row["normalized_aliases"])),
        sanctions_programs=frozenset(json.loads(row["sanctions_programs"])),
        tier=row["tier"],
        source=row["source"],
        confidence_level=row["confidence_level"],
        entity_type=WatchlistEntityType(row["entity_type"]),
        nationality=row["nationality"],
        date_of_birth=row["date_of_birth"],
        notes=row["notes"],
    )


class WatchlistStore:
    """Durable watchlist with copy-on-write snapshots for the matcher."""

    def __init__(self, db: Database, normalizer: NameNormalizer | None = None):
        self.db = db
        self.normalizer = normalizer or NameNormalizer()
        self._write_lock = threading.Lock()
        self._snapshot = WatchlistSnapshot(version=0)
        self.refresh()

    # ------------------------------------------------------------------
    # Reads (lock-free)
    # ------------------------------------------------------------------

    def snapshot(self) -> WatchlistSnapshot:
        """Current snapshot. The reference is swapped atomically on import."""
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    def get(self, entity_id: str) -> WatchlistEntity:
        entity = self._snapshot.get(entity_id)
        if entity is None:
            raise NotFoundError(f"Watchlist entity {entity_id} not found")
        return entity

    def list_entities(
        self,
        entity_type: WatchlistEntityType | None = None,
        source: str | None = None,
    ) -> list[WatchlistEntity]:
        """All entities ordered by full name, optionally filtered."""
        entities = [
            e for e in self._snapshot
            if (entity_type is None or e.entity_type == entity_type)
            and (source is None or e.source == source)
        ]
        return sorted(entities, key=lambda e: (e.full_name, e.id))

    def stats(self) -> dict:
        """Counts by source, tier and entity type."""
        by_source: dict[str, int] = {}
        by_tier: dict[str, int] = {}
        by_type: dict[str, int] = {}
        for entity in self._snapshot:
            by_source[entity.source] = by_source.get(entity.source, 0) + 1
            by_tier[str(entity.tier)] = by_tier.get(str(entity.tier), 0) + 1
            by_type[entity.entity_type.value] = by_type.get(entity.entity_type.value, 0) + 1
        return {
            "total": len(self._snapshot),
            "version": self._snapshot.version,
            "by_source": by_source,
            "by_tier": by_tier,
            "by_entity_type": by_type,
        }

    def refresh(self) -> WatchlistSnapshot:
        """Reload the snapshot from the database."""
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM watchlist_entities ORDER BY full_name, id"
            ).fetchall()
            version_row = conn.execute(
                "SELECT value FROM watchlist_meta WHERE key = 'version'"
            ).fetchone()
        snapshot = WatchlistSnapshot(
            version=version_row[0] if version_row else 0,
            entities=tuple(_row_to_entity(r) for r in rows),
        )
        self._snapshot = snapshot
        return snapshot

    # ------------------------------------------------------------------
    # Import (upsert by external id + source)
    # ------------------------------------------------------------------

    def _normalize_aliases(self, aliases: list[str], normalized_name: str) -> list[str]:
        normalized = []
        for alias in aliases:
            try:
                norm = self.normalizer.normalize(alias)
            except InvalidInputError:
                logger.warning("watchlist_alias_dropped", alias=alias)
                continue
            if norm != normalized_name and norm not in normalized:
                normalized.append(norm)
        return normalized

    def _upsert(self, conn: sqlite3.Connection, record: WatchlistRecord, now: str) -> str:
        """Insert or update one record. Returns 'imported', 'updated' or 'skipped'."""
        normalized_name = self.normalizer.normalize(record.full_name)
        normalized_aliases = self._normalize_aliases(record.aliases, normalized_name)

        values = {
            "full_name": record.full_name,
            "normalized_name": normalized_name,
            "aliases": json.dumps(record.aliases, ensure_ascii=False),
            "normalized_aliases": json.dumps(normalized_aliases),
            "sanctions_programs": json.dumps(sorted(set(record.sanctions_programs))),
            "tier": record.tier,
            "entity_type": record.entity_type.value,
            "confidence_level": record.confidence_level,
            "nationality": record.nationality,
            "date_of_birth": record.date_of_birth,
            "notes": record.notes,
        }

        existing = conn.execute(
            "SELECT * FROM watchlist_entities WHERE external_id = ? AND source = ?",
            (record.external_id, record.source),
        ).fetchone()

        if existing is None:
            other = conn.execute(
                "SELECT source FROM watchlist_entities WHERE external_id = ? AND source != ?",
                (record.external_id, record.source),
            ).fetchone()
            if other:
                raise InvalidInputError(
                    f"External id {record.external_id} already imported from source {other['source']}"
                )
            conn.execute(
                f"""
                INSERT INTO watchlist_entities
                (id, external_id, source, {', '.join(values)}, verified_at, created_at, updated_at)
                VALUES (?, ?, ?, {', '.join('?' * len(values))}, ?, ?, ?)
                """,
                (str(uuid.uuid4()), record.external_id, record.source,
                 *values.values(), now, now, now),
            )
            return "imported"

        if all(existing[k] == v for k, v in values.items()):
            return "skipped"

        assignments = ", ".join(f"{k} = ?" for k in values)
        conn.execute(
            f"UPDATE watchlist_entities SET {assignments}, verified_at = ?, updated_at = ? WHERE id = ?",
            (*values.values(), now, now, existing["id"]),
        )
        return "updated"

    def import_records(self, records: Iterable[dict | WatchlistRecord]) -> ImportReport:
        """
        Upsert records keyed by (external_id, source).

        Bad records are reported in the result and skipped; the rest of the
        batch is still imported. The watchlist version is bumped only when
        something changed.
        """
        report = ImportReport()
        now = utcnow()

        with self._write_lock:
            with self.db.transaction() as conn:
                for index, raw in enumerate(records):
                    external_id = None
                    try:
                        record = raw if isinstance(raw, WatchlistRecord) else WatchlistRecord.model_validate(raw)
                        external_id = record.external_id
                    except ValidationError as e:
                        if isinstance(raw, dict):
                            external_id = raw.get("externalId", raw.get("external_id"))
                        reasons = "; ".join(
                            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
                        )
                        report.error(index, external_id, f"schema mismatch: {reasons}")
                        continue

                    conn.execute("SAVEPOINT watchlist_record")
                    try:
                        outcome = self._upsert(conn, record, now)
                    except (InvalidInputError, sqlite3.IntegrityError) as e:
                        conn.execute("ROLLBACK TO SAVEPOINT watchlist_record")
                        conn.execute("RELEASE SAVEPOINT watchlist_record")
                        report.error(index, external_id, getattr(e, "message", str(e)))
                        continue
                    conn.execute("RELEASE SAVEPOINT watchlist_record")

                    if outcome == "imported":
                        report.imported += 1
                    elif outcome == "updated":
                        report.updated += 1
                    else:
                        report.skipped += 1

                if report.imported or report.updated:
                    conn.execute("UPDATE watchlist_meta SET value = value + 1 WHERE key = 'version'")

            snapshot = self.refresh()

        logger.info(
            "watchlist_import_complete",
            imported=report.imported,
            updated=report.updated,
            skipped=report.skipped,
            errors=len(report.errors),
            version=snapshot.version,
        )
        return report
